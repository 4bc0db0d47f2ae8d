"""
Exception taxonomy for the client layer.

The dispatcher raises the ``TransportError`` family; the façade catches
every one of them and hands the instance to the classifier, so none of
these reach callers of ``ApiClient``.  ``LocalValidationError`` is the
exception callers may see: it is raised before any network activity when
a request cannot be built.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RestCallerError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(RestCallerError):
    """Failure below the HTTP-semantics layer or a non-2xx response."""


class TransportTimeout(TransportError):
    pass


class TransportCancelled(TransportError):
    pass


class TransportConnectionError(TransportError):
    pass


class ServerBadResponse(TransportError):
    """The server answered with a status outside 2xx."""

    def __init__(self, status: int, body: bytes = b"", headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(f"server responded with status {status}")
        self.status = status
        self.body = body
        self.headers = dict(headers or {})


class UnknownTransportError(TransportError):
    pass


class RefreshFailed(RestCallerError):
    """Token refresh did not yield a new access token.

    Only used inside the refresh coordinator; it is converted into a
    ``False`` result and never propagates.
    """


class LocalValidationError(RestCallerError, ValueError):
    """A request was rejected locally before anything was sent."""


class AuthenticationFailed(RestCallerError):
    """An auth repository call failed; ``outcome`` holds the server verdict."""

    def __init__(self, message: str, outcome: Any = None) -> None:
        super().__init__(message)
        self.outcome = outcome


__all__ = [
    "RestCallerError",
    "TransportError",
    "TransportTimeout",
    "TransportCancelled",
    "TransportConnectionError",
    "ServerBadResponse",
    "UnknownTransportError",
    "RefreshFailed",
    "LocalValidationError",
    "AuthenticationFailed",
]
