"""Response classification.

:func:`classify` turns whatever the dispatcher produced (a 2xx
:class:`RawResponse` or a :class:`TransportError`) into an
:class:`Outcome`.  It is a pure function: no I/O, no logging, no state,
so the same input always yields an equal ``Outcome``.

Status rules, in order:

* 2xx with an array body is always a success.
* 2xx with an object body is a success unless it carries a ``success``
  key that is not ``True``; then the object's ``message`` is the error.
* 2xx with any other body is a success.
* 400 joins the ``message`` of every ``errorSources`` entry.
* 500 and every other status use the body's ``message`` when present.
"""

from __future__ import annotations

from typing import Any, Union

from .errors import (
    ServerBadResponse,
    TransportCancelled,
    TransportConnectionError,
    TransportError,
    TransportTimeout,
)
from .json_value import JsonKind, decode_body, kind_of
from .models import Outcome, RawResponse

TIMEOUT_STATUS = 408
CANCELLED_STATUS = 499
CONNECTION_ERROR_STATUS = 503
UNKNOWN_ERROR_STATUS = 500

TIMEOUT_MESSAGE = "Request timeout. Please try again."
CANCELLED_MESSAGE = "Request cancelled"
CONNECTION_ERROR_MESSAGE = "Network connection failed. Please check your connection."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"

SUCCESS_FLAG_FALLBACK = "Unknown error occurred"
VALIDATION_FALLBACK = "Validation error"
VALIDATION_ENTRY_FALLBACK = "Unknown error"
SERVER_ERROR_FALLBACK = "An unexpected error occurred!"
SERVER_ERROR_NON_OBJECT = "Internal Server Error"
UNEXPECTED_FALLBACK = "Unexpected error occurred"


def _message(payload: Any, fallback: str) -> str:
    """Return ``payload["message"]`` as text, or ``fallback`` if unusable."""
    if kind_of(payload) is not JsonKind.OBJECT:
        return fallback
    message = payload.get("message")
    if message is None:
        return fallback
    text = message if isinstance(message, str) else str(message)
    return text or fallback


def _validation_message(payload: Any) -> str:
    if kind_of(payload) is not JsonKind.OBJECT:
        return VALIDATION_FALLBACK
    sources = payload.get("errorSources")
    if kind_of(sources) is not JsonKind.ARRAY or not sources:
        return VALIDATION_FALLBACK
    return ", ".join(_message(entry, VALIDATION_ENTRY_FALLBACK) for entry in sources)


def _classify_status(status: int, payload: Any) -> Outcome:
    kind = kind_of(payload)
    if 200 <= status < 300:
        if kind is JsonKind.ARRAY:
            return Outcome.success(status, payload)
        if kind is JsonKind.OBJECT:
            if "success" not in payload or payload["success"] is True:
                return Outcome.success(status, payload)
            return Outcome.failure(status, _message(payload, SUCCESS_FLAG_FALLBACK), payload)
        return Outcome.success(status, payload)
    if status == 400:
        return Outcome.failure(status, _validation_message(payload), payload)
    if status == 500:
        fallback = SERVER_ERROR_FALLBACK if kind is JsonKind.OBJECT else SERVER_ERROR_NON_OBJECT
        return Outcome.failure(status, _message(payload, fallback), payload)
    return Outcome.failure(status, _message(payload, UNEXPECTED_FALLBACK), payload)


def classify(result: Union[RawResponse, TransportError]) -> Outcome:
    """Normalise a raw response or a transport failure into an ``Outcome``."""
    if isinstance(result, RawResponse):
        return _classify_status(result.status, decode_body(result.body))
    if isinstance(result, ServerBadResponse):
        return _classify_status(result.status, decode_body(result.body))
    if isinstance(result, TransportTimeout):
        return Outcome.failure(TIMEOUT_STATUS, TIMEOUT_MESSAGE)
    if isinstance(result, TransportCancelled):
        return Outcome.failure(CANCELLED_STATUS, CANCELLED_MESSAGE)
    if isinstance(result, TransportConnectionError):
        return Outcome.failure(CONNECTION_ERROR_STATUS, CONNECTION_ERROR_MESSAGE)
    if isinstance(result, TransportError):
        return Outcome.failure(UNKNOWN_ERROR_STATUS, str(result) or UNKNOWN_ERROR_MESSAGE)
    raise TypeError(f"cannot classify {type(result).__name__}")


__all__ = ["classify"]
