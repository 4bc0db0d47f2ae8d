"""
Authenticated REST client.

:class:`ApiClient` is the public face of the package.  Every operation
returns an :class:`~restcaller.models.Outcome`; transport exceptions never
escape.  The call sequence for one operation is::

    dispatch -> classify -> [refresh -> dispatch again -> classify]

The bracketed part runs only when the first outcome is a 401 for a request
that is not one of the reserved auth operations, and only if the refresh
coordinator reports a fresh access token.  The second classification is
returned as-is, even if it is another 401; there is never a third attempt.
The retry loop is driven by tenacity with a hard stop after two attempts.

The client is meant to be constructed once and handed to whatever needs
it::

    store = get_default_credential_store()
    async with ApiClient(store, ClientSettings.from_env()) as client:
        outcome = await client.get("/orders", query={"page": 1})
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import aiohttp
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from .classifier import classify
from .config import AuthOperation, ClientSettings
from .credentials import BaseCredentialStore, InMemoryCredentialStore
from .dispatcher import ProgressCallback, RequestDispatcher
from .errors import LocalValidationError, TransportError
from .metrics import RETRIES, record_outcome
from .models import FileUpload, Outcome, RawResponse, RequestDescriptor
from .refresh import RefreshCoordinator

logger = logging.getLogger(__name__)

UPLOAD_CONTENT_TYPES: Dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
}

QueryParams = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], None]
Sender = Callable[[RequestDescriptor, Dict[str, str]], Awaitable[RawResponse]]


class _SessionExpired(Exception):
    """Raised inside the retry loop once a refresh has succeeded."""


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _normalise_query(query: QueryParams) -> List[Tuple[str, str]]:
    if not query:
        return []
    items = query.items() if isinstance(query, Mapping) else query
    pairs: List[Tuple[str, str]] = []
    for key, value in items:
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((str(key), _query_value(v)) for v in value)
        else:
            pairs.append((str(key), _query_value(value)))
    return pairs


class ApiClient:
    """Asynchronous REST client with bearer auth and one-shot token refresh."""

    def __init__(
        self,
        store: Optional[BaseCredentialStore] = None,
        settings: Optional[ClientSettings] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        dispatcher: Optional[RequestDispatcher] = None,
        refresh_coordinator: Optional[RefreshCoordinator] = None,
    ) -> None:
        """Construct the client.

        Args:
            store: Credential store read before every request.  Defaults to
                an empty in-memory store.
            settings: Base URL, timeouts and reserved endpoints.
            session: Optional aiohttp session shared by all requests.
            dispatcher: Replaces the aiohttp dispatcher; mainly for tests.
            refresh_coordinator: Replaces the default coordinator built from
                ``dispatcher``, ``store`` and ``settings``.
        """
        self.settings = settings or ClientSettings()
        self.store = store if store is not None else InMemoryCredentialStore()
        self.dispatcher = dispatcher or RequestDispatcher(self.settings, session=session)
        self.refresh_coordinator = refresh_coordinator or RefreshCoordinator(
            self.dispatcher, self.store, self.settings
        )
        self._owns_session = False

    async def __aenter__(self) -> "ApiClient":
        if isinstance(self.dispatcher, RequestDispatcher) and self.dispatcher.session is None:
            self.dispatcher.session = aiohttp.ClientSession(timeout=self.dispatcher.timeout)
            self._owns_session = True
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the session opened by ``async with``; injected sessions are left alone."""
        if self._owns_session and self.dispatcher.session is not None:
            await self.dispatcher.session.close()
            self.dispatcher.session = None
        self._owns_session = False

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _descriptor(
        self,
        method: str,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
        upload: Optional[FileUpload] = None,
    ) -> RequestDescriptor:
        if auth_operation is None:
            auth_operation = self.settings.operation_for(path)
        return RequestDescriptor(
            method=method,
            path=path,
            query=_normalise_query(query),
            body=body,
            upload=upload,
            token=token,
            auth_operation=auth_operation,
        )

    async def _headers(self, descriptor: RequestDescriptor, *, retry: bool, accept: str) -> Dict[str, str]:
        headers: Dict[str, str] = {"Accept": accept}
        if descriptor.upload is None:
            headers["Content-Type"] = "application/json"
        # An explicit token is only honoured on the first attempt; the retry
        # must carry the token the refresh just stored
        token = None if retry else descriptor.token
        if not token:
            token = await self.store.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    async def _attempt(descriptor: RequestDescriptor, headers: Dict[str, str], send: Sender) -> Outcome:
        try:
            raw = await send(descriptor, headers)
        except TransportError as exc:
            return classify(exc)
        return classify(raw)

    @staticmethod
    def _refresh_eligible(descriptor: RequestDescriptor, outcome: Outcome) -> bool:
        return not outcome.is_success and outcome.status_code == 401 and descriptor.refresh_eligible

    async def _execute(
        self,
        descriptor: RequestDescriptor,
        send: Optional[Sender] = None,
        *,
        accept: str = "application/json",
    ) -> Outcome:
        send = send or self.dispatcher.send
        outcome: Optional[Outcome] = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_none(),
            retry=retry_if_exception_type(_SessionExpired),
            reraise=True,
        ):
            with attempt:
                retry = attempt.retry_state.attempt_number > 1
                headers = await self._headers(descriptor, retry=retry, accept=accept)
                outcome = await self._attempt(descriptor, headers, send)
                if not retry and self._refresh_eligible(descriptor, outcome):
                    logger.info("%s %s unauthorized; attempting token refresh", descriptor.method, descriptor.path)
                    if await self.refresh_coordinator.attempt_refresh():
                        RETRIES.inc()
                        logger.info("Retrying %s %s with refreshed token", descriptor.method, descriptor.path)
                        raise _SessionExpired()
                    logger.info("Token refresh unavailable; returning original 401")
        assert outcome is not None
        if not outcome.is_success:
            logger.debug(
                "%s %s failed with %s: %s",
                descriptor.method,
                descriptor.path,
                outcome.status_code,
                outcome.error_message,
            )
        record_outcome(descriptor.method, outcome.is_success)
        return outcome

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def get(
        self,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
    ) -> Outcome:
        return await self._execute(
            self._descriptor("GET", path, query=query, body=body, token=token, auth_operation=auth_operation)
        )

    async def post(
        self,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
    ) -> Outcome:
        return await self._execute(
            self._descriptor("POST", path, query=query, body=body, token=token, auth_operation=auth_operation)
        )

    async def put(
        self,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
    ) -> Outcome:
        return await self._execute(
            self._descriptor("PUT", path, query=query, body=body, token=token, auth_operation=auth_operation)
        )

    async def patch(
        self,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
    ) -> Outcome:
        return await self._execute(
            self._descriptor("PATCH", path, query=query, body=body, token=token, auth_operation=auth_operation)
        )

    async def delete(
        self,
        path: str,
        *,
        query: QueryParams = None,
        body: Any = None,
        token: Optional[str] = None,
        auth_operation: Optional[AuthOperation] = None,
    ) -> Outcome:
        return await self._execute(
            self._descriptor("DELETE", path, query=query, body=body, token=token, auth_operation=auth_operation)
        )

    @staticmethod
    async def _read_upload(
        file_path: Union[str, Path], field_name: str, fields: Optional[Mapping[str, Any]]
    ) -> FileUpload:
        path = Path(file_path)
        extension = path.suffix.lower()
        content_type = UPLOAD_CONTENT_TYPES.get(extension)
        if content_type is None:
            allowed = ", ".join(UPLOAD_CONTENT_TYPES)
            raise LocalValidationError(
                f"Unsupported image format: {extension or '(none)'}; expected one of {allowed}"
            )
        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(None, path.read_bytes)
        except OSError as exc:
            raise LocalValidationError(f"Cannot read upload file {path}: {exc}") from exc
        return FileUpload(
            field_name=field_name,
            filename=path.name,
            content=content,
            content_type=content_type,
            fields={str(k): _query_value(v) for k, v in (fields or {}).items()},
        )

    async def upload(
        self,
        path: str,
        file_path: Union[str, Path],
        field_name: str = "image",
        fields: Optional[Mapping[str, Any]] = None,
        *,
        method: str = "POST",
        query: QueryParams = None,
        token: Optional[str] = None,
    ) -> Outcome:
        """Send ``file_path`` as a multipart form.

        Only ``.jpg``, ``.jpeg``, ``.png`` and ``.gif`` files are accepted;
        anything else raises :class:`LocalValidationError` before a request
        is made.
        """
        upload = await self._read_upload(file_path, field_name, fields)
        descriptor = self._descriptor(method, path, query=query, token=token, upload=upload)
        return await self._execute(descriptor)

    async def download(
        self,
        path: str,
        destination: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
        *,
        query: QueryParams = None,
        token: Optional[str] = None,
    ) -> Outcome:
        """Save the body of ``GET path`` to ``destination``.

        On success the payload is ``{"path": <destination>, "size": <bytes>}``.
        """
        destination = Path(destination)
        descriptor = self._descriptor("GET", path, query=query, token=token)

        async def send(desc: RequestDescriptor, headers: Dict[str, str]) -> RawResponse:
            return await self.dispatcher.download(desc, headers, destination, on_progress)

        outcome = await self._execute(descriptor, send, accept="*/*")
        if not outcome.is_success:
            return outcome
        return Outcome.success(
            outcome.status_code,
            {"path": str(destination), "size": destination.stat().st_size},
        )


__all__ = ["ApiClient", "UPLOAD_CONTENT_TYPES"]
