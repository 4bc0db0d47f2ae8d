"""
Request dispatcher.

The dispatcher performs exactly one HTTP exchange per call using aiohttp
and reports the result at transport level only: a 2xx response comes back
as a :class:`~restcaller.models.RawResponse`; everything else is raised as
one of the :class:`~restcaller.errors.TransportError` subclasses.  It does
not decode bodies or look at payload semantics; that is the classifier's
job.

Timeouts are per phase only.  The connect value bounds connection setup and
the receive value bounds the gap between socket reads, so a slow but steady
response never times out.  aiohttp has no write timeout, so the send value
has no aiohttp counterpart.

A caller-supplied ``aiohttp.ClientSession`` is reused for every request;
without one a short-lived session is opened per request.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
import os
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Optional

import aiohttp

from .config import ClientSettings
from .errors import (
    ServerBadResponse,
    TransportCancelled,
    TransportConnectionError,
    TransportTimeout,
    UnknownTransportError,
)
from .models import FileUpload, RawResponse, RequestDescriptor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Any]

_CHUNK_SIZE = 64 * 1024


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class RequestDispatcher:
    """Send one request described by a :class:`RequestDescriptor`."""

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self.session = session
        self.timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self.settings.connect_timeout,
            sock_connect=self.settings.connect_timeout,
            sock_read=self.settings.receive_timeout,
        )

    @contextlib.asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self.session is not None:
            yield self.session
            return
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            yield session

    @staticmethod
    @contextlib.asynccontextmanager
    async def _translate_errors(method: str, url: str) -> AsyncIterator[None]:
        """Map aiohttp and OS failures onto the transport error taxonomy."""
        try:
            yield
        except asyncio.CancelledError:
            task = asyncio.current_task()
            # A task that is being cancelled must see its CancelledError
            if task is not None and task.cancelling():
                raise
            logger.warning("%s %s cancelled by the transport", method, url)
            raise TransportCancelled("Request cancelled") from None
        except asyncio.TimeoutError as exc:
            logger.warning("%s %s timed out", method, url)
            raise TransportTimeout(str(exc) or "Request timed out") from exc
        except (aiohttp.ClientConnectionError, ConnectionError) as exc:
            logger.warning("%s %s connection error: %s", method, url, exc)
            raise TransportConnectionError(str(exc) or "Connection failed") from exc
        except (aiohttp.ClientError, OSError) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise UnknownTransportError(str(exc)) from exc

    @staticmethod
    def _form_data(upload: FileUpload) -> aiohttp.FormData:
        # FormData is consumed on send, so a fresh one is built per attempt
        form = aiohttp.FormData()
        for name, value in upload.fields.items():
            form.add_field(name, value)
        form.add_field(
            upload.field_name,
            upload.content,
            filename=upload.filename,
            content_type=upload.content_type,
        )
        return form

    def _request_kwargs(self, descriptor: RequestDescriptor, headers: Dict[str, str]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if descriptor.query:
            kwargs["params"] = list(descriptor.query)
        if descriptor.upload is not None:
            kwargs["data"] = self._form_data(descriptor.upload)
        elif descriptor.body is not None:
            kwargs["data"] = json.dumps(descriptor.body)
        return kwargs

    async def send(self, descriptor: RequestDescriptor, headers: Dict[str, str]) -> RawResponse:
        method = descriptor.method.upper()
        url = self.settings.full_url(descriptor.path)
        kwargs = self._request_kwargs(descriptor, headers)
        logger.info("%s %s", method, descriptor.path)
        if descriptor.body is not None and logger.isEnabledFor(logging.DEBUG):
            logger.debug("Request body: %s", json.dumps(descriptor.body)[:200])
        async with self._translate_errors(method, url):
            async with self._session_scope() as session:
                async with session.request(method, url, **kwargs) as resp:
                    body = await resp.read()
                    status = resp.status
                    resp_headers = dict(resp.headers)
        logger.debug("Response %s for %s %s", status, method, descriptor.path)
        if not _is_success(status):
            raise ServerBadResponse(status, body, resp_headers)
        return RawResponse(status=status, body=body, headers=resp_headers)

    async def download(
        self,
        descriptor: RequestDescriptor,
        headers: Dict[str, str],
        destination: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RawResponse:
        """Stream the response body into ``destination``.

        The body is written to ``<destination>.part`` and moved into place
        only once complete, so a failed download never leaves a truncated
        file behind.  ``on_progress(received, total)`` is called after each
        chunk; ``total`` is ``-1`` when the server sends no Content-Length.
        """
        method = descriptor.method.upper()
        url = self.settings.full_url(descriptor.path)
        kwargs = self._request_kwargs(descriptor, headers)
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")
        loop = asyncio.get_running_loop()
        logger.info("%s %s -> %s", method, descriptor.path, destination)
        try:
            async with self._translate_errors(method, url):
                async with self._session_scope() as session:
                    async with session.request(method, url, **kwargs) as resp:
                        status = resp.status
                        resp_headers = dict(resp.headers)
                        if not _is_success(status):
                            body = await resp.read()
                            raise ServerBadResponse(status, body, resp_headers)
                        total = resp.content_length if resp.content_length is not None else -1
                        received = 0
                        destination.parent.mkdir(parents=True, exist_ok=True)
                        with open(partial, "wb") as fh:
                            async for chunk in resp.content.iter_chunked(_CHUNK_SIZE):
                                await loop.run_in_executor(None, fh.write, chunk)
                                received += len(chunk)
                                if on_progress is not None:
                                    result = on_progress(received, total)
                                    if inspect.isawaitable(result):
                                        await result
                os.replace(partial, destination)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        logger.debug("Downloaded %d bytes to %s", received, destination)
        return RawResponse(status=status, headers=resp_headers)


__all__ = ["RequestDispatcher", "ProgressCallback"]
