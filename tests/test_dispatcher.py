"""Tests for the aiohttp RequestDispatcher.

A real ``aiohttp.web`` application is served on localhost so the tests
exercise actual request encoding, status handling, timeouts and
streaming downloads.
"""

from __future__ import annotations

import asyncio
import json
import socket

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from restcaller.config import ClientSettings
from restcaller.dispatcher import RequestDispatcher
from restcaller.errors import (
    ServerBadResponse,
    TransportCancelled,
    TransportConnectionError,
    TransportTimeout,
)
from restcaller.models import FileUpload, RequestDescriptor

DOWNLOAD_BYTES = b"0123456789" * 10_000


async def echo(request: web.Request) -> web.Response:
    body = await request.text()
    return web.json_response(
        {
            "method": request.method,
            "query": [[k, v] for k, v in request.query.items()],
            "authorization": request.headers.get("Authorization"),
            "content_type": request.headers.get("Content-Type"),
            "body": json.loads(body) if body else None,
        }
    )


async def missing(request: web.Request) -> web.Response:
    return web.json_response({"message": "Order not found"}, status=404)


async def slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({})


async def avatar(request: web.Request) -> web.Response:
    form = await request.post()
    image = form["image"]
    return web.json_response(
        {
            "filename": image.filename,
            "content_type": image.content_type,
            "size": len(image.file.read()),
            "alt": form.get("alt"),
        }
    )


async def report(request: web.Request) -> web.Response:
    return web.Response(body=DOWNLOAD_BYTES, content_type="application/octet-stream")


async def trickle(request: web.Request) -> web.StreamResponse:
    resp = web.StreamResponse()
    resp.content_length = 200
    await resp.prepare(request)
    for _ in range(20):
        await resp.write(b"x" * 10)
        await asyncio.sleep(0.05)
    await resp.write_eof()
    return resp


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_route("*", "/api/v1/echo", echo)
    app.router.add_get("/api/v1/missing", missing)
    app.router.add_get("/api/v1/slow", slow)
    app.router.add_post("/api/v1/avatar", avatar)
    app.router.add_get("/api/v1/report", report)
    app.router.add_get("/api/v1/trickle", trickle)
    srv = TestServer(app)
    await srv.start_server()
    yield srv
    await srv.close()


def settings_for(srv: TestServer, **overrides) -> ClientSettings:
    return ClientSettings(base_url=f"http://{srv.host}:{srv.port}", **overrides)


@pytest.mark.asyncio
async def test_send_returns_raw_response(server) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    descriptor = RequestDescriptor(
        method="POST",
        path="/echo",
        query=[("page", "2"), ("tag", "a")],
        body={"qty": 3},
    )
    raw = await dispatcher.send(
        descriptor, {"Authorization": "Bearer t", "Content-Type": "application/json"}
    )
    assert raw.status == 200
    data = json.loads(raw.body)
    assert data["method"] == "POST"
    assert data["query"] == [["page", "2"], ["tag", "a"]]
    assert data["authorization"] == "Bearer t"
    assert data["body"] == {"qty": 3}


@pytest.mark.asyncio
async def test_non_2xx_raises_bad_response(server) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    with pytest.raises(ServerBadResponse) as info:
        await dispatcher.send(RequestDescriptor(method="GET", path="/missing"), {})
    assert info.value.status == 404
    assert json.loads(info.value.body) == {"message": "Order not found"}


@pytest.mark.asyncio
async def test_read_timeout_raises_transport_timeout(server) -> None:
    settings = settings_for(server, connect_timeout=0.2, send_timeout=0.2, receive_timeout=0.2)
    dispatcher = RequestDispatcher(settings)
    with pytest.raises(TransportTimeout):
        await dispatcher.send(RequestDescriptor(method="GET", path="/slow"), {})


@pytest.mark.asyncio
async def test_refused_connection_raises_connection_error() -> None:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    dispatcher = RequestDispatcher(ClientSettings(base_url=f"http://127.0.0.1:{port}"))
    with pytest.raises(TransportConnectionError):
        await dispatcher.send(RequestDescriptor(method="GET", path="/echo"), {})


@pytest.mark.asyncio
async def test_multipart_upload(server) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    upload = FileUpload(
        field_name="image",
        filename="me.png",
        content=b"\x89PNG" * 10,
        content_type="image/png",
        fields={"alt": "portrait"},
    )
    raw = await dispatcher.send(RequestDescriptor(method="POST", path="/avatar", upload=upload), {})
    assert json.loads(raw.body) == {
        "filename": "me.png",
        "content_type": "image/png",
        "size": 40,
        "alt": "portrait",
    }


@pytest.mark.asyncio
async def test_download_streams_to_file_with_progress(server, tmp_path) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    destination = tmp_path / "out" / "report.bin"
    progress = []
    raw = await dispatcher.download(
        RequestDescriptor(method="GET", path="/report"),
        {},
        destination,
        lambda received, total: progress.append((received, total)),
    )
    assert raw.status == 200
    assert destination.read_bytes() == DOWNLOAD_BYTES
    assert progress[-1] == (len(DOWNLOAD_BYTES), len(DOWNLOAD_BYTES))
    assert [p[0] for p in progress] == sorted(p[0] for p in progress)
    assert not (tmp_path / "out" / "report.bin.part").exists()


@pytest.mark.asyncio
async def test_download_failure_leaves_no_file(server, tmp_path) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    destination = tmp_path / "missing.bin"
    with pytest.raises(ServerBadResponse):
        await dispatcher.download(RequestDescriptor(method="GET", path="/missing"), {}, destination)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_steady_download_outlasting_all_timeouts_succeeds(server, tmp_path) -> None:
    # Roughly one second of streaming with no read gap over 0.05s
    settings = settings_for(server, connect_timeout=0.2, send_timeout=0.2, receive_timeout=0.2)
    dispatcher = RequestDispatcher(settings)
    destination = tmp_path / "trickle.bin"
    raw = await dispatcher.download(RequestDescriptor(method="GET", path="/trickle"), {}, destination)
    assert raw.status == 200
    assert destination.read_bytes() == b"x" * 200


class _CancellingSession:
    """Session whose request is cancelled from below, not by the caller."""

    def request(self, method, url, **kwargs):
        return self

    async def __aenter__(self):
        raise asyncio.CancelledError()

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_transport_cancellation_raises_transport_cancelled() -> None:
    dispatcher = RequestDispatcher(ClientSettings(), session=_CancellingSession())  # type: ignore[arg-type]
    with pytest.raises(TransportCancelled):
        await dispatcher.send(RequestDescriptor(method="GET", path="/echo"), {})


@pytest.mark.asyncio
async def test_cancelling_the_caller_propagates(server) -> None:
    dispatcher = RequestDispatcher(settings_for(server))
    task = asyncio.create_task(dispatcher.send(RequestDescriptor(method="GET", path="/slow"), {}))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
