from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from pygbfs._transport import HttpTransport
from pygbfs.exceptions import FetchErrorKind, GbfsFetchError


async def _feed(request: web.Request) -> web.Response:
    return web.json_response(
        {"last_updated": 1, "ttl": 0, "data": {"ua": request.headers.get("User-Agent")}},
    )


async def _gone(request: web.Request) -> web.Response:
    return web.Response(status=404, text="gone")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.Response(text="late")


@pytest_asyncio.fixture
async def server() -> AsyncIterator[test_utils.TestServer]:
    app = web.Application()
    app.router.add_get("/feed.json", _feed)
    app.router.add_get("/gone.json", _gone)
    app.router.add_get("/slow.json", _slow)
    async with test_utils.TestServer(app) as test_server:
        yield test_server


@pytest.mark.asyncio
async def test_get_returns_status_and_body(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(session, user_agent="pygbfs-tests/0")
        response = await transport.get(str(server.make_url("/feed.json")), timeout=2.0)

    assert response.status == 200
    assert '"ua": "pygbfs-tests/0"' in response.text


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        response = await HttpTransport(session).get(str(server.make_url("/gone.json")), timeout=2.0)

    assert response.status == 404
    assert response.text == "gone"


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout_kind(server: test_utils.TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        with pytest.raises(GbfsFetchError) as excinfo:
            await HttpTransport(session).get(str(server.make_url("/slow.json")), timeout=0.05)

    assert excinfo.value.kind == FetchErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_connection_failure_maps_to_network_kind(server: test_utils.TestServer) -> None:
    url = str(server.make_url("/feed.json"))
    await server.close()

    async with aiohttp.ClientSession() as session:
        with pytest.raises(GbfsFetchError) as excinfo:
            await HttpTransport(session).get(url, timeout=2.0)

    assert excinfo.value.kind == FetchErrorKind.NETWORK
