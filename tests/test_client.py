from __future__ import annotations

import asyncio
from typing import Any

import pytest
from aiohttp import test_utils, web
from fakes import (
    BASE_URL,
    FakeClock,
    FakeTransport,
    discovery,
    envelope,
    eventually,
    feed_url,
    station_information_data,
    station_status_data,
    system_information_data,
)

from pygbfs import FeedState, FeedType, GbfsClient, GbfsConfig, GbfsDiscoveryError, GbfsError, Snapshot
from pygbfs._transport import HttpResponse
from pygbfs.config import LanguageFallback, RetryPolicy

_ROOT = f"{BASE_URL}/gbfs.json"


def _config(**overrides: Any) -> GbfsConfig:
    return GbfsConfig(discovery_url=_ROOT, retry=RetryPolicy(max_attempts=1), **overrides)


def _system(transport: FakeTransport) -> None:
    transport.serve(_ROOT, discovery("system_information", "station_information", "station_status", "vehicle_types"))
    transport.serve(feed_url("system_information"), envelope(system_information_data(), ttl=3600))
    transport.serve(feed_url("station_information"), envelope(station_information_data("S2"), ttl=300))
    transport.serve(feed_url("station_status"), envelope(station_status_data("S1", "S2"), ttl=60))


@pytest.mark.asyncio
async def test_ingests_discovered_feeds() -> None:
    transport = FakeTransport()
    _system(transport)
    clock = FakeClock()

    async with GbfsClient(_config(preferred_language="en"), transport=transport, clock=clock) as client:
        assert client.language == "en"
        assert [d.name for d in client.feeds] == [
            FeedType.SYSTEM_INFORMATION,
            FeedType.STATION_INFORMATION,
            FeedType.STATION_STATUS,
        ]
        await eventually(lambda: clock.pending == 3)

        info = client.get_snapshot(FeedType.SYSTEM_INFORMATION)
        assert info is not None
        assert info.envelope.data.name == "City Bikes"  # type: ignore[attr-defined]
        assert client.get_snapshot(FeedType.SYSTEM_ALERTS) is None

        health = client.get_health()
        assert set(health) == {d.name for d in client.feeds}
        assert health[FeedType.STATION_STATUS].dangling_reference_count == 1
        assert all(h.last_success_time == clock.now() for h in health.values())

    assert {h.state for h in client.get_health().values()} == {FeedState.STOPPED}


@pytest.mark.asyncio
async def test_feed_filter_limits_ingestion() -> None:
    transport = FakeTransport()
    _system(transport)
    config = _config(feeds=frozenset({FeedType.STATION_STATUS}))

    async with GbfsClient(config, transport=transport, clock=FakeClock()) as client:
        assert [d.name for d in client.feeds] == [FeedType.STATION_STATUS]
        assert set(client.get_health()) == {FeedType.STATION_STATUS}

    assert transport.count(feed_url("system_information")) == 0


@pytest.mark.asyncio
async def test_discovery_failure_raises_on_enter() -> None:
    transport = FakeTransport()
    transport.serve(_ROOT, HttpResponse(status=500, text="down"))

    with pytest.raises(GbfsDiscoveryError):
        async with GbfsClient(_config(), transport=transport, clock=FakeClock()):
            pass


@pytest.mark.asyncio
async def test_strict_language_raises_on_enter() -> None:
    transport = FakeTransport()
    _system(transport)
    config = _config(preferred_language="de", language_fallback=LanguageFallback.STRICT)

    with pytest.raises(GbfsDiscoveryError, match="de"):
        async with GbfsClient(config, transport=transport, clock=FakeClock()):
            pass


@pytest.mark.asyncio
async def test_no_matching_feeds_raises() -> None:
    transport = FakeTransport()
    transport.serve(_ROOT, discovery("gbfs_versions"))

    with pytest.raises(GbfsDiscoveryError, match="No feeds"):
        await GbfsClient(_config(), transport=transport, clock=FakeClock()).start()


@pytest.mark.asyncio
async def test_subscribe_streams_until_close() -> None:
    transport = FakeTransport()
    _system(transport)
    clock = FakeClock()
    client = GbfsClient(_config(feeds=frozenset({FeedType.STATION_STATUS})), transport=transport, clock=clock)
    received: list[Snapshot] = []

    async def consume() -> None:
        async for snapshot in client.subscribe(FeedType.STATION_STATUS):
            received.append(snapshot)

    consumer = asyncio.create_task(consume())
    await client.start()
    await eventually(lambda: len(received) == 1)
    await client.close()
    await asyncio.wait_for(consumer, timeout=1.0)

    assert received[0].feed_type == FeedType.STATION_STATUS
    with pytest.raises(GbfsError):
        await client.start()


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_end_to_end_over_http() -> None:
    app = web.Application()
    server = test_utils.TestServer(app)

    async def root(request: web.Request) -> web.Response:
        base = str(server.make_url("/")).rstrip("/")
        return web.json_response(
            {
                "last_updated": 1,
                "ttl": 0,
                "data": {
                    "en": {
                        "feeds": [
                            {"name": "station_information", "url": f"{base}/si.json"},
                            {"name": "station_status", "url": f"{base}/ss.json"},
                        ]
                    }
                },
            }
        )

    async def si(request: web.Request) -> web.Response:
        return web.json_response(envelope(station_information_data("S1", "S2"), ttl=600))

    async def ss(request: web.Request) -> web.Response:
        return web.json_response(envelope(station_status_data("S1"), ttl=600))

    app.router.add_get("/gbfs.json", root)
    app.router.add_get("/si.json", si)
    app.router.add_get("/ss.json", ss)

    async with server:
        config = GbfsConfig(discovery_url=str(server.make_url("/gbfs.json")))
        async with GbfsClient(config) as client:
            await eventually(
                lambda: all(client.get_snapshot(d.name) is not None for d in client.feeds),
                timeout=5.0,
            )
            status = client.get_snapshot(FeedType.STATION_STATUS)
            assert status is not None
            assert status.envelope.ttl == 600
            assert client.get_health()[FeedType.STATION_STATUS].dangling_reference_count == 0
