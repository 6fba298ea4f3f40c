from __future__ import annotations

import asyncio
from collections.abc import Iterable

import pytest
from fakes import (
    T0,
    FakeClock,
    FakeTransport,
    Hang,
    envelope,
    eventually,
    feed_url,
    station_information_data,
    station_status_data,
)

from pygbfs._transport import HttpResponse
from pygbfs.config import RetryPolicy
from pygbfs.fetcher import FeedFetcher
from pygbfs.linker import CrossFeedLinker
from pygbfs.models.feed import FeedDescriptor, FeedEnvelope, FeedType
from pygbfs.scheduler import FeedScheduler
from pygbfs.state.snapshot import FeedState
from pygbfs.state.store import SnapshotStore
from pygbfs.validation import validate_feed

_STATUS = feed_url("station_status")
_INFO = feed_url("station_information")


def _scheduler(
    transport: FakeTransport,
    clock: FakeClock,
    feeds: Iterable[FeedType] = (FeedType.STATION_STATUS,),
    *,
    threshold: int = 3,
) -> tuple[FeedScheduler, SnapshotStore]:
    store = SnapshotStore(clock=clock)
    fetcher = FeedFetcher(
        transport,
        timeout=1.0,
        retry=RetryPolicy(max_attempts=1),
        clock=clock,
        slots=asyncio.Semaphore(2),
    )
    descriptors = [FeedDescriptor(name=feed, url=feed_url(feed), language="en") for feed in feeds]
    scheduler = FeedScheduler(
        descriptors,
        fetcher,
        store,
        CrossFeedLinker(store),
        clock=clock,
        degraded_threshold=threshold,
        failure_interval=30.0,
    )
    return scheduler, store


async def _next_wait(transport: FakeTransport, clock: FakeClock, fetches: int) -> None:
    """Wait until *fetches* GETs happened and the feed is sleeping again."""
    await eventually(lambda: transport.count(_STATUS) == fetches and clock.pending == 1)


@pytest.mark.asyncio
async def test_ttl_zero_refetches_without_waiting() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, envelope(station_status_data("A"), ttl=0))
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)

    scheduler.start()
    try:
        await eventually(lambda: transport.count(_STATUS) >= 3)
    finally:
        await scheduler.stop()

    assert store.get(FeedType.STATION_STATUS) is not None
    assert clock.sleeps
    assert all(delay == 0.0 for delay in clock.sleeps)


@pytest.mark.asyncio
async def test_next_fetch_waits_for_ttl() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, envelope(station_status_data("A"), ttl=60))
    clock = FakeClock()
    scheduler, _ = _scheduler(transport, clock)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        assert clock.sleeps == [60.0]
        assert scheduler.health()[FeedType.STATION_STATUS].state == FeedState.WAITING

        clock.advance(59)
        await asyncio.sleep(0.01)
        assert transport.count(_STATUS) == 1

        clock.advance(1)
        await _next_wait(transport, clock, 2)
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_failed_cycle_keeps_previous_snapshot() -> None:
    transport = FakeTransport()
    transport.serve(
        _STATUS,
        envelope(station_status_data("A"), ttl=60),
        HttpResponse(status=500, text="boom"),
    )
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        before = store.get(FeedType.STATION_STATUS)

        clock.advance(60)
        await _next_wait(transport, clock, 2)
    finally:
        await scheduler.stop()

    assert before is not None
    assert store.get(FeedType.STATION_STATUS) is before
    health = scheduler.health()[FeedType.STATION_STATUS]
    assert health.consecutive_failures == 1
    assert not health.degraded
    assert health.last_error is not None and "HTTP 500" in health.last_error
    # the last known ttl drives the retry wait
    assert clock.sleeps == [60.0, 60.0]


@pytest.mark.asyncio
async def test_rejected_payload_keeps_previous_snapshot() -> None:
    transport = FakeTransport()
    transport.serve(
        _STATUS,
        envelope(station_status_data("A"), ttl=60),
        envelope(station_status_data("A", "A"), last_updated=T0 + 60, ttl=60),
    )
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        clock.advance(60)
        await _next_wait(transport, clock, 2)
    finally:
        await scheduler.stop()

    snapshot = store.get(FeedType.STATION_STATUS)
    assert snapshot is not None
    assert snapshot.last_updated == T0
    health = scheduler.health()[FeedType.STATION_STATUS]
    assert [v.message for v in health.last_violations] == ["duplicate id: A"]
    assert health.consecutive_failures == 1


@pytest.mark.asyncio
async def test_degraded_after_threshold_and_cleared_on_success() -> None:
    transport = FakeTransport()
    transport.serve(
        _STATUS,
        envelope(station_status_data("A"), ttl=60),
        HttpResponse(status=503, text="busy"),
        HttpResponse(status=503, text="busy"),
        envelope(station_status_data("A"), last_updated=T0 + 180, ttl=60),
    )
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock, threshold=2)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        clock.advance(60)
        await _next_wait(transport, clock, 2)
        assert not scheduler.health()[FeedType.STATION_STATUS].degraded

        clock.advance(60)
        await _next_wait(transport, clock, 3)
        degraded = scheduler.health()[FeedType.STATION_STATUS]
        assert degraded.degraded
        assert degraded.consecutive_failures == 2
        snapshot = store.get(FeedType.STATION_STATUS)
        assert snapshot is not None and snapshot.last_updated == T0

        clock.advance(60)
        await _next_wait(transport, clock, 4)
    finally:
        await scheduler.stop()

    recovered = scheduler.health()[FeedType.STATION_STATUS]
    assert not recovered.degraded
    assert recovered.consecutive_failures == 0
    assert recovered.last_error is None
    assert recovered.last_success_time == clock.now()


@pytest.mark.asyncio
async def test_last_updated_regression_counts_anomaly() -> None:
    transport = FakeTransport()
    transport.serve(
        _STATUS,
        envelope(station_status_data("A"), last_updated=T0 + 10, ttl=60),
        envelope(station_status_data("B"), last_updated=T0, ttl=60),
    )
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        clock.advance(60)
        await _next_wait(transport, clock, 2)
    finally:
        await scheduler.stop()

    snapshot = store.get(FeedType.STATION_STATUS)
    assert snapshot is not None and snapshot.last_updated == T0 + 10
    health = scheduler.health()[FeedType.STATION_STATUS]
    assert health.anomalies == 1
    assert health.consecutive_failures == 0


@pytest.mark.asyncio
async def test_unexpected_error_is_a_failure_not_a_crash() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, RuntimeError("boom"), envelope(station_status_data("A"), ttl=60))
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)

    scheduler.start()
    try:
        await _next_wait(transport, clock, 1)
        assert scheduler.health()[FeedType.STATION_STATUS].consecutive_failures == 1
        assert clock.sleeps == [30.0]

        clock.advance(30)
        await _next_wait(transport, clock, 2)
    finally:
        await scheduler.stop()

    assert store.get(FeedType.STATION_STATUS) is not None
    assert scheduler.health()[FeedType.STATION_STATUS].consecutive_failures == 0


@pytest.mark.asyncio
async def test_linker_runs_after_publish() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, envelope(station_status_data("S1", "S2"), ttl=60))
    transport.serve(_INFO, envelope(station_information_data("S2"), ttl=60))
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock, (FeedType.STATION_STATUS, FeedType.STATION_INFORMATION))

    scheduler.start()
    try:
        await eventually(lambda: clock.pending == 2)
    finally:
        await scheduler.stop()

    health = scheduler.health()
    assert health[FeedType.STATION_STATUS].dangling_reference_count == 1
    assert health[FeedType.STATION_INFORMATION].dangling_reference_count == 0
    assert store.get(FeedType.STATION_INFORMATION) is not None


@pytest.mark.asyncio
async def test_stop_cancels_waits_and_in_flight_fetches() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, envelope(station_status_data("A"), ttl=60))
    transport.serve(_INFO, Hang())
    clock = FakeClock()
    scheduler, _ = _scheduler(transport, clock, (FeedType.STATION_STATUS, FeedType.STATION_INFORMATION))

    scheduler.start()
    await eventually(lambda: clock.pending == 1 and transport.count(_INFO) == 1)
    assert scheduler.health()[FeedType.STATION_INFORMATION].state == FeedState.FETCHING

    await asyncio.wait_for(scheduler.stop(), timeout=0.5)

    assert not scheduler.running
    assert {h.state for h in scheduler.health().values()} == {FeedState.STOPPED}


def test_duplicate_feed_rejected() -> None:
    transport = FakeTransport()
    clock = FakeClock()
    store = SnapshotStore()
    fetcher = FeedFetcher(transport, timeout=1.0, clock=clock)
    descriptor = FeedDescriptor(name=FeedType.STATION_STATUS, url=_STATUS, language="en")

    with pytest.raises(ValueError):
        FeedScheduler([descriptor, descriptor], fetcher, store, CrossFeedLinker(store), clock=clock)


@pytest.mark.asyncio
async def test_streamed_snapshot_carries_its_dangling_references() -> None:
    transport = FakeTransport()
    transport.serve(_STATUS, envelope(station_status_data("S1", "B"), ttl=60))
    clock = FakeClock()
    scheduler, store = _scheduler(transport, clock)
    info = validate_feed(FeedType.STATION_INFORMATION, station_information_data("B"))
    assert info.data is not None
    store.publish(
        FeedType.STATION_INFORMATION,
        FeedEnvelope(last_updated=T0, ttl=60, data=info.data, fetched_at=clock.now()),
        info,
    )

    stream = store.subscribe(FeedType.STATION_STATUS)
    pending = asyncio.create_task(anext(stream))
    await asyncio.sleep(0)
    scheduler.start()
    try:
        streamed = await asyncio.wait_for(pending, timeout=2.0)
    finally:
        await scheduler.stop()
        await stream.aclose()

    current = store.get(FeedType.STATION_STATUS)
    assert current is not None
    assert streamed.dangling_reference_count == 1
    assert streamed.dangling_references == current.dangling_references
    assert [ref.ref_id for ref in streamed.dangling_references] == ["S1"]


class _CountingTransport(FakeTransport):
    """Tracks how many GETs are in flight at once."""

    def __init__(self) -> None:
        super().__init__()
        self.in_flight = 0
        self.peak = 0

    async def get(self, url: str, *, timeout: float) -> HttpResponse:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().get(url, timeout=timeout)
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
async def test_in_flight_fetches_stay_within_worker_slots() -> None:
    transport = _CountingTransport()
    transport.serve(_STATUS, envelope(station_status_data("A"), ttl=60))
    transport.serve(_INFO, envelope(station_information_data("A"), ttl=60))
    clock = FakeClock()
    scheduler, _ = _scheduler(transport, clock, list(FeedType))

    scheduler.start()
    try:
        await eventually(lambda: clock.pending == len(FeedType))
    finally:
        await scheduler.stop()

    assert len(transport.calls) == len(FeedType)
    assert transport.peak == 2
