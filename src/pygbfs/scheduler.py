"""Per-feed refresh cycles.

Each feed runs as its own task::

    Idle -> Fetching -> Validating -> Ready -> Waiting(ttl) -> Fetching ...
                  \\-> Failed -> Waiting(retry) -/

Degraded is a flag on top of that state machine, not a state of its own.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterable
from datetime import datetime

from pygbfs._clock import Clock, SystemClock
from pygbfs.exceptions import GbfsFetchError, GbfsValidationError
from pygbfs.fetcher import FeedFetcher
from pygbfs.linker import CrossFeedLinker
from pygbfs.models.feed import FeedDescriptor, FeedEnvelope, FeedType, RawEnvelope
from pygbfs.state.policy import failure_delay, is_degraded, next_fetch_delay
from pygbfs.state.snapshot import FeedHealth, FeedState
from pygbfs.state.store import SnapshotStore
from pygbfs.validation.validator import FeedValidator
from pygbfs.validation.violations import Violation

_logger = logging.getLogger(__name__)


@dataclasses.dataclass
class _FeedTracker:
    """Mutable bookkeeping for one feed.  Only its own task writes to it."""

    descriptor: FeedDescriptor
    state: FeedState = FeedState.IDLE
    degraded: bool = False
    consecutive_failures: int = 0
    last_success_time: datetime | None = None
    last_attempt_time: datetime | None = None
    last_ttl: int | None = None
    last_error: str | None = None
    last_violations: tuple[Violation, ...] = ()
    anomalies: int = 0


class FeedScheduler:
    """Drive fetch -> validate -> publish -> link for every feed.

    Parameters
    ----------
    descriptors : Iterable[FeedDescriptor]
        Feeds to ingest, at most one per feed type.
    fetcher : FeedFetcher
        Shared fetcher; its worker slots bound concurrency across feeds.
    store : SnapshotStore
        Where accepted snapshots are published.
    linker : CrossFeedLinker
        Run after every accepted update.
    validator : FeedValidator or None
        Defaults to a fresh :class:`FeedValidator`.
    clock : Clock or None
        Owned timer for every wait.
    degraded_threshold : int
        Consecutive failed cycles before a feed is flagged degraded.
    failure_interval : float
        Wait after a failed cycle when no positive ttl is known.
    """

    def __init__(
        self,
        descriptors: Iterable[FeedDescriptor],
        fetcher: FeedFetcher,
        store: SnapshotStore,
        linker: CrossFeedLinker,
        validator: FeedValidator | None = None,
        *,
        clock: Clock | None = None,
        degraded_threshold: int = 3,
        failure_interval: float = 30.0,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._linker = linker
        self._validator = validator or FeedValidator()
        self._clock = clock or SystemClock()
        self._degraded_threshold = degraded_threshold
        self._failure_interval = failure_interval
        self._trackers: dict[FeedType, _FeedTracker] = {}
        for descriptor in descriptors:
            if descriptor.name in self._trackers:
                raise ValueError(f"feed {descriptor.name} scheduled twice")
            self._trackers[descriptor.name] = _FeedTracker(descriptor)
        self._tasks: dict[FeedType, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def start(self) -> None:
        """Start one refresh task per feed.  Must be called from a running loop."""
        if self._tasks:
            return
        for feed_type, tracker in self._trackers.items():
            self._tasks[feed_type] = asyncio.create_task(
                self._run_feed(tracker),
                name=f"pygbfs-{feed_type}",
            )
        _logger.debug("Scheduler started %d feed tasks", len(self._tasks))

    async def stop(self) -> None:
        """Cancel every wait and in-flight fetch, then mark all feeds stopped."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for tracker in self._trackers.values():
            tracker.state = FeedState.STOPPED
        _logger.debug("Scheduler stopped")

    def health(self) -> dict[FeedType, FeedHealth]:
        """Point-in-time health of every scheduled feed."""
        result: dict[FeedType, FeedHealth] = {}
        for feed_type, tracker in self._trackers.items():
            snapshot = self._store.get(feed_type)
            result[feed_type] = FeedHealth(
                feed_type=feed_type,
                state=tracker.state,
                degraded=tracker.degraded,
                last_success_time=tracker.last_success_time,
                last_attempt_time=tracker.last_attempt_time,
                consecutive_failures=tracker.consecutive_failures,
                dangling_reference_count=snapshot.dangling_reference_count if snapshot is not None else 0,
                last_error=tracker.last_error,
                last_violations=tracker.last_violations,
                anomalies=tracker.anomalies,
            )
        return result

    async def _run_feed(self, tracker: _FeedTracker) -> None:
        try:
            while True:
                delay = await self._cycle(tracker)
                tracker.state = FeedState.WAITING
                _logger.debug("%s next fetch in %.1fs", tracker.descriptor.name, delay)
                await self._clock.sleep(delay)
        finally:
            tracker.state = FeedState.STOPPED

    async def _cycle(self, tracker: _FeedTracker) -> float:
        """Run one fetch/validate/publish cycle.  Returns the wait before the next one."""
        feed_type = tracker.descriptor.name
        tracker.state = FeedState.FETCHING
        tracker.last_attempt_time = self._clock.now()
        try:
            raw = await self._fetcher.fetch(tracker.descriptor.url)
            tracker.last_ttl = raw.ttl
            tracker.state = FeedState.VALIDATING
            published = await self._validate_and_publish(feed_type, raw)
        except GbfsValidationError as exc:
            _logger.warning("%s snapshot rejected: %s", feed_type, exc)
            tracker.last_violations = exc.violations
            return self._record_failure(tracker, exc)
        except GbfsFetchError as exc:
            _logger.warning("%s fetch failed (%s): %s", feed_type, exc.kind, exc)
            return self._record_failure(tracker, exc)
        except Exception as exc:
            _logger.exception("Unexpected error in %s cycle", feed_type)
            return self._record_failure(tracker, exc)

        if not published:
            tracker.anomalies += 1
        self._record_success(tracker, published)
        return next_fetch_delay(fetched_at=raw.fetched_at, ttl=raw.ttl, now=self._clock.now())

    async def _validate_and_publish(self, feed_type: FeedType, raw: RawEnvelope) -> bool:
        result = await asyncio.to_thread(self._validator.validate, feed_type, raw.data)
        data = result.raise_for_violations()
        if result.soft_violations:
            _logger.debug("%s accepted with %d warnings", feed_type, len(result.soft_violations))
        previous = self._store.get(feed_type)
        refs = self._linker.references_for(feed_type, data)
        published = self._store.publish(feed_type, FeedEnvelope.from_raw(raw, data), result, refs)
        if published:
            if previous is not None and previous.dangling_reference_count != len(refs):
                _logger.info(
                    "%s dangling references: %d -> %d",
                    feed_type,
                    previous.dangling_reference_count,
                    len(refs),
                )
            self._linker.on_update(feed_type)
        return published

    def _record_success(self, tracker: _FeedTracker, published: bool) -> None:
        if tracker.degraded:
            _logger.info(
                "%s recovered after %d failed cycles",
                tracker.descriptor.name,
                tracker.consecutive_failures,
            )
        tracker.state = FeedState.READY
        tracker.degraded = False
        tracker.consecutive_failures = 0
        tracker.last_error = None
        tracker.last_violations = ()
        if published:
            tracker.last_success_time = self._clock.now()

    def _record_failure(self, tracker: _FeedTracker, exc: Exception) -> float:
        tracker.state = FeedState.FAILED
        tracker.consecutive_failures += 1
        tracker.last_error = str(exc) or type(exc).__name__
        if not isinstance(exc, GbfsValidationError):
            tracker.last_violations = ()
        if not tracker.degraded and is_degraded(tracker.consecutive_failures, self._degraded_threshold):
            tracker.degraded = True
            _logger.warning(
                "%s degraded after %d consecutive failures; serving last good snapshot",
                tracker.descriptor.name,
                tracker.consecutive_failures,
            )
        return failure_delay(last_ttl=tracker.last_ttl, failure_interval=self._failure_interval)
