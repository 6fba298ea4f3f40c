"""Latest-known-good snapshot per feed.

This is the only component allowed to replace a feed's published state.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from typing import Final

from pygbfs._clock import Clock, SystemClock
from pygbfs.models.feed import FeedEnvelope, FeedType
from pygbfs.state.policy import should_accept_envelope
from pygbfs.state.snapshot import DanglingReference, Snapshot
from pygbfs.validation.violations import ValidationResult

_logger = logging.getLogger(__name__)

_CLOSED: Final = object()


def _offer(queue: asyncio.Queue[object], item: object) -> None:
    """Enqueue without blocking; a full queue loses its oldest entry."""
    if queue.full():
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
    queue.put_nowait(item)


class SnapshotStore:
    """In-memory store of accepted feed snapshots.

    Snapshots are immutable and replaced by reference, so :meth:`get` never
    returns a partially written value and never waits for a writer.
    Writers (:meth:`publish`, :meth:`annotate`, :meth:`close`) serialize on
    a lock and must run on the event loop that owns the subscriptions.
    """

    def __init__(self, *, clock: Clock | None = None, subscriber_queue_size: int = 16) -> None:
        self._clock = clock or SystemClock()
        self._subscriber_queue_size = subscriber_queue_size
        self._snapshots: dict[FeedType, Snapshot] = {}
        self._subscribers: defaultdict[FeedType, set[asyncio.Queue[object]]] = defaultdict(set)
        self._write_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, feed_type: FeedType) -> Snapshot | None:
        """Latest accepted snapshot, or ``None`` before the first one."""
        return self._snapshots.get(feed_type)

    def has(self, feed_type: FeedType) -> bool:
        return feed_type in self._snapshots

    def snapshots(self) -> dict[FeedType, Snapshot]:
        """Current snapshot of every published feed."""
        return dict(self._snapshots)

    def publish(
        self,
        feed_type: FeedType,
        envelope: FeedEnvelope,
        result: ValidationResult,
        dangling_references: Iterable[DanglingReference] | None = None,
    ) -> bool:
        """Replace *feed_type*'s snapshot with an accepted envelope.

        Returns ``False`` and keeps the current snapshot when the envelope is
        older (by ``last_updated``) than the one already published.
        Subscribers receive the snapshot with *dangling_references* already
        attached; when omitted, the current metadata carries over until the
        linker recomputes it.
        """
        if not result.accepted:
            raise ValueError(f"cannot publish a rejected {feed_type} payload")
        if result.feed_type != feed_type:
            raise ValueError(f"validation result is for {result.feed_type}, not {feed_type}")

        with self._write_lock:
            if self._closed:
                _logger.debug("Store closed; dropping %s update", feed_type)
                return False
            current = self._snapshots.get(feed_type)
            if not should_accept_envelope(
                cached_last_updated=current.last_updated if current is not None else None,
                incoming_last_updated=envelope.last_updated,
            ):
                _logger.warning(
                    "%s last_updated went backwards (%d -> %d); keeping the newer snapshot",
                    feed_type,
                    current.last_updated if current is not None else -1,
                    envelope.last_updated,
                )
                return False

            if dangling_references is not None:
                refs = tuple(dangling_references)
            else:
                refs = current.dangling_references if current is not None else ()
            snapshot = Snapshot(
                feed_type=feed_type,
                envelope=envelope,
                violations=result.soft_violations,
                dangling_references=refs,
                published_at=self._clock.now(),
            )
            self._snapshots[feed_type] = snapshot
            for queue in self._subscribers.get(feed_type, ()):
                _offer(queue, snapshot)

        _logger.debug("Published %s last_updated=%d ttl=%d", feed_type, envelope.last_updated, envelope.ttl)
        return True

    def annotate(self, feed_type: FeedType, references: Iterable[DanglingReference]) -> Snapshot | None:
        """Replace the dangling-reference metadata of *feed_type*'s snapshot.

        Not an accepted update: subscribers are not notified.
        """
        refs = tuple(references)
        with self._write_lock:
            current = self._snapshots.get(feed_type)
            if current is None:
                return None
            if current.dangling_references == refs:
                return current
            updated = current.model_copy(update={"dangling_references": refs})
            self._snapshots[feed_type] = updated
            return updated

    async def subscribe(self, feed_type: FeedType, *, replay_latest: bool = True) -> AsyncIterator[Snapshot]:
        """Yield *feed_type*'s snapshot on every accepted update.

        Registration happens on first iteration.  With *replay_latest* the
        current snapshot, if any, is yielded first.  Each call is an
        independent sequence; all of them end when the store is closed.
        """
        if self._closed:
            return
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=self._subscriber_queue_size)
        with self._write_lock:
            self._subscribers[feed_type].add(queue)
            current = self._snapshots.get(feed_type)
        try:
            if replay_latest and current is not None:
                yield current
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                assert isinstance(item, Snapshot)  # noqa: S101
                yield item
        finally:
            with self._write_lock:
                self._subscribers[feed_type].discard(queue)

    def close(self) -> None:
        """End every subscription.  Snapshots stay readable."""
        with self._write_lock:
            if self._closed:
                return
            self._closed = True
            for queues in self._subscribers.values():
                for queue in queues:
                    _offer(queue, _CLOSED)
