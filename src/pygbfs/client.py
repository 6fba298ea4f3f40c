"""High-level async client for GBFS ingestion."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from pygbfs._clock import Clock, SystemClock
from pygbfs._transport import HttpTransport, Transport
from pygbfs.config import GbfsConfig
from pygbfs.discovery import AutoDiscoveryResolver
from pygbfs.exceptions import GbfsDiscoveryError, GbfsError
from pygbfs.fetcher import FeedFetcher
from pygbfs.linker import CrossFeedLinker
from pygbfs.models.feed import FeedDescriptor, FeedType
from pygbfs.scheduler import FeedScheduler
from pygbfs.state.snapshot import FeedHealth, Snapshot
from pygbfs.state.store import SnapshotStore

_logger = logging.getLogger(__name__)


class GbfsClient:
    """Keep the feeds of one GBFS system fresh and validated in memory.

    Usage::

        async with GbfsClient(GbfsConfig(discovery_url=url)) as client:
            snapshot = client.get_snapshot(FeedType.STATION_STATUS)
            async for update in client.subscribe(FeedType.STATION_STATUS):
                ...

    Auto-discovery runs once on entry; :class:`GbfsDiscoveryError` is the
    only ingestion error that reaches the caller.  Afterwards failures are
    reported through :meth:`get_health` while the last good snapshot keeps
    being served.

    Parameters
    ----------
    config : GbfsConfig
        Client configuration.
    session : aiohttp.ClientSession or None
        Reused when given and left open on exit.
    transport : Transport or None
        Replaces the aiohttp transport entirely (tests, custom stacks).
    clock : Clock or None
        Owned timer for every wait.
    """

    def __init__(
        self,
        config: GbfsConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._clock = clock or SystemClock()
        self._store = SnapshotStore(clock=self._clock)
        self._scheduler: FeedScheduler | None = None
        self._language: str | None = None
        self._feeds: list[FeedDescriptor] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GbfsClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        """Resolve auto-discovery and start ingesting the selected feeds.

        Raises
        ------
        GbfsDiscoveryError
            The root is unreachable, malformed, lists no usable language, or
            leaves no feed to ingest after ``config.feeds`` filtering.
        """
        if self._store.closed:
            raise GbfsError("Client already closed; create a new GbfsClient")
        if self._scheduler is not None:
            return

        fetcher = FeedFetcher(
            self._require_transport(),
            timeout=self._config.timeout_seconds,
            retry=self._config.retry,
            clock=self._clock,
            slots=asyncio.Semaphore(self._config.max_concurrent_fetches),
        )
        try:
            language, descriptors = await AutoDiscoveryResolver(fetcher).resolve_language(
                self._config.discovery_url,
                self._config.preferred_language,
                self._config.language_fallback,
            )
            feeds = [d for d in descriptors if self._config.wants(d.name)]
            if not feeds:
                raise GbfsDiscoveryError(f"No feeds to ingest for language {language!r}")
        except BaseException:
            await self._close_http_session()
            raise

        self._language = language
        self._feeds = feeds
        self._scheduler = FeedScheduler(
            feeds,
            fetcher,
            self._store,
            CrossFeedLinker(self._store),
            clock=self._clock,
            degraded_threshold=self._config.degraded_threshold,
            failure_interval=self._config.failure_interval,
        )
        self._scheduler.start()
        _logger.info(
            "Ingesting %d feeds in %r: %s",
            len(feeds),
            language,
            ", ".join(d.name for d in feeds),
        )

    async def close(self) -> None:
        """Stop every feed, end subscriptions and release the HTTP session."""
        if self._scheduler is not None:
            await self._scheduler.stop()
        self._store.close()
        await self._close_http_session()

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def language(self) -> str | None:
        """Language selected from auto-discovery, once started."""
        return self._language

    @property
    def feeds(self) -> list[FeedDescriptor]:
        """Descriptors being ingested, once started."""
        return list(self._feeds)

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def get_snapshot(self, feed_type: FeedType) -> Snapshot | None:
        """Latest accepted snapshot of *feed_type*, or ``None`` before the first one."""
        return self._store.get(feed_type)

    def subscribe(self, feed_type: FeedType, *, replay_latest: bool = True) -> AsyncIterator[Snapshot]:
        """Async iterator over accepted snapshots of *feed_type*; ends on close."""
        return self._store.subscribe(feed_type, replay_latest=replay_latest)

    def get_health(self) -> dict[FeedType, FeedHealth]:
        """Per-feed health.  Empty before :meth:`start`."""
        if self._scheduler is None:
            return {}
        return self._scheduler.health()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._http_session, user_agent=self._config.user_agent)
        return self._transport

    async def _close_http_session(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None
