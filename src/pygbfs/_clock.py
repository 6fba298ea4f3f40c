"""Owned timer used for every wait in the library.

The scheduler and fetcher never call ``asyncio.sleep`` or ``datetime.now``
directly; they go through a :class:`Clock`.  Tests pass a fake clock and
move virtual time forward instead of waiting on the wall clock.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    async def sleep(self, seconds: float) -> None:
        """Wait *seconds*.  Must be cancellable and yield even for ``0``."""
        ...


class SystemClock:
    """Wall-clock implementation backed by the running event loop."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
