"""Deterministic publication and scheduling policy.

This module intentionally contains *no* I/O and no payload parsing; the
store and the scheduler ask it what to do.
"""

from __future__ import annotations

from datetime import datetime


def should_accept_envelope(*, cached_last_updated: int | None, incoming_last_updated: int) -> bool:
    """Accept when there is nothing cached or ``last_updated`` did not go back.

    Equal timestamps are accepted: publishers often re-serve an unchanged
    file with a fresh ttl.
    """
    if cached_last_updated is None:
        return True
    return incoming_last_updated >= cached_last_updated


def next_fetch_delay(*, fetched_at: datetime, ttl: int, now: datetime) -> float:
    """Seconds until ``fetched_at + ttl``, never negative.  ``ttl=0`` gives 0."""
    if ttl <= 0:
        return 0.0
    remaining = ttl - (now - fetched_at).total_seconds()
    return max(0.0, remaining)


def failure_delay(*, last_ttl: int | None, failure_interval: float) -> float:
    """Wait after a failed cycle: the last known positive ttl, else the fallback interval."""
    if last_ttl is not None and last_ttl > 0:
        return float(last_ttl)
    return failure_interval


def is_degraded(consecutive_failures: int, threshold: int) -> bool:
    return consecutive_failures >= threshold
