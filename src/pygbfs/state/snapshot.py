"""Snapshot and health records exposed to readers."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pygbfs.models.feed import FeedEnvelope, FeedType
from pygbfs.validation.violations import Violation


class FeedState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    VALIDATING = "validating"
    READY = "ready"
    FAILED = "failed"
    WAITING = "waiting"
    STOPPED = "stopped"


class DanglingReference(BaseModel):
    """An id used by *source_feed* that *target_feed* does not define."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    source_feed: FeedType
    field: str
    ref_id: str
    target_feed: FeedType


class Snapshot(BaseModel):
    """Latest accepted state of one feed.

    Parameters
    ----------
    feed_type : FeedType
        Which feed this is.
    envelope : FeedEnvelope
        Validated file, including the typed ``data``.
    violations : tuple[Violation, ...]
        Soft violations found when the envelope was accepted.
    dangling_references : tuple[DanglingReference, ...]
        References from this feed into feeds that do not define the id.
        Empty until the referenced feeds have been published.
    published_at : datetime
        When the store accepted the envelope.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    feed_type: FeedType
    envelope: FeedEnvelope
    violations: tuple[Violation, ...] = ()
    dangling_references: tuple[DanglingReference, ...] = ()
    published_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def last_updated(self) -> int:
        return self.envelope.last_updated

    @property
    def dangling_reference_count(self) -> int:
        return len(self.dangling_references)


class FeedHealth(BaseModel):
    """Point-in-time health of one feed.

    ``degraded`` is set after ``degraded_threshold`` consecutive failed
    cycles and cleared by the next success; the last good snapshot keeps
    being served meanwhile.  ``last_violations`` holds the hard violations
    of the most recent rejected payload.  ``anomalies`` counts envelopes
    refused because ``last_updated`` went backwards.  Such a refusal still
    ends the cycle as a success (it clears ``degraded`` and
    ``consecutive_failures``), so read ``anomalies`` alongside ``degraded``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    feed_type: FeedType
    state: FeedState = FeedState.IDLE
    degraded: bool = False
    last_success_time: datetime | None = None
    last_attempt_time: datetime | None = None
    consecutive_failures: int = 0
    dangling_reference_count: int = 0
    last_error: str | None = None
    last_violations: tuple[Violation, ...] = ()
    anomalies: int = 0
