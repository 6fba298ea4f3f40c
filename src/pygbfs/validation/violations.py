"""Violation records and the validation result."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pygbfs.exceptions import GbfsValidationError
from pygbfs.models._base import GbfsBaseModel
from pygbfs.models.feed import FeedType


class Severity(StrEnum):
    HARD = "hard"
    """Snapshot is rejected."""
    SOFT = "soft"
    """Snapshot is accepted; the violation is kept as a warning."""


class ViolationCode(StrEnum):
    MISSING_FIELD = "missing_field"
    WRONG_TYPE = "wrong_type"
    INVALID_ENUM = "invalid_enum"
    OUT_OF_RANGE = "out_of_range"
    DUPLICATE_ID = "duplicate_id"
    DUPLICATE_HOURS = "duplicate_hours"
    INVALID_TIME_RANGE = "invalid_time_range"
    MISSING_RECOMMENDED = "missing_recommended"
    MALFORMED_ID = "malformed_id"
    MALFORMED_URL = "malformed_url"
    MALFORMED_VALUE = "malformed_value"
    TOO_MANY_ENTRIES = "too_many_entries"


class Violation(BaseModel):
    """One problem found in a feed payload.

    ``path`` points into the ``data`` block, e.g. ``stations[3].lat``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: ViolationCode
    severity: Severity
    path: str
    message: str

    @property
    def is_hard(self) -> bool:
        return self.severity == Severity.HARD


class ValidationResult(BaseModel):
    """Outcome of validating one feed payload.

    ``data`` is set only when there is no hard violation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    feed_type: FeedType
    data: GbfsBaseModel | None = None
    violations: tuple[Violation, ...] = Field(default_factory=tuple)

    @property
    def accepted(self) -> bool:
        return self.data is not None

    @property
    def hard_violations(self) -> tuple[Violation, ...]:
        return tuple(v for v in self.violations if v.is_hard)

    @property
    def soft_violations(self) -> tuple[Violation, ...]:
        return tuple(v for v in self.violations if not v.is_hard)

    def raise_for_violations(self) -> GbfsBaseModel:
        """Return the validated data or raise :class:`GbfsValidationError`."""
        if self.data is None:
            raise GbfsValidationError(self.feed_type, self.hard_violations)
        return self.data
