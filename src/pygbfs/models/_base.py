"""Base model and field types for GBFS documents.

Every GBFS record model inherits from :class:`GbfsBaseModel`, which is
frozen so a validated record can be shared between the scheduler, the
store and any number of readers without copying.

The ``Annotated`` aliases below carry the primitive-kind and range rules
from the GBFS contract.  They are ``Strict`` on purpose: a publisher that
sends ``"1"`` or ``true`` for a bit field, or an integer for a string id,
produces a violation instead of being silently coerced.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, Strict

StringID = Annotated[str, Strict(), Field(min_length=1)]
"""Identifier unique within its own feed array."""

Timestamp = Annotated[int, Strict(), Field(ge=0)]
"""POSIX seconds."""

Bit = Annotated[int, Strict(), Field(ge=0, le=1)]
"""GBFS 1/0 boolean."""

Latitude = Annotated[float, Strict(), Field(ge=-90.0, le=90.0)]
Longitude = Annotated[float, Strict(), Field(ge=-180.0, le=180.0)]

Count = Annotated[int, Strict(), Field(ge=0)]

Url = Annotated[str, Strict()]
"""Fully qualified URL.  Scheme checks are soft and live in the validator."""

Text = Annotated[str, Strict()]


def timestamp_to_datetime(value: int) -> datetime:
    """Convert a GBFS POSIX timestamp to a UTC datetime."""
    return datetime.fromtimestamp(value, tz=UTC)


class GbfsBaseModel(BaseModel):
    """Base for GBFS records.

    Unknown keys are ignored so feeds published against a newer GBFS
    minor version still validate.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )
