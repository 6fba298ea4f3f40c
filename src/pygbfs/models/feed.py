"""Feed kinds, descriptors and file envelopes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, field_validator

from pygbfs.models._base import GbfsBaseModel, timestamp_to_datetime


class FeedType(StrEnum):
    SYSTEM_INFORMATION = "system_information"
    STATION_INFORMATION = "station_information"
    STATION_STATUS = "station_status"
    FREE_BIKE_STATUS = "free_bike_status"
    SYSTEM_HOURS = "system_hours"
    SYSTEM_CALENDAR = "system_calendar"
    SYSTEM_REGIONS = "system_regions"
    SYSTEM_PRICING_PLANS = "system_pricing_plans"
    SYSTEM_ALERTS = "system_alerts"


class FeedDescriptor(BaseModel):
    """One feed published by auto-discovery, in one language."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: FeedType
    url: str
    language: str


def _ensure_tz_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class RawEnvelope(BaseModel):
    """A GBFS file as fetched, before the ``data`` block is validated.

    Parameters
    ----------
    last_updated : int
        POSIX time the publisher last updated the feed.
    ttl : int
        Seconds until the publisher expects to update it again.  ``0``
        means always refresh.
    data : dict
        The feed-specific payload, unvalidated.
    fetched_at : datetime
        When the response was received.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    last_updated: int = Field(ge=0)
    ttl: int = Field(ge=0)
    data: dict[str, Any]
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("fetched_at")
    @classmethod
    def _fetched_at_tz(cls, value: datetime) -> datetime:
        return _ensure_tz_aware(value)


class FeedEnvelope(BaseModel):
    """A validated GBFS file.  Replaced wholesale on every accepted fetch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    last_updated: int
    ttl: int
    data: SerializeAsAny[GbfsBaseModel]
    fetched_at: datetime

    @field_validator("fetched_at")
    @classmethod
    def _fetched_at_tz(cls, value: datetime) -> datetime:
        return _ensure_tz_aware(value)

    @property
    def last_updated_at(self) -> datetime:
        return timestamp_to_datetime(self.last_updated)

    @property
    def expires_at(self) -> datetime:
        """When the next fetch is due (``fetched_at + ttl``)."""
        return self.fetched_at + timedelta(seconds=self.ttl)

    @classmethod
    def from_raw(cls, raw: RawEnvelope, data: GbfsBaseModel) -> FeedEnvelope:
        return cls(last_updated=raw.last_updated, ttl=raw.ttl, data=data, fetched_at=raw.fetched_at)
