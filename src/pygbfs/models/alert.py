"""System alert models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pygbfs.models._base import GbfsBaseModel, StringID, Text, Timestamp, Url, timestamp_to_datetime


class AlertType(StrEnum):
    SYSTEM_CLOSURE = "SYSTEM_CLOSURE"
    STATION_CLOSURE = "STATION_CLOSURE"
    STATION_MOVE = "STATION_MOVE"
    OTHER = "OTHER"


class AlertTime(GbfsBaseModel):
    """When an alert is in effect.  ``end`` is omitted for open-ended alerts."""

    start: Timestamp
    end: Timestamp | None = None

    def contains(self, moment: datetime) -> bool:
        if moment < timestamp_to_datetime(self.start):
            return False
        return self.end is None or moment <= timestamp_to_datetime(self.end)


class Alert(GbfsBaseModel):
    """A customer-facing alert.

    When both ``station_ids`` and ``region_ids`` are omitted the alert
    applies to the whole system.  When ``times`` is omitted it is shown
    for as long as it is in the feed.
    """

    alert_id: StringID
    type: AlertType
    times: list[AlertTime] | None = None
    station_ids: list[StringID] | None = None
    region_ids: list[StringID] | None = None
    url: Url | None = None
    summary: Text
    description: Text | None = None
    last_updated: Timestamp | None = None

    @property
    def is_system_wide(self) -> bool:
        return not self.station_ids and not self.region_ids

    def is_active(self, moment: datetime) -> bool:
        if not self.times:
            return True
        return any(window.contains(moment) for window in self.times)


class SystemAlertsData(GbfsBaseModel):
    alerts: list[Alert]

    def active(self, moment: datetime) -> list[Alert]:
        return [alert for alert in self.alerts if alert.is_active(moment)]
