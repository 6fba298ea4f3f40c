"""Station information and station status models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pygbfs.models._base import (
    Bit,
    Count,
    GbfsBaseModel,
    Latitude,
    Longitude,
    StringID,
    Text,
    Timestamp,
    timestamp_to_datetime,
)


class RentalMethod(StrEnum):
    KEY = "KEY"
    """Operator issued bike key, fob or card."""
    CREDITCARD = "CREDITCARD"
    PAYPASS = "PAYPASS"
    APPLEPAY = "APPLEPAY"
    ANDROIDPAY = "ANDROIDPAY"
    TRANSITCARD = "TRANSITCARD"
    ACCOUNTNUMBER = "ACCOUNTNUMBER"
    PHONE = "PHONE"


class Station(GbfsBaseModel):
    """Static description of one docking station.

    Parameters
    ----------
    station_id : str
        Unique within ``station_information``.
    name : str
        Public name.
    lat, lon : float
        WGS 84 position in decimal degrees.
    region_id : str or None
        Id of the ``system_regions`` region the station belongs to.
    rental_methods : list[RentalMethod] or None
        Payment methods accepted at the station.
    capacity : int or None
        Docking points installed, available or not.
    """

    station_id: StringID
    name: Text
    short_name: Text | None = None
    lat: Latitude
    lon: Longitude
    address: Text | None = None
    cross_street: Text | None = None
    region_id: StringID | None = None
    post_code: Text | None = None
    rental_methods: list[RentalMethod] | None = None
    capacity: Count | None = None


class StationInformationData(GbfsBaseModel):
    stations: list[Station]

    def by_id(self) -> dict[str, Station]:
        return {station.station_id: station for station in self.stations}


class StationStatus(GbfsBaseModel):
    """Live availability of one station."""

    station_id: StringID
    num_bikes_available: Count
    num_bikes_disabled: Count | None = None
    num_docks_available: Count
    num_docks_disabled: Count | None = None
    is_installed: Bit
    is_renting: Bit
    is_returning: Bit
    last_reported: Timestamp

    @property
    def last_reported_at(self) -> datetime:
        return timestamp_to_datetime(self.last_reported)


class StationStatusData(GbfsBaseModel):
    stations: list[StationStatus]

    def by_id(self) -> dict[str, StationStatus]:
        return {status.station_id: status for status in self.stations}
