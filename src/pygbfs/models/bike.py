"""Free-floating bike model."""

from __future__ import annotations

from pygbfs.models._base import Bit, GbfsBaseModel, Latitude, Longitude, StringID


class BikeStatus(GbfsBaseModel):
    """A bike that is parked outside a station and not mid-ride."""

    bike_id: StringID
    lat: Latitude
    lon: Longitude
    is_reserved: Bit
    is_disabled: Bit


class FreeBikeStatusData(GbfsBaseModel):
    bikes: list[BikeStatus]

    @property
    def available(self) -> list[BikeStatus]:
        """Bikes that are neither reserved nor disabled."""
        return [bike for bike in self.bikes if not bike.is_reserved and not bike.is_disabled]
