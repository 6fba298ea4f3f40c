"""Data models for GBFS feeds."""

from pygbfs.models._base import GbfsBaseModel, timestamp_to_datetime
from pygbfs.models.alert import Alert, AlertTime, AlertType, SystemAlertsData
from pygbfs.models.bike import BikeStatus, FreeBikeStatusData
from pygbfs.models.feed import FeedDescriptor, FeedEnvelope, FeedType, RawEnvelope
from pygbfs.models.station import (
    RentalMethod,
    Station,
    StationInformationData,
    StationStatus,
    StationStatusData,
)
from pygbfs.models.system import (
    CalendarEntry,
    Day,
    HoursEntry,
    PricingPlan,
    Region,
    SystemCalendarData,
    SystemHoursData,
    SystemInformation,
    SystemPricingPlansData,
    SystemRegionsData,
    UserType,
)

#: The ``data`` model for each feed kind.
DATA_MODELS: dict[FeedType, type[GbfsBaseModel]] = {
    FeedType.SYSTEM_INFORMATION: SystemInformation,
    FeedType.STATION_INFORMATION: StationInformationData,
    FeedType.STATION_STATUS: StationStatusData,
    FeedType.FREE_BIKE_STATUS: FreeBikeStatusData,
    FeedType.SYSTEM_HOURS: SystemHoursData,
    FeedType.SYSTEM_CALENDAR: SystemCalendarData,
    FeedType.SYSTEM_REGIONS: SystemRegionsData,
    FeedType.SYSTEM_PRICING_PLANS: SystemPricingPlansData,
    FeedType.SYSTEM_ALERTS: SystemAlertsData,
}

__all__ = [
    "DATA_MODELS",
    "Alert",
    "AlertTime",
    "AlertType",
    "BikeStatus",
    "CalendarEntry",
    "Day",
    "FeedDescriptor",
    "FeedEnvelope",
    "FeedType",
    "FreeBikeStatusData",
    "GbfsBaseModel",
    "HoursEntry",
    "PricingPlan",
    "RawEnvelope",
    "Region",
    "RentalMethod",
    "Station",
    "StationInformationData",
    "StationStatus",
    "StationStatusData",
    "SystemAlertsData",
    "SystemCalendarData",
    "SystemHoursData",
    "SystemInformation",
    "SystemPricingPlansData",
    "SystemRegionsData",
    "UserType",
    "timestamp_to_datetime",
]
