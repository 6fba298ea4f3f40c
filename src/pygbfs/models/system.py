"""System-wide models: information, hours, calendar, regions, pricing."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import Field, Strict

from pygbfs.models._base import Bit, GbfsBaseModel, StringID, Text, Url

# Start times stop at 23:59:59; end times may run into the next day.
_START_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d:[0-5]\d$"
_END_TIME_PATTERN = r"^([0-3]\d|4[0-7]):[0-5]\d:[0-5]\d$"

StartTime = Annotated[str, Strict(), Field(pattern=_START_TIME_PATTERN)]
EndTime = Annotated[str, Strict(), Field(pattern=_END_TIME_PATTERN)]
Month = Annotated[int, Strict(), Field(ge=1, le=12)]
DayOfMonth = Annotated[int, Strict(), Field(ge=1, le=31)]
Year = Annotated[int, Strict(), Field(ge=0)]
Price = Annotated[float, Strict(), Field(ge=0.0)]


class UserType(StrEnum):
    MEMBER = "member"
    NONMEMBER = "nonmember"


class Day(StrEnum):
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"


class SystemInformation(GbfsBaseModel):
    """Operator and system metadata.

    ``language`` must match the auto-discovery language the feed was
    published under.  ``timezone`` is a tz database name and is the zone
    in which ``system_hours`` times are expressed.
    """

    system_id: StringID
    language: Text
    name: Text
    short_name: Text | None = None
    operator: Text | None = None
    url: Url | None = None
    purchase_url: Url | None = None
    start_date: Text | None = None
    phone_number: Text | None = None
    email: Text | None = None
    timezone: Text
    license_url: Url | None = None


class HoursEntry(GbfsBaseModel):
    """Rental hours for a set of days and user types."""

    user_types: list[UserType]
    days: list[Day]
    start_time: StartTime
    end_time: EndTime


class SystemHoursData(GbfsBaseModel):
    rental_hours: list[HoursEntry]

    def for_day(self, day: Day, user_type: UserType) -> HoursEntry | None:
        for entry in self.rental_hours:
            if day in entry.days and user_type in entry.user_types:
                return entry
        return None


class CalendarEntry(GbfsBaseModel):
    """Operating season.  Missing years mean the same months every year."""

    start_month: Month
    start_day: DayOfMonth
    start_year: Year | None = None
    end_month: Month
    end_day: DayOfMonth
    end_year: Year | None = None


class SystemCalendarData(GbfsBaseModel):
    calendars: list[CalendarEntry] = Field(min_length=1)


class Region(GbfsBaseModel):
    region_id: StringID
    name: Text


class SystemRegionsData(GbfsBaseModel):
    regions: list[Region]

    def by_id(self) -> dict[str, Region]:
        return {region.region_id: region for region in self.regions}


class PricingPlan(GbfsBaseModel):
    """A pricing scheme.  ``price`` is in the base unit of ``currency``."""

    plan_id: StringID
    url: Url | None = None
    name: Text
    currency: Text
    price: Price
    is_taxable: Bit
    description: Text


class SystemPricingPlansData(GbfsBaseModel):
    plans: list[PricingPlan]
