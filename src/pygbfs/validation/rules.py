"""Domain checks that look across records.

These run on the raw ``data`` block rather than the parsed model so they
still report when structural validation failed: the caller always sees the
complete picture.  Anything that is not the expected shape is skipped here;
the structural pass already reports it.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import date
from functools import partial
from typing import Any
from urllib.parse import urlparse

from pygbfs._constants import MAX_RENTAL_HOURS_ENTRIES
from pygbfs.models.feed import FeedType
from pygbfs.validation.violations import Severity, Violation, ViolationCode

Rule = Callable[[Mapping[str, Any]], Iterable[Violation]]

#: (array key, id field) for every feed whose records carry an id.
ID_FIELDS: dict[FeedType, tuple[str, str]] = {
    FeedType.STATION_INFORMATION: ("stations", "station_id"),
    FeedType.STATION_STATUS: ("stations", "station_id"),
    FeedType.FREE_BIKE_STATUS: ("bikes", "bike_id"),
    FeedType.SYSTEM_REGIONS: ("regions", "region_id"),
    FeedType.SYSTEM_PRICING_PLANS: ("plans", "plan_id"),
    FeedType.SYSTEM_ALERTS: ("alerts", "alert_id"),
}

_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _hard(code: ViolationCode, path: str, message: str) -> Violation:
    return Violation(code=code, severity=Severity.HARD, path=path, message=message)


def _soft(code: ViolationCode, path: str, message: str) -> Violation:
    return Violation(code=code, severity=Severity.SOFT, path=path, message=message)


def _records(data: Mapping[str, Any], key: str) -> Iterator[tuple[str, Mapping[str, Any]]]:
    """Yield ``(path, record)`` for every object in ``data[key]``."""
    items = data.get(key)
    if not isinstance(items, list):
        return
    for index, item in enumerate(items):
        if isinstance(item, Mapping):
            yield f"{key}[{index}]", item


def _root(data: Mapping[str, Any]) -> Iterator[tuple[str, Mapping[str, Any]]]:
    yield "", data


def _join(prefix: str, field: str) -> str:
    return f"{prefix}.{field}" if prefix else field


# ---------------------------------------------------------------------------
# Hard rules
# ---------------------------------------------------------------------------


def check_unique_ids(data: Mapping[str, Any], *, array_key: str, id_field: str) -> list[Violation]:
    """Every id appears once within its array.  Ids with spaces are soft."""
    violations: list[Violation] = []
    seen: set[str] = set()
    for path, record in _records(data, array_key):
        value = record.get(id_field)
        if not isinstance(value, str):
            continue
        field_path = f"{path}.{id_field}"
        if value in seen:
            violations.append(_hard(ViolationCode.DUPLICATE_ID, field_path, f"duplicate id: {value}"))
        else:
            seen.add(value)
        if any(ch.isspace() for ch in value):
            violations.append(_soft(ViolationCode.MALFORMED_ID, field_path, f"id contains whitespace: {value!r}"))
    return violations


def check_rental_hours(data: Mapping[str, Any]) -> list[Violation]:
    """Each (day, user_type) pair is covered at most once across all entries."""
    violations: list[Violation] = []
    seen: dict[tuple[str, str], str] = {}
    count = 0
    for path, entry in _records(data, "rental_hours"):
        count += 1
        days = entry.get("days")
        user_types = entry.get("user_types")
        if not isinstance(days, list) or not isinstance(user_types, list):
            continue
        for day in days:
            for user_type in user_types:
                if not isinstance(day, str) or not isinstance(user_type, str):
                    continue
                key = (day, user_type)
                first = seen.get(key)
                if first is not None:
                    violations.append(
                        _hard(
                            ViolationCode.DUPLICATE_HOURS,
                            path,
                            f"duplicate hours: {day}/{user_type} (already in {first})",
                        )
                    )
                else:
                    seen[key] = path
    if count > MAX_RENTAL_HOURS_ENTRIES:
        violations.append(
            _soft(
                ViolationCode.TOO_MANY_ENTRIES,
                "rental_hours",
                f"{count} rental_hours entries, at most {MAX_RENTAL_HOURS_ENTRIES} expected",
            )
        )
    return violations


def check_alert_times(data: Mapping[str, Any]) -> list[Violation]:
    """Alert windows with an ``end`` must not end before they start."""
    violations: list[Violation] = []
    for alert_path, alert in _records(data, "alerts"):
        for time_path, window in _records(alert, "times"):
            start = window.get("start")
            end = window.get("end")
            if not isinstance(start, int) or not isinstance(end, int):
                continue
            if end < start:
                violations.append(
                    _hard(
                        ViolationCode.INVALID_TIME_RANGE,
                        f"{alert_path}.{time_path}",
                        f"alert time ends before it starts ({end} < {start})",
                    )
                )
    return violations


# ---------------------------------------------------------------------------
# Soft rules
# ---------------------------------------------------------------------------


def check_urls(
    data: Mapping[str, Any],
    *,
    fields: tuple[str, ...],
    records: Callable[[Mapping[str, Any]], Iterable[tuple[str, Mapping[str, Any]]]] = _root,
) -> list[Violation]:
    violations: list[Violation] = []
    for path, record in records(data):
        for field in fields:
            value = record.get(field)
            if not isinstance(value, str):
                continue
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                violations.append(
                    _soft(ViolationCode.MALFORMED_URL, _join(path, field), f"not a fully qualified URL: {value!r}")
                )
    return violations


def check_recommended(
    data: Mapping[str, Any],
    *,
    fields: tuple[str, ...],
    records: Callable[[Mapping[str, Any]], Iterable[tuple[str, Mapping[str, Any]]]] = _root,
) -> list[Violation]:
    violations: list[Violation] = []
    for path, record in records(data):
        for field in fields:
            if record.get(field) is None:
                violations.append(
                    _soft(ViolationCode.MISSING_RECOMMENDED, _join(path, field), f"optional field {field} is missing")
                )
    return violations


def check_start_date(data: Mapping[str, Any]) -> list[Violation]:
    value = data.get("start_date")
    if not isinstance(value, str):
        return []
    if _DATE_PATTERN.match(value):
        try:
            date.fromisoformat(value)
        except ValueError:
            pass
        else:
            return []
    return [_soft(ViolationCode.MALFORMED_VALUE, "start_date", f"start_date is not YYYY-MM-DD: {value!r}")]


def check_system_id(data: Mapping[str, Any]) -> list[Violation]:
    value = data.get("system_id")
    if isinstance(value, str) and any(ch.isspace() for ch in value):
        return [_soft(ViolationCode.MALFORMED_ID, "system_id", f"id contains whitespace: {value!r}")]
    return []


def check_currency(data: Mapping[str, Any]) -> list[Violation]:
    violations: list[Violation] = []
    for path, plan in _records(data, "plans"):
        value = plan.get("currency")
        if isinstance(value, str) and not _CURRENCY_PATTERN.match(value):
            violations.append(
                _soft(ViolationCode.MALFORMED_VALUE, f"{path}.currency", f"not an ISO 4217 currency code: {value!r}")
            )
    return violations


def _ids(feed_type: FeedType) -> Rule:
    array_key, id_field = ID_FIELDS[feed_type]
    return partial(check_unique_ids, array_key=array_key, id_field=id_field)


def _in(key: str) -> Callable[[Mapping[str, Any]], Iterator[tuple[str, Mapping[str, Any]]]]:
    return partial(_records, key=key)


FEED_RULES: dict[FeedType, tuple[Rule, ...]] = {
    FeedType.SYSTEM_INFORMATION: (
        check_system_id,
        partial(check_urls, fields=("url", "purchase_url", "license_url")),
        check_start_date,
        partial(check_recommended, fields=("operator", "license_url")),
    ),
    FeedType.STATION_INFORMATION: (
        _ids(FeedType.STATION_INFORMATION),
        partial(check_recommended, fields=("capacity",), records=_in("stations")),
    ),
    FeedType.STATION_STATUS: (_ids(FeedType.STATION_STATUS),),
    FeedType.FREE_BIKE_STATUS: (_ids(FeedType.FREE_BIKE_STATUS),),
    FeedType.SYSTEM_HOURS: (check_rental_hours,),
    FeedType.SYSTEM_CALENDAR: (),
    FeedType.SYSTEM_REGIONS: (_ids(FeedType.SYSTEM_REGIONS),),
    FeedType.SYSTEM_PRICING_PLANS: (
        _ids(FeedType.SYSTEM_PRICING_PLANS),
        partial(check_urls, fields=("url",), records=_in("plans")),
        check_currency,
    ),
    FeedType.SYSTEM_ALERTS: (
        _ids(FeedType.SYSTEM_ALERTS),
        check_alert_times,
        partial(check_urls, fields=("url",), records=_in("alerts")),
        partial(check_recommended, fields=("last_updated",), records=_in("alerts")),
    ),
}
