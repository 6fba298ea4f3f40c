"""Referential integrity between published feeds.

Feeds are owned and refreshed independently, so ids used in one feed may
briefly be missing from the feed that defines them.  The linker only
reports such dangling references as snapshot metadata; it never blocks or
rejects publication.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from pygbfs.models import (
    GbfsBaseModel,
    StationInformationData,
    StationStatusData,
    SystemAlertsData,
    SystemRegionsData,
)
from pygbfs.models.feed import FeedType
from pygbfs.state.snapshot import DanglingReference
from pygbfs.state.store import SnapshotStore

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReferenceRule:
    """``source`` uses ids at ``field`` that ``target`` must define."""

    source: FeedType
    field: str
    target: FeedType
    extract: Callable[[GbfsBaseModel], Iterable[str]]


def _status_station_ids(data: GbfsBaseModel) -> Iterator[str]:
    assert isinstance(data, StationStatusData)  # noqa: S101
    for status in data.stations:
        yield status.station_id


def _station_region_ids(data: GbfsBaseModel) -> Iterator[str]:
    assert isinstance(data, StationInformationData)  # noqa: S101
    for station in data.stations:
        if station.region_id is not None:
            yield station.region_id


def _alert_station_ids(data: GbfsBaseModel) -> Iterator[str]:
    assert isinstance(data, SystemAlertsData)  # noqa: S101
    for alert in data.alerts:
        yield from alert.station_ids or ()


def _alert_region_ids(data: GbfsBaseModel) -> Iterator[str]:
    assert isinstance(data, SystemAlertsData)  # noqa: S101
    for alert in data.alerts:
        yield from alert.region_ids or ()


def _defined_station_ids(data: GbfsBaseModel) -> frozenset[str]:
    assert isinstance(data, StationInformationData)  # noqa: S101
    return frozenset(station.station_id for station in data.stations)


def _defined_region_ids(data: GbfsBaseModel) -> frozenset[str]:
    assert isinstance(data, SystemRegionsData)  # noqa: S101
    return frozenset(region.region_id for region in data.regions)


REFERENCE_RULES: tuple[ReferenceRule, ...] = (
    ReferenceRule(
        FeedType.STATION_STATUS,
        "stations[].station_id",
        FeedType.STATION_INFORMATION,
        _status_station_ids,
    ),
    ReferenceRule(
        FeedType.STATION_INFORMATION,
        "stations[].region_id",
        FeedType.SYSTEM_REGIONS,
        _station_region_ids,
    ),
    ReferenceRule(
        FeedType.SYSTEM_ALERTS,
        "alerts[].station_ids[]",
        FeedType.STATION_INFORMATION,
        _alert_station_ids,
    ),
    ReferenceRule(
        FeedType.SYSTEM_ALERTS,
        "alerts[].region_ids[]",
        FeedType.SYSTEM_REGIONS,
        _alert_region_ids,
    ),
)

#: Ids defined by each referenced feed.
DEFINED_IDS: dict[FeedType, Callable[[GbfsBaseModel], frozenset[str]]] = {
    FeedType.STATION_INFORMATION: _defined_station_ids,
    FeedType.SYSTEM_REGIONS: _defined_region_ids,
}

#: Accepted updates to these feeds trigger a recomputation.
TRIGGER_FEEDS = frozenset(
    {
        FeedType.STATION_INFORMATION,
        FeedType.SYSTEM_REGIONS,
        FeedType.STATION_STATUS,
        FeedType.FREE_BIKE_STATUS,
        FeedType.SYSTEM_PRICING_PLANS,
        FeedType.SYSTEM_ALERTS,
    }
)


def _affected_sources(feed_type: FeedType) -> list[FeedType]:
    """Source feeds whose dangling references may change when *feed_type* changes."""
    sources: list[FeedType] = []
    for rule in REFERENCE_RULES:
        if feed_type in (rule.source, rule.target) and rule.source not in sources:
            sources.append(rule.source)
    return sources


class CrossFeedLinker:
    """Recompute dangling references from the store's current snapshots.

    Each rule is checked only when both the referencing and the referenced
    feed have been published at least once.
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store

    def compute(self, source: FeedType) -> tuple[DanglingReference, ...]:
        """Dangling references of *source* against the current snapshots, sorted."""
        source_snapshot = self._store.get(source)
        if source_snapshot is None:
            return ()
        return self.references_for(source, source_snapshot.envelope.data)

    def references_for(self, source: FeedType, data: GbfsBaseModel) -> tuple[DanglingReference, ...]:
        """Dangling references of a candidate *source* payload, sorted.

        Used before publication so the snapshot handed to subscribers already
        carries its metadata.  No rule refers a feed to itself, so the
        targets read here are never the feed being replaced.
        """
        found: set[DanglingReference] = set()
        for rule in REFERENCE_RULES:
            if rule.source != source:
                continue
            target_snapshot = self._store.get(rule.target)
            if target_snapshot is None:
                continue
            defined = DEFINED_IDS[rule.target](target_snapshot.envelope.data)
            for ref_id in rule.extract(data):
                if ref_id not in defined:
                    found.add(
                        DanglingReference(
                            source_feed=source,
                            field=rule.field,
                            ref_id=ref_id,
                            target_feed=rule.target,
                        )
                    )
        return tuple(sorted(found, key=lambda ref: (ref.field, ref.ref_id)))

    def on_update(self, feed_type: FeedType) -> dict[FeedType, int]:
        """Refresh metadata after an accepted update to *feed_type*.

        Returns the dangling-reference count per source feed that was
        recomputed.
        """
        if feed_type not in TRIGGER_FEEDS:
            return {}

        counts: dict[FeedType, int] = {}
        for source in _affected_sources(feed_type):
            previous = self._store.get(source)
            if previous is None:
                continue
            refs = self.compute(source)
            self._store.annotate(source, refs)
            counts[source] = len(refs)
            if len(refs) != previous.dangling_reference_count:
                _logger.info(
                    "%s dangling references: %d -> %d (after %s update)",
                    source,
                    previous.dangling_reference_count,
                    len(refs),
                    feed_type,
                )
        return counts
