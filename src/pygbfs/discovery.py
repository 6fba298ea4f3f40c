"""Auto-discovery resolution and language selection.

The root document maps IETF language tags to the feeds published in that
language::

    {"en": {"feeds": [{"name": "station_information", "url": "..."}]}}

Publishers normally wrap it in the common file envelope
(``{"last_updated", "ttl", "data": {...}}``); both forms are accepted.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from pygbfs.config import LanguageFallback
from pygbfs.exceptions import GbfsDiscoveryError, GbfsFetchError
from pygbfs.fetcher import FeedFetcher
from pygbfs.models.feed import FeedDescriptor, FeedType

_logger = logging.getLogger(__name__)

_FEED_NAMES = frozenset(feed_type.value for feed_type in FeedType)


class _DiscoveryFeed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    url: str


class _LanguageFeeds(BaseModel):
    model_config = ConfigDict(extra="ignore")

    feeds: list[_DiscoveryFeed]


_LANGUAGE_MAP = TypeAdapter(dict[str, _LanguageFeeds])


def _unwrap(body: Any) -> Any:
    """Strip the file envelope when present."""
    if isinstance(body, dict) and "data" in body and "last_updated" in body:
        return body["data"]
    return body


def parse_discovery(body: Any) -> dict[str, list[FeedDescriptor]]:
    """Turn a decoded auto-discovery document into descriptors per language.

    Raises
    ------
    GbfsDiscoveryError
        When the document is not shaped like auto-discovery or lists no
        language at all.
    """
    try:
        languages = _LANGUAGE_MAP.validate_python(_unwrap(body))
    except ValidationError as exc:
        raise GbfsDiscoveryError(f"Auto-discovery document has an unexpected shape: {exc}") from exc

    if not languages:
        raise GbfsDiscoveryError("Auto-discovery document lists no languages")

    result: dict[str, list[FeedDescriptor]] = {}
    for language, entry in languages.items():
        descriptors: list[FeedDescriptor] = []
        seen: set[FeedType] = set()
        for feed in entry.feeds:
            if feed.name not in _FEED_NAMES:
                _logger.debug("Skipping unsupported feed %r (%s)", feed.name, language)
                continue
            feed_type = FeedType(feed.name)
            if feed_type in seen:
                _logger.warning("Feed %s listed twice for %s; keeping the first url", feed_type, language)
                continue
            seen.add(feed_type)
            descriptors.append(FeedDescriptor(name=feed_type, url=feed.url, language=language))
        result[language] = descriptors
    return result


def select_language(
    feed_sets: Mapping[str, list[FeedDescriptor]],
    preferred: str | None,
    fallback: LanguageFallback = LanguageFallback.FIRST,
) -> str:
    """Pick the language whose feed set should be ingested.

    The language equal to *preferred* (case-insensitive) wins.  Otherwise
    *fallback* decides: ``FIRST`` takes the first key in document order,
    ``STRICT`` raises.
    """
    if not feed_sets:
        raise GbfsDiscoveryError("No languages to choose from")

    if preferred:
        wanted = preferred.strip().lower()
        for language in feed_sets:
            if language.lower() == wanted:
                return language

    if fallback == LanguageFallback.STRICT:
        raise GbfsDiscoveryError(
            f"Preferred language {preferred!r} not published; available: {', '.join(feed_sets)}"
        )

    chosen = next(iter(feed_sets))
    if preferred:
        _logger.warning("Preferred language %r not published; falling back to %r", preferred, chosen)
    return chosen


class AutoDiscoveryResolver:
    """Fetch and parse the auto-discovery root."""

    def __init__(self, fetcher: FeedFetcher) -> None:
        self._fetcher = fetcher

    async def resolve(self, root_url: str) -> dict[str, list[FeedDescriptor]]:
        """Return the feed descriptors for every published language.

        Raises
        ------
        GbfsDiscoveryError
            When the root is unreachable (after retries), not JSON, not
            shaped like auto-discovery, or empty.
        """
        try:
            body = await self._fetcher.fetch_json(root_url)
        except GbfsFetchError as exc:
            raise GbfsDiscoveryError(f"Could not load auto-discovery from {root_url}: {exc}") from exc

        feed_sets = parse_discovery(body)
        _logger.info(
            "Auto-discovery at %s: %s",
            root_url,
            ", ".join(f"{lang}={len(feeds)} feeds" for lang, feeds in feed_sets.items()),
        )
        return feed_sets

    async def resolve_language(
        self,
        root_url: str,
        preferred: str | None,
        fallback: LanguageFallback = LanguageFallback.FIRST,
    ) -> tuple[str, list[FeedDescriptor]]:
        """Resolve and select in one step."""
        feed_sets = await self.resolve(root_url)
        language = select_language(feed_sets, preferred, fallback)
        return language, feed_sets[language]
