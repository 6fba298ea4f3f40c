"""Client configuration for pygbfs."""

from __future__ import annotations

import dataclasses
import os
from enum import StrEnum
from typing import Any

from pygbfs._constants import USER_AGENT
from pygbfs.exceptions import GbfsConfigError
from pygbfs.models.feed import FeedType


class LanguageFallback(StrEnum):
    """What to do when no discovery language matches ``preferred_language``."""

    FIRST = "first"
    """Use the first language key in document order."""
    STRICT = "strict"
    """Fail discovery."""


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """Per-fetch retry policy.

    Parameters
    ----------
    max_attempts : int
        Total attempts per fetch, including the first one.
    backoff_ms : int
        Delay before the second attempt.  Doubles for each later attempt.
    """

    max_attempts: int = 3
    backoff_ms: int = 500

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return (self.backoff_ms / 1000.0) * (2 ** (attempt - 1))


def _parse_feeds(value: str) -> frozenset[FeedType]:
    names = [part.strip() for part in value.split(",") if part.strip()]
    try:
        return frozenset(FeedType(name) for name in names)
    except ValueError as exc:
        raise GbfsConfigError(f"GBFS_FEEDS contains an unknown feed: {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class GbfsConfig:
    """Client configuration.

    Parameters
    ----------
    discovery_url : str
        URL of the auto-discovery root (``gbfs.json``).
    preferred_language : str or None
        IETF language tag to select from auto-discovery.  ``None`` lets
        ``language_fallback`` decide.
    language_fallback : LanguageFallback
        Policy when ``preferred_language`` is unset or not published.
    max_concurrent_fetches : int
        Worker slots shared by all feeds; bounds in-flight requests.
    per_feed_timeout_ms : int
        Timeout for a single HTTP request.
    retry : RetryPolicy
        Attempts and backoff for each fetch.
    degraded_threshold : int
        Consecutive failed cycles before a feed is flagged degraded.
    failure_interval : float
        Seconds to wait after a failed cycle when the feed has no positive
        ttl to go by.
    feeds : frozenset[FeedType] or None
        Restrict ingestion to these feeds.  ``None`` keeps every feed the
        publisher lists.
    user_agent : str
        ``User-Agent`` header sent with every request.
    """

    discovery_url: str
    preferred_language: str | None = None
    language_fallback: LanguageFallback = LanguageFallback.FIRST
    max_concurrent_fetches: int = 4
    per_feed_timeout_ms: int = 10_000
    retry: RetryPolicy = dataclasses.field(default_factory=RetryPolicy)
    degraded_threshold: int = 3
    failure_interval: float = 30.0
    feeds: frozenset[FeedType] | None = None
    user_agent: str = USER_AGENT

    def __post_init__(self) -> None:
        if not self.discovery_url or not self.discovery_url.startswith(("http://", "https://")):
            raise GbfsConfigError(f"discovery_url must be an http(s) URL, got {self.discovery_url!r}")
        if self.max_concurrent_fetches < 1:
            raise GbfsConfigError("max_concurrent_fetches must be >= 1")
        if self.per_feed_timeout_ms <= 0:
            raise GbfsConfigError("per_feed_timeout_ms must be > 0")
        if self.retry.max_attempts < 1:
            raise GbfsConfigError("retry.max_attempts must be >= 1")
        if self.retry.backoff_ms < 0:
            raise GbfsConfigError("retry.backoff_ms must be >= 0")
        if self.degraded_threshold < 1:
            raise GbfsConfigError("degraded_threshold must be >= 1")
        if self.failure_interval < 0:
            raise GbfsConfigError("failure_interval must be >= 0")

    @property
    def timeout_seconds(self) -> float:
        return self.per_feed_timeout_ms / 1000.0

    def wants(self, feed_type: FeedType) -> bool:
        """Whether *feed_type* should be ingested under this config."""
        return self.feeds is None or feed_type in self.feeds

    @classmethod
    def from_env(cls, **overrides: Any) -> GbfsConfig:
        """Create configuration from environment variables.

        Reads ``GBFS_DISCOVERY_URL`` and optional ``GBFS_*`` variables.
        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GbfsConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "GBFS_DISCOVERY_URL": "discovery_url",
            "GBFS_PREFERRED_LANGUAGE": "preferred_language",
            "GBFS_USER_AGENT": "user_agent",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUM_MAP: dict[str, tuple[str, type]] = {
            "GBFS_MAX_CONCURRENT_FETCHES": ("max_concurrent_fetches", int),
            "GBFS_PER_FEED_TIMEOUT_MS": ("per_feed_timeout_ms", int),
            "GBFS_DEGRADED_THRESHOLD": ("degraded_threshold", int),
            "GBFS_FAILURE_INTERVAL": ("failure_interval", float),
        }
        for env_key, (field_name, caster) in _ENV_NUM_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = caster(val)
            except ValueError as exc:
                raise GbfsConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        fallback = env.get("GBFS_LANGUAGE_FALLBACK")
        if fallback is not None and "language_fallback" not in overrides:
            try:
                config_kwargs["language_fallback"] = LanguageFallback(fallback.strip().lower())
            except ValueError as exc:
                raise GbfsConfigError(f"GBFS_LANGUAGE_FALLBACK must be 'first' or 'strict', got {fallback!r}") from exc

        # Retry policy is nested, handle separately
        if "retry" not in overrides:
            attempts = env.get("GBFS_RETRY_MAX_ATTEMPTS")
            backoff = env.get("GBFS_RETRY_BACKOFF_MS")
            if attempts is not None or backoff is not None:
                defaults = RetryPolicy()
                try:
                    config_kwargs["retry"] = RetryPolicy(
                        max_attempts=int(attempts) if attempts is not None else defaults.max_attempts,
                        backoff_ms=int(backoff) if backoff is not None else defaults.backoff_ms,
                    )
                except ValueError as exc:
                    raise GbfsConfigError("GBFS_RETRY_* must be integers") from exc

        feeds = env.get("GBFS_FEEDS")
        if feeds is not None and "feeds" not in overrides:
            config_kwargs["feeds"] = _parse_feeds(feeds)

        config_kwargs.update(overrides)
        if "discovery_url" not in config_kwargs:
            raise GbfsConfigError("GBFS_DISCOVERY_URL is not set")

        return cls(**config_kwargs)
