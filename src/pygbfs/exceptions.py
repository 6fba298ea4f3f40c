"""Custom exception hierarchy for pygbfs."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pygbfs.models.feed import FeedType
    from pygbfs.validation.violations import Violation


class FetchErrorKind(StrEnum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    PARSE = "parse"


class GbfsError(Exception):
    """Base exception for all pygbfs errors."""


class GbfsConfigError(GbfsError):
    """Invalid or missing configuration."""


class GbfsDiscoveryError(GbfsError):
    """Auto-discovery root is unreachable, malformed or empty.

    Only raised at startup.  Once feeds are resolved, every other failure
    is handled by the scheduler and reported through health.
    """


class GbfsFetchError(GbfsError):
    """A single feed GET failed (network, timeout, non-200 status)."""

    def __init__(
        self,
        message: str,
        *,
        kind: FetchErrorKind,
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class GbfsParseError(GbfsFetchError):
    """Body was not JSON, or not shaped like a GBFS file envelope."""

    def __init__(self, message: str, *, url: str = "") -> None:
        super().__init__(message, kind=FetchErrorKind.PARSE, url=url)


class GbfsValidationError(GbfsError):
    """A feed payload carried hard violations and was rejected."""

    def __init__(self, feed_type: FeedType, violations: Sequence[Violation]) -> None:
        self.feed_type = feed_type
        self.violations = tuple(violations)
        preview = "; ".join(v.message for v in self.violations[:3])
        more = f" (+{len(self.violations) - 3} more)" if len(self.violations) > 3 else ""
        super().__init__(f"{feed_type} rejected: {preview}{more}")
