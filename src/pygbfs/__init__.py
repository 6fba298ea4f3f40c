"""pygbfs - Async ingestion engine for GBFS bike-share feeds."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pygbfs")
except PackageNotFoundError:
    __version__ = "0+local"
from pygbfs.client import GbfsClient
from pygbfs.config import GbfsConfig, LanguageFallback, RetryPolicy
from pygbfs.exceptions import (
    FetchErrorKind,
    GbfsConfigError,
    GbfsDiscoveryError,
    GbfsError,
    GbfsFetchError,
    GbfsParseError,
    GbfsValidationError,
)
from pygbfs.models import (
    Alert,
    BikeStatus,
    FeedDescriptor,
    FeedEnvelope,
    FeedType,
    PricingPlan,
    Region,
    Station,
    StationStatus,
    SystemInformation,
)
from pygbfs.state import DanglingReference, FeedHealth, FeedState, Snapshot, SnapshotStore
from pygbfs.validation import Severity, ValidationResult, Violation, ViolationCode, validate_feed

__all__ = [
    "__version__",
    "Alert",
    "BikeStatus",
    "DanglingReference",
    "FeedDescriptor",
    "FeedEnvelope",
    "FeedHealth",
    "FeedState",
    "FeedType",
    "FetchErrorKind",
    "GbfsClient",
    "GbfsConfig",
    "GbfsConfigError",
    "GbfsDiscoveryError",
    "GbfsError",
    "GbfsFetchError",
    "GbfsParseError",
    "GbfsValidationError",
    "LanguageFallback",
    "PricingPlan",
    "Region",
    "RetryPolicy",
    "Severity",
    "Snapshot",
    "SnapshotStore",
    "Station",
    "StationStatus",
    "SystemInformation",
    "ValidationResult",
    "Violation",
    "ViolationCode",
    "validate_feed",
]
