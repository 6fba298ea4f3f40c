"""Validation layer.

Turns an untrusted ``data`` block into a typed model plus the complete list
of violations.  Hard violations reject the payload; soft ones travel with
the accepted snapshot as warnings.
"""

from pygbfs.validation.rules import ID_FIELDS
from pygbfs.validation.validator import FeedValidator, validate_feed
from pygbfs.validation.violations import Severity, ValidationResult, Violation, ViolationCode

__all__ = [
    "ID_FIELDS",
    "FeedValidator",
    "Severity",
    "ValidationResult",
    "Violation",
    "ViolationCode",
    "validate_feed",
]
