"""Structural and domain validation of feed payloads."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pygbfs.models import DATA_MODELS
from pygbfs.models._base import GbfsBaseModel
from pygbfs.models.feed import FeedType
from pygbfs.validation.rules import FEED_RULES
from pygbfs.validation.violations import Severity, ValidationResult, Violation, ViolationCode

_logger = logging.getLogger(__name__)

_ENUM_ERRORS = frozenset({"enum", "literal_error"})
_RANGE_ERRORS = frozenset(
    {
        "greater_than",
        "greater_than_equal",
        "less_than",
        "less_than_equal",
        "finite_number",
        "string_pattern_mismatch",
        "too_short",
        "too_long",
    }
)


def format_loc(loc: tuple[int | str, ...]) -> str:
    """``("stations", 0, "lat")`` -> ``"stations[0].lat"``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path


def violation_from_error(error: Mapping[str, Any]) -> Violation:
    """Map one pydantic error onto a hard violation."""
    path = format_loc(tuple(error["loc"]))
    kind = error["type"]
    if kind == "missing":
        return Violation(
            code=ViolationCode.MISSING_FIELD,
            severity=Severity.HARD,
            path=path,
            message=f"missing required field: {path}",
        )
    if kind in _ENUM_ERRORS:
        return Violation(
            code=ViolationCode.INVALID_ENUM,
            severity=Severity.HARD,
            path=path,
            message=f"invalid enum value {error['input']!r} at {path}",
        )
    if kind in _RANGE_ERRORS:
        value = error["input"]
        shown = repr(value) if not isinstance(value, (list, dict)) else f"<{type(value).__name__}>"
        return Violation(
            code=ViolationCode.OUT_OF_RANGE,
            severity=Severity.HARD,
            path=path,
            message=f"out of range value {shown} at {path}: {error['msg']}",
        )
    return Violation(
        code=ViolationCode.WRONG_TYPE,
        severity=Severity.HARD,
        path=path,
        message=f"wrong type at {path}: {error['msg']}",
    )


class FeedValidator:
    """Validate the ``data`` block of a feed.

    Structural checks come from the pydantic model registered for the feed
    type; domain checks come from :data:`pygbfs.validation.rules.FEED_RULES`.
    Both passes always run and every violation is collected.  The result is
    a pure function of the input.
    """

    def validate(self, feed_type: FeedType, data: Any) -> ValidationResult:
        if not isinstance(data, Mapping):
            return ValidationResult(
                feed_type=feed_type,
                violations=(
                    Violation(
                        code=ViolationCode.WRONG_TYPE,
                        severity=Severity.HARD,
                        path="",
                        message=f"data must be a JSON object, got {type(data).__name__}",
                    ),
                ),
            )

        model_cls = DATA_MODELS[feed_type]
        violations: list[Violation] = []
        parsed: GbfsBaseModel | None = None
        try:
            parsed = model_cls.model_validate(data)
        except ValidationError as exc:
            violations.extend(violation_from_error(err) for err in exc.errors(include_url=False))

        for rule in FEED_RULES[feed_type]:
            violations.extend(rule(data))

        has_hard = any(v.severity == Severity.HARD for v in violations)
        if has_hard:
            _logger.debug(
                "%s: %d hard / %d soft violations",
                feed_type,
                sum(1 for v in violations if v.severity == Severity.HARD),
                sum(1 for v in violations if v.severity == Severity.SOFT),
            )
        return ValidationResult(
            feed_type=feed_type,
            data=None if has_hard else parsed,
            violations=tuple(violations),
        )


def validate_feed(feed_type: FeedType, data: Any) -> ValidationResult:
    """Module-level shortcut for :meth:`FeedValidator.validate`."""
    return FeedValidator().validate(feed_type, data)
