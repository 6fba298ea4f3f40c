"""Internal constants shared across the library."""

USER_AGENT = "pygbfs/1.0"

#: HTTP statuses that are worth another attempt.  Every other 4xx is final.
RETRYABLE_CLIENT_STATUSES: frozenset[int] = frozenset({429})

#: GBFS allows at most one hours object per weekday per user type.
MAX_RENTAL_HOURS_ENTRIES = 14


def is_retryable_status(status: int) -> bool:
    """Return ``True`` for 5xx and 429, ``False`` for every other status."""
    return status >= 500 or status in RETRYABLE_CLIENT_STATUSES
