"""Single-feed GET with timeout, bounded retries and exponential backoff."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from pygbfs._clock import Clock, SystemClock
from pygbfs._constants import is_retryable_status
from pygbfs._transport import HttpResponse, Transport
from pygbfs.config import RetryPolicy
from pygbfs.exceptions import FetchErrorKind, GbfsFetchError, GbfsParseError
from pygbfs.models.feed import RawEnvelope

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: GbfsFetchError) -> bool:
    """Network errors, timeouts, parse errors, 5xx and 429 are retried."""
    if exc.kind == FetchErrorKind.HTTP_STATUS:
        return exc.status_code is not None and is_retryable_status(exc.status_code)
    return True


def _decode_json(url: str, text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise GbfsParseError(f"Invalid JSON from {url}: {text[:200]!r}", url=url) from exc


class FeedFetcher:
    """Fetch GBFS documents.

    Parameters
    ----------
    transport : Transport
        Performs the actual GET.
    timeout : float
        Seconds allowed for one request.
    retry : RetryPolicy
        Attempt budget and backoff base.
    clock : Clock or None
        Used for backoff waits and ``fetched_at`` stamps.
    slots : asyncio.Semaphore or None
        Worker slots shared with other fetchers.  A slot is held for one
        HTTP attempt only, never across a backoff wait.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        timeout: float,
        retry: RetryPolicy | None = None,
        clock: Clock | None = None,
        slots: asyncio.Semaphore | None = None,
    ) -> None:
        self._transport = transport
        self._timeout = timeout
        self._retry = retry or RetryPolicy()
        self._clock = clock or SystemClock()
        self._slots = slots

    async def fetch_json(self, url: str) -> Any:
        """GET *url* and return the decoded JSON body, whatever its shape."""
        return await self._with_retries(url, _decode_json)

    async def fetch(self, url: str) -> RawEnvelope:
        """GET *url* and return its GBFS file envelope.

        Raises
        ------
        GbfsFetchError
            After the retry budget is spent, or straight away for a
            non-retryable status.
        """
        return await self._with_retries(url, self._decode_envelope)

    def _decode_envelope(self, url: str, text: str) -> RawEnvelope:
        body = _decode_json(url, text)
        if not isinstance(body, dict):
            raise GbfsParseError(f"Expected a JSON object from {url}, got {type(body).__name__}", url=url)
        try:
            return RawEnvelope.model_validate({**body, "fetched_at": self._clock.now()})
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise GbfsParseError(f"Malformed GBFS envelope from {url} ({fields})", url=url) from exc

    async def _get_once(self, url: str) -> HttpResponse:
        slot = self._slots if self._slots is not None else contextlib.nullcontext()
        try:
            async with slot, asyncio.timeout(self._timeout):
                return await self._transport.get(url, timeout=self._timeout)
        except TimeoutError as exc:
            raise GbfsFetchError(
                f"Request to {url} timed out after {self._timeout:.1f}s",
                kind=FetchErrorKind.TIMEOUT,
                url=url,
            ) from exc

    async def _with_retries(self, url: str, decode: Callable[[str, str], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._get_once(url)
                if not 200 <= response.status < 300:
                    raise GbfsFetchError(
                        f"HTTP {response.status} from {url}: {response.text[:200]}",
                        kind=FetchErrorKind.HTTP_STATUS,
                        url=url,
                        status_code=response.status,
                    )
                return decode(url, response.text)
            except GbfsFetchError as exc:
                if not is_retryable(exc) or attempt >= self._retry.max_attempts:
                    _logger.debug("GET %s failed for good after attempt=%d: %s", url, attempt, exc)
                    raise
                delay = self._retry.delay_for(attempt)
                _logger.debug("GET %s attempt=%d failed (%s); retrying in %.2fs", url, attempt, exc.kind, delay)
                await self._clock.sleep(delay)
