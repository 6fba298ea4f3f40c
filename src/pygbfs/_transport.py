"""HTTP transport over aiohttp."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import aiohttp

from pygbfs._constants import USER_AGENT
from pygbfs.exceptions import FetchErrorKind, GbfsFetchError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Status and decoded body of one GET."""

    status: int
    text: str


class Transport(Protocol):
    """Structural transport interface used by the fetcher.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.  A transport
    performs exactly one request: no retries, no status interpretation.
    """

    async def get(self, url: str, *, timeout: float) -> HttpResponse:
        ...


class HttpTransport:
    """GET requests through a shared :class:`aiohttp.ClientSession`."""

    def __init__(self, http_session: aiohttp.ClientSession, *, user_agent: str = USER_AGENT) -> None:
        self._http = http_session
        self._headers = {
            "accept": "application/json",
            "user-agent": user_agent,
        }

    async def get(self, url: str, *, timeout: float) -> HttpResponse:
        _logger.debug("GET %s", url)
        try:
            async with self._http.get(
                url,
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, text=text)
        except TimeoutError as exc:
            raise GbfsFetchError(
                f"Request to {url} timed out after {timeout:.1f}s",
                kind=FetchErrorKind.TIMEOUT,
                url=url,
            ) from exc
        except (aiohttp.ClientError, UnicodeDecodeError) as exc:
            raise GbfsFetchError(
                f"Request to {url} failed: {exc}",
                kind=FetchErrorKind.NETWORK,
                url=url,
            ) from exc
