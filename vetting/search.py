"""Search collaborators used by discovery.

Two providers share one async interface, ``await client.search(query, ...)``
returning a list of :class:`SearchResult`:

- :class:`TavilySearch` -- ``tavily-python``'s ``AsyncTavilyClient``
  (default, needs ``TAVILY_API_KEY``)
- :class:`DDGSearch` -- ``duckduckgo-search`` behind a process-wide rate
  limiter (``SEARCH_PROVIDER=duckduckgo``, install the ``ddg`` extra).
  Its ``acquire()`` waits for a limiter slot and is awaited before the
  timed ``search()`` call, so queueing never counts against the timeout.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

from vetting.errors import SearchError

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_RESULTS = 10


@dataclass(frozen=True)
class SearchResult:
    title: str
    url: str
    snippet: str = ""
    relevance_score: float = 0.0


class SearchClient(Protocol):
    async def search(
        self, query: str, *, max_results: int = DEFAULT_MAX_RESULTS, depth: str = "basic",
    ) -> list[SearchResult]: ...


def search_timeout() -> float:
    try:
        return float(os.environ.get("SEARCH_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        return DEFAULT_TIMEOUT


# ---------------------------------------------------------------------------
# Tavily
# ---------------------------------------------------------------------------


class TavilySearch:
    def __init__(self, api_key: str):
        from tavily import AsyncTavilyClient

        self._client = AsyncTavilyClient(api_key=api_key)

    async def search(
        self, query: str, *, max_results: int = DEFAULT_MAX_RESULTS, depth: str = "basic",
    ) -> list[SearchResult]:
        try:
            response = await self._client.search(
                query=query,
                search_depth=depth,
                max_results=max_results,
                include_answer=False,
            )
        except Exception as exc:
            raise SearchError(f"Tavily search failed: {exc}") from exc
        return [
            SearchResult(
                title=r.get("title", ""),
                url=r.get("url", ""),
                snippet=r.get("content", ""),
                relevance_score=float(r.get("score") or 0.0),
            )
            for r in response.get("results", [])
            if r.get("url")
        ]


# ---------------------------------------------------------------------------
# DuckDuckGo rate limiter
# ---------------------------------------------------------------------------


class _DDGRateLimiter:
    """Global rate limiter for DuckDuckGo searches.

    Enforces a minimum delay between calls and exponential backoff
    on rate limit errors.
    """

    def __init__(self, min_delay: float = 12.0, max_delay: float = 120.0):
        self._lock = asyncio.Lock()
        self._min_delay = min_delay
        self._current_delay = min_delay
        self._max_delay = max_delay
        self._last_call: float = 0.0

    async def acquire(self) -> None:
        async with self._lock:
            wait = self._current_delay - (time.monotonic() - self._last_call)
            if wait > 0:
                log.debug("DDG rate limiter: waiting %.1fs", wait)
                await asyncio.sleep(wait)
            self._last_call = time.monotonic()

    def backoff(self) -> None:
        self._current_delay = min(self._current_delay * 2, self._max_delay)
        log.warning("DDG rate limited, backing off to %.0fs between requests", self._current_delay)

    def reset(self) -> None:
        self._current_delay = self._min_delay


_ddg_limiter = _DDGRateLimiter()


class DDGSearch:
    def __init__(self, limiter: _DDGRateLimiter | None = None):
        try:
            from duckduckgo_search import DDGS
            from duckduckgo_search.exceptions import RatelimitException
        except ImportError as exc:
            raise SearchError(
                "duckduckgo-search not installed. Install: pip install 'candidate-vetting[ddg]'",
                not_configured=True,
            ) from exc
        self._ddgs_cls = DDGS
        self._ratelimit_exc = RatelimitException
        self._limiter = limiter or _ddg_limiter

    def _text(self, query: str, max_results: int) -> list[dict[str, Any]]:
        return list(self._ddgs_cls().text(query, max_results=max_results) or [])

    async def acquire(self) -> None:
        """Wait for a rate-limiter slot. Call once before each :meth:`search`."""
        await self._limiter.acquire()

    async def search(
        self, query: str, *, max_results: int = DEFAULT_MAX_RESULTS, depth: str = "basic",
    ) -> list[SearchResult]:
        try:
            raw = await asyncio.to_thread(self._text, query, max_results)
        except self._ratelimit_exc as exc:
            # Slow later callers down; the failed query is not retried.
            self._limiter.backoff()
            raise SearchError(f"DDG rate limited for query={query!r}") from exc
        except Exception as exc:
            raise SearchError(f"DDG search failed: {exc}") from exc
        self._limiter.reset()
        return [
            SearchResult(title=r.get("title", ""), url=r.get("href", ""), snippet=r.get("body", ""))
            for r in raw
            if r.get("href")
        ]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_search_client() -> SearchClient | None:
    """Search client selected by ``SEARCH_PROVIDER``; ``None`` when none is configured."""
    provider = os.environ.get("SEARCH_PROVIDER", "tavily").lower()
    if provider == "duckduckgo":
        try:
            return DDGSearch()
        except SearchError as exc:
            log.warning("%s", exc)
            return None
    api_key = os.environ.get("TAVILY_API_KEY")
    if not api_key:
        return None
    return TavilySearch(api_key)
