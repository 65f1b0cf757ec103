"""Multi-hop platform discovery.

Hop 0 seeds the run with known URLs. Hops 1-3 issue fixed query templates
(general, platform-restricted, political databases and news). Queries within
a hop run concurrently; a hop's results are merged in query order before the
next hop starts, so deduplication sees every earlier URL. A failed or timed
out query is logged with zero results and the run continues.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from vetting.audit_types import DiscoveredUrl, DiscoveryResult, HopLog
from vetting.search import DEFAULT_MAX_RESULTS, SearchClient, SearchResult, search_timeout
from vetting.utils import normalize_url

log = logging.getLogger(__name__)

MAX_HOPS = 3
SNIPPET_LIMIT = 300


@dataclass
class DiscoveryInput:
    candidate_name: str
    state: str | None = None
    office: str | None = None
    known_urls: Sequence[str] = field(default_factory=list)


def _q(*parts: str | None) -> str:
    return " ".join(p for p in parts if p)


def hop_queries(inp: DiscoveryInput) -> list[tuple[int, str, list[str]]]:
    """``(hop, discovery_method, queries)`` for each search hop."""
    name = f'"{inp.candidate_name}"'
    return [
        (1, "search_general", [
            _q(name, inp.state, inp.office),
            _q(name, "campaign website"),
        ]),
        (2, "search_platform", [
            _q(name, "site:facebook.com OR site:x.com OR site:instagram.com"),
            _q(name, "site:linkedin.com OR site:youtube.com"),
            _q(name, inp.state, "site:ballotpedia.org OR site:votesmart.org"),
        ]),
        (3, "search_political", [
            _q(name, "FEC campaign finance filing"),
            _q(name, inp.office, "endorsement news"),
        ]),
    ][:MAX_HOPS]


class _Accumulator:
    def __init__(self) -> None:
        self.urls: list[DiscoveredUrl] = []
        self.seen: set[str] = set()

    def add(self, url: DiscoveredUrl) -> bool:
        key = normalize_url(url.url)
        if not key or key in self.seen:
            return False
        self.seen.add(key)
        self.urls.append(url)
        return True

    def add_results(self, results: Sequence[SearchResult], method: str, hop: int) -> None:
        for r in results:
            self.add(DiscoveredUrl(
                url=r.url,
                title=r.title or "",
                snippet=(r.snippet or "")[:SNIPPET_LIMIT],
                discovery_method=method,
                hop=hop,
            ))


async def _run_query(
    search: SearchClient, query: str, hop: int, timeout: float,
) -> tuple[list[SearchResult], HopLog]:
    # Rate-limited clients queue here; the timeout covers only the search call.
    acquire = getattr(search, "acquire", None)
    if acquire is not None:
        await acquire()
    start = time.monotonic()
    error = None
    try:
        results = await asyncio.wait_for(
            search.search(
                query,
                max_results=DEFAULT_MAX_RESULTS,
                depth="advanced" if hop <= 1 else "basic",
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        log.warning("Search timed out after %.0fs (hop %d): %r", timeout, hop, query)
        results, error = [], "timeout"
    except Exception as exc:
        log.warning("Search failed (hop %d) for %r: %s", hop, query, exc)
        results, error = [], str(exc)
    duration_ms = int((time.monotonic() - start) * 1000)
    return results, HopLog(hop=hop, query=query, results_found=len(results), duration_ms=duration_ms, error=error)


async def _run_hop(
    search: SearchClient, acc: _Accumulator, hops: list[HopLog],
    hop: int, method: str, queries: Sequence[str], timeout: float,
) -> None:
    outcomes = await asyncio.gather(*(_run_query(search, q, hop, timeout) for q in queries))
    for results, hop_log in outcomes:
        hops.append(hop_log)
        acc.add_results(results, method, hop)


async def discover_platforms(
    inp: DiscoveryInput,
    search: SearchClient | None,
    timeout: float | None = None,
) -> DiscoveryResult:
    """Run hops 1-3 for a candidate, seeded with their known URLs."""
    acc = _Accumulator()
    for url in inp.known_urls:
        if url and url.strip():
            acc.add(DiscoveredUrl(url=url.strip(), discovery_method="known", hop=0))

    if search is None:
        log.warning("No search provider configured, discovery will return only known URLs")
        return DiscoveryResult(urls=acc.urls, hops=[])

    timeout = timeout or search_timeout()
    hops: list[HopLog] = []
    for hop, method, queries in hop_queries(inp):
        await _run_hop(search, acc, hops, hop, method, queries, timeout)

    log.info(
        "Discovery for %s: %d URLs from %d searches",
        inp.candidate_name, len(acc.urls), len(hops),
    )
    return DiscoveryResult(urls=acc.urls, hops=hops)


async def discover_opponent_platforms(
    name: str,
    state: str | None,
    office: str | None,
    search: SearchClient | None,
    timeout: float | None = None,
) -> DiscoveryResult:
    """Single-hop variant for opponent mini-audits."""
    acc = _Accumulator()
    if search is None:
        return DiscoveryResult()
    hops: list[HopLog] = []
    query = _q(f'"{name}"', state, office, "campaign")
    await _run_hop(search, acc, hops, 1, "search_opponent", [query], timeout or search_timeout())
    return DiscoveryResult(urls=acc.urls, hops=hops)
