"""
Search Executor — runs every planned query against the search provider.

Queries fan out over a pool bounded by search_concurrency. A query that
still fails after retries is recorded as a SearchFailure and contributes no
results; the rest of the plan carries on.
"""
import logging
from typing import List
from urllib.parse import urlsplit

import requests

from leaddrip.errors import ProviderRequestError, SearchFailure
from leaddrip.pipeline.base import RunContext, run_bounded
from leaddrip.pipeline.pipeline_config import get_section
from leaddrip.schemas import SearchQuery, SearchResult
from leaddrip.services.circuit_breaker import CircuitOpenError
from leaddrip.services.retry import call_with_retry

logger = logging.getLogger('pipeline.executor')

SEARCH_ERRORS = (ProviderRequestError, CircuitOpenError, requests.RequestException)


def url_key(url: str) -> str:
    """Host + path without scheme, www or trailing slash; used to spot the same page twice."""
    parts = urlsplit(url.strip())
    host = parts.netloc.lower()
    if host.startswith('www.'):
        host = host[4:]
    return host + parts.path.rstrip('/')


def dedupe_results(results: List[SearchResult]) -> List[SearchResult]:
    seen, unique = set(), []
    for result in results:
        key = url_key(result.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


def run_search(ctx: RunContext, query: str, **kwargs) -> List[SearchResult]:
    """One search with retries. Raises SearchFailure once retries are exhausted."""
    search_cfg = get_section('search')
    params = {
        'max_results': int(search_cfg.get('max_results', 10)),
        'search_depth': search_cfg.get('search_depth', 'basic'),
        'exclude_domains': list(search_cfg.get('exclude_domains', [])),
    }
    params.update(kwargs)
    ctx.increment('queries_executed')
    try:
        response = call_with_retry(ctx.retry_policy, ctx.services.search.search, query, **params)
    except SEARCH_ERRORS as e:
        raise SearchFailure(f"Search failed for '{query}': {e}") from e
    return response.results


def execute_queries(ctx: RunContext, queries: List[SearchQuery]) -> List[SearchResult]:
    """Run all queries concurrently and return URL-deduplicated results."""

    def _one(query: SearchQuery):
        return run_search(ctx, query.query)

    completed = run_bounded(
        ctx, list(queries), _one,
        max_workers=ctx.limits.search_concurrency,
        stage='search',
        unit_name=lambda q: q.query,
    )
    results = [r for _, batch in completed for r in batch]
    unique = dedupe_results(results)
    logger.info("Executed %d queries: %d results, %d unique URLs",
                len(queries), len(results), len(unique))
    return unique
