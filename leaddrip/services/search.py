"""
Web search providers — Tavily and SerpAPI over plain HTTP.

Both normalize their responses into SearchResponse so the pipeline never sees
a vendor payload.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import requests

from leaddrip.config import SEARCH_TIMEOUT, SERPAPI_URL, TAVILY_API_URL
from leaddrip.errors import ProviderRequestError
from leaddrip.schemas import SearchResponse, SearchResult
from leaddrip.services.retry import is_transient_status

logger = logging.getLogger('services.search')


def raise_for_provider_status(resp, provider: str):
    """Turn an HTTP error response into a ProviderRequestError the retry layer understands."""
    if resp.status_code >= 400:
        raise ProviderRequestError(
            f"{provider} returned {resp.status_code}: {resp.text[:200]}",
            provider=provider,
            status_code=resp.status_code,
            transient=is_transient_status(resp.status_code),
        )


class SearchProvider(ABC):
    name: str = ''

    def __init__(self, breaker=None, timeout: float = SEARCH_TIMEOUT):
        self.breaker = breaker
        self.timeout = timeout

    def search(self, query: str, max_results: int = 10, search_depth: str = 'basic',
               include_domains: Optional[List[str]] = None,
               exclude_domains: Optional[List[str]] = None) -> SearchResponse:
        args = (query, max_results, search_depth, include_domains or [], exclude_domains or [])
        if self.breaker is not None:
            return self.breaker.call(self._search, *args)
        return self._search(*args)

    @abstractmethod
    def _search(self, query, max_results, search_depth, include_domains, exclude_domains) -> SearchResponse:
        ...


class TavilySearch(SearchProvider):
    name = 'tavily'

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        if not api_key:
            raise ValueError("Tavily API key not configured")
        self.api_key = api_key

    def _search(self, query, max_results, search_depth, include_domains, exclude_domains):
        body = {
            'api_key': self.api_key,
            'query': query,
            'search_depth': search_depth,
            'max_results': max_results,
            'include_answer': False,
        }
        if include_domains:
            body['include_domains'] = include_domains
        if exclude_domains:
            body['exclude_domains'] = exclude_domains

        resp = requests.post(TAVILY_API_URL, json=body, timeout=self.timeout)
        raise_for_provider_status(resp, self.name)
        data = resp.json()
        results = [
            SearchResult(
                title=r.get('title') or '',
                url=r['url'],
                snippet=r.get('content') or '',
                published_date=r.get('published_date'),
            )
            for r in data.get('results', [])
            if r.get('url')
        ]
        return SearchResponse(query=query, results=results, total_results=len(results))


class SerpApiSearch(SearchProvider):
    """Google organic results through SerpAPI. Domain filters become site: operators."""
    name = 'serpapi'

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        if not api_key:
            raise ValueError("SerpAPI key not configured")
        self.api_key = api_key

    @staticmethod
    def build_query(query, include_domains, exclude_domains):
        parts = [query]
        if include_domains:
            parts.append('(' + ' OR '.join(f'site:{d}' for d in include_domains) + ')')
        parts.extend(f'-site:{d}' for d in exclude_domains or [])
        return ' '.join(parts)

    def _search(self, query, max_results, search_depth, include_domains, exclude_domains):
        params = {
            'api_key': self.api_key,
            'engine': 'google',
            'q': self.build_query(query, include_domains, exclude_domains),
            'num': max_results,
        }
        resp = requests.get(SERPAPI_URL, params=params, timeout=self.timeout)
        raise_for_provider_status(resp, self.name)
        data = resp.json()
        results = [
            SearchResult(
                title=r.get('title') or '',
                url=r['link'],
                snippet=r.get('snippet') or '',
                published_date=r.get('date'),
            )
            for r in data.get('organic_results', [])[:max_results]
            if r.get('link')
        ]
        total = (data.get('search_information') or {}).get('total_results')
        return SearchResponse(query=query, results=results, total_results=total)
