"""
Page fetchers — turn a URL into readable text for evidence extraction.

FirecrawlFetcher uses the Firecrawl scrape API (returns markdown);
DirectFetcher does a plain GET and strips the HTML with BeautifulSoup.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from leaddrip.config import FETCH_TIMEOUT, FETCH_USER_AGENT, FIRECRAWL_API_URL
from leaddrip.errors import ProviderRequestError
from leaddrip.services.search import raise_for_provider_status

logger = logging.getLogger('services.fetcher')

MAX_CONTENT_CHARS = 50000


@dataclass
class PageContent:
    url: str
    text: str
    title: str = ''


class PageFetcher(ABC):
    name: str = ''

    def __init__(self, breaker=None, timeout: float = FETCH_TIMEOUT):
        self.breaker = breaker
        self.timeout = timeout

    def scrape(self, url: str) -> PageContent:
        if self.breaker is not None:
            return self.breaker.call(self._scrape, url)
        return self._scrape(url)

    @abstractmethod
    def _scrape(self, url: str) -> PageContent:
        ...


class FirecrawlFetcher(PageFetcher):
    name = 'firecrawl'

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        if not api_key:
            raise ValueError("Firecrawl API key not configured")
        self.api_key = api_key

    def _scrape(self, url):
        resp = requests.post(
            FIRECRAWL_API_URL,
            headers={'Authorization': f'Bearer {self.api_key}'},
            json={'url': url, 'formats': ['markdown'], 'onlyMainContent': True},
            timeout=self.timeout,
        )
        raise_for_provider_status(resp, self.name)
        data = resp.json()
        if not data.get('success', True) or not data.get('data'):
            raise ProviderRequestError(
                f"Firecrawl could not scrape {url}: {data.get('error', 'no content')}",
                provider=self.name,
            )
        page = data['data']
        return PageContent(
            url=url,
            text=(page.get('markdown') or '')[:MAX_CONTENT_CHARS],
            title=(page.get('metadata') or {}).get('title') or '',
        )


def html_to_text(html: str):
    """Return (title, visible text) for an HTML document."""
    soup = BeautifulSoup(html, 'html.parser')
    title = soup.title.get_text(strip=True) if soup.title else ''
    for tag in soup(['script', 'style', 'noscript', 'nav', 'footer', 'svg']):
        tag.decompose()
    return title, soup.get_text(' ', strip=True)


class DirectFetcher(PageFetcher):
    name = 'direct'

    def _scrape(self, url):
        resp = requests.get(
            url,
            headers={'User-Agent': FETCH_USER_AGENT, 'Accept': 'text/html,application/xhtml+xml'},
            timeout=self.timeout,
        )
        raise_for_provider_status(resp, self.name)
        title, text = html_to_text(resp.text[:MAX_CONTENT_CHARS * 4])
        return PageContent(url=url, text=text[:MAX_CONTENT_CHARS], title=title)
