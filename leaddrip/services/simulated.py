"""
Simulated providers — realistic fake data for local runs and demos.

Selected with RUN_MODE=simulated (or --simulated on the CLI). Generation,
search and page fetch are replaced with canned responses that drive a full
hunt or watch run end to end without any API keys. Output is deterministic
for a given query, company and signal.
"""
import hashlib
import json
import logging
import random
import re
import time
from typing import Dict, List

from leaddrip.errors import ProviderRequestError
from leaddrip.schemas import SearchResponse, SearchResult
from leaddrip.services.fetcher import PageContent, PageFetcher
from leaddrip.services.generation import GenerationProvider, GenerationResponse
from leaddrip.services.search import SearchProvider

logger = logging.getLogger('services.simulated')


# ── Fake company data ────────────────────────────────────────────────────────

MOCK_COMPANIES = [
    {'name': 'Acme Analytics', 'domain': 'acme.io', 'industry': 'SaaS',
     'news': 'Acme Analytics raised a $40 million Series B led by Index Ventures to expand its data platform.',
     'about': 'Acme Analytics builds revenue intelligence software for B2B sales teams across the United States.',
     'careers': 'We are hiring across engineering and sales, with 25 open positions in Austin and New York.'},
    {'name': 'Brightlane', 'domain': 'brightlane.com', 'industry': 'Fintech',
     'news': 'Brightlane appointed Dana Cole as new CFO after a year of rapid growth in commercial lending.',
     'about': 'Brightlane helps mid-market companies automate accounts payable and vendor payments.',
     'careers': 'Join our team: we are growing the finance operations group and hiring in Chicago.'},
    {'name': 'Northwind Robotics', 'domain': 'northwindrobotics.com', 'industry': 'Manufacturing',
     'news': 'Northwind Robotics launches its new platform for warehouse picking at ProMat this spring.',
     'about': 'Northwind Robotics designs autonomous mobile robots for distribution centers.',
     'careers': 'Careers at Northwind: open roles in field service, robotics software and customer success.'},
    {'name': 'Cobalt Health', 'domain': 'cobalthealth.co', 'industry': 'Healthcare',
     'news': 'Cobalt Health is expanding into Canada with a new office in Toronto and two hospital partnerships.',
     'about': 'Cobalt Health provides remote patient monitoring for chronic care programs.',
     'careers': 'We are hiring nurses, care coordinators and implementation managers for the expansion.'},
    {'name': 'Pinegrove Software', 'domain': 'pinegrove.dev', 'industry': 'SaaS',
     'news': 'Pinegrove Software completed its migration to Snowflake and rolled out a new analytics suite.',
     'about': 'Pinegrove Software makes scheduling tools for field service businesses.',
     'careers': 'Pinegrove is a remote-first team of 60 people and we are hiring two product designers.'},
    {'name': 'Helix Logistics', 'domain': 'helixlogistics.com', 'industry': 'Logistics',
     'news': 'Helix Logistics announced a partnership with Maersk to expand cold-chain routes across Europe.',
     'about': 'Helix Logistics runs temperature-controlled freight for food and pharma shippers.',
     'careers': 'Helix is hiring drivers, dispatchers and a VP Sales to lead its new European business.'},
    {'name': 'Quarry Labs', 'domain': 'quarrylabs.ai', 'industry': 'SaaS',
     'news': 'Quarry Labs raised $12 million in seed funding to bring AI copilots to procurement teams.',
     'about': 'Quarry Labs builds AI assistants that read contracts and flag renewal risk.',
     'careers': 'We are growing fast: open positions in machine learning, sales and customer success.'},
    {'name': 'Tidewater Energy', 'domain': 'tidewaterenergy.com', 'industry': 'Energy',
     'news': 'Tidewater Energy named Priya Rao chief executive officer as founder steps down.',
     'about': 'Tidewater Energy develops community solar projects for utilities and municipalities.',
     'careers': 'Tidewater careers: project developers and interconnection engineers wanted.'},
]

MOCK_PUBLISHERS = ['techcrunch.com', 'businesswire.com', 'venturebeat.com', 'prnewswire.com']

_BY_DOMAIN = {c['domain']: c for c in MOCK_COMPANIES}


def _digest(*parts) -> int:
    """Stable integer for a set of strings. Python's hash() is salted per process."""
    return int(hashlib.md5('|'.join(parts).encode('utf-8')).hexdigest()[:8], 16)


def _simulate_delay(delay: float):
    """Small delay to simulate API latency."""
    if delay:
        time.sleep(random.uniform(delay / 2, delay))


# ── Generation ───────────────────────────────────────────────────────────────

_COMPANY_LINE = re.compile(r'^COMPANY: (.+?) \(([^)]+)\)$', re.M)
_SIGNAL_LINE = re.compile(r'^SIGNAL: (.+)$', re.M)
_EVIDENCE_LINE = re.compile(r'^\[\d+\] \S+ \| (\S+)$', re.M)
_SNIPPET_LINE = re.compile(r'^ {4}(?!Title: )(.+)$', re.M)


class SimulatedGenerationProvider(GenerationProvider):
    """
    Answers the two structured prompts the pipeline sends.

    The schema name in the system prompt picks the reply: candidate
    extraction returns every mock company mentioned in the search results;
    signal evaluation answers yes, no or unknown from a digest of company and
    signal name, citing the first evidence URL on a yes.
    """
    name = 'simulated'

    def __init__(self, model: str = 'simulated-1', delay: float = 0.0, **kwargs):
        super().__init__(model, **kwargs)
        self.delay = delay

    def _complete(self, prompt, system, json_mode, temperature, max_tokens):
        _simulate_delay(self.delay)
        system = system or ''
        if 'CandidateExtractionResult' in system:
            text = json.dumps(self._extract(prompt))
        elif 'SignalAnswer' in system:
            text = json.dumps(self._answer(prompt))
        else:
            text = 'Simulated response.'
        return GenerationResponse(
            text=text,
            provider=self.name,
            model=self.model,
            usage={'prompt_tokens': len(prompt) // 4, 'completion_tokens': len(text) // 4},
        )

    @staticmethod
    def _extract(prompt: str) -> Dict:
        candidates = []
        for company in MOCK_COMPANIES:
            if company['name'] not in prompt and company['domain'] not in prompt:
                continue
            candidates.append({
                'company_name': company['name'],
                'domain': company['domain'],
                'source_url': f"https://{MOCK_PUBLISHERS[_digest(company['domain']) % len(MOCK_PUBLISHERS)]}"
                              f"/{company['domain'].split('.')[0]}",
                'snippet': company['news'],
                'confidence': 0.7 + (_digest(company['name']) % 30) / 100,
            })
        return {'candidates': candidates, 'total_results_processed': prompt.count('URL: ')}

    @staticmethod
    def _answer(prompt: str) -> Dict:
        company = _COMPANY_LINE.search(prompt)
        signal = _SIGNAL_LINE.search(prompt)
        urls = _EVIDENCE_LINE.findall(prompt)
        snippets = _SNIPPET_LINE.findall(prompt)
        company_name = company.group(1) if company else ''
        signal_name = signal.group(1) if signal else ''

        roll = _digest(company_name, signal_name) % 10
        if not urls or roll >= 8:
            return {'result': 'unknown', 'confidence': 0.2, 'reasoning': 'Evidence is inconclusive.'}
        if roll >= 6:
            return {'result': 'no', 'confidence': 0.6,
                    'reasoning': f"Nothing in the evidence points to {signal_name.lower()}."}
        return {
            'result': 'yes',
            'confidence': round(0.6 + roll * 0.05, 2),
            'evidence_urls': urls[:1],
            'evidence_snippets': snippets[:1],
            'reasoning': f"{company_name} shows {signal_name.lower()} in recent coverage.",
        }


# ── Search ───────────────────────────────────────────────────────────────────

class SimulatedSearch(SearchProvider):
    """Three to five results per query, drawn from MOCK_COMPANIES."""
    name = 'simulated'

    def __init__(self, delay: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    def _search(self, query, max_results, search_depth, include_domains, exclude_domains):
        _simulate_delay(self.delay)
        mentioned = [c for c in MOCK_COMPANIES if c['name'] in query or c['domain'] in query]
        if mentioned:
            picked = mentioned
        else:
            start = _digest(query) % len(MOCK_COMPANIES)
            count = 3 + _digest(query, 'count') % 3
            picked = [MOCK_COMPANIES[(start + i) % len(MOCK_COMPANIES)] for i in range(count)]

        results = []
        for company in picked[:max_results]:
            publisher = MOCK_PUBLISHERS[_digest(query, company['domain']) % len(MOCK_PUBLISHERS)]
            slug = company['domain'].split('.')[0]
            results.append(SearchResult(
                title=f"{company['name']} | {company['industry']} news",
                url=f"https://{publisher}/2026/{slug}-update",
                snippet=company['news'],
                published_date='2026-01-15',
            ))
            results.append(SearchResult(
                title=f"{company['name']} newsroom",
                url=f"https://{company['domain']}/news/{slug}-announcement",
                snippet=company['news'],
            ))
        results = results[:max_results]
        return SearchResponse(query=query, results=results, total_results=len(results))


# ── Page fetch ───────────────────────────────────────────────────────────────

class SimulatedFetcher(PageFetcher):
    """Serves home, about, blog and careers pages for the mock companies."""
    name = 'simulated'

    def __init__(self, delay: float = 0.0, unreachable: List[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay
        self.unreachable = set(unreachable or [])

    def _scrape(self, url):
        _simulate_delay(self.delay)
        host = url.split('://', 1)[-1].split('/', 1)[0]
        if host in self.unreachable:
            raise ProviderRequestError(f"Simulated fetch failure for {url}", provider=self.name,
                                       status_code=404)
        company = _BY_DOMAIN.get(host)
        if company is None:
            name = host.split('.')[0].title()
            text = f"{name} is a company serving customers with its products and services since 2015."
            return PageContent(url=url, text=text, title=name)

        path = url.split(host, 1)[1] or '/'
        if path.startswith('/careers'):
            text = company['careers']
        elif path.startswith('/blog'):
            text = f"{company['news']} Read more about what this means for our customers on the blog."
        else:
            text = f"{company['about']} {company['news']}"
        return PageContent(url=url, text=text, title=company['name'])
