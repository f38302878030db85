"""
Evidence Collector — gathers cited text snippets for one candidate company.

Sources, in order:
  1. Search results already returned this run whose URL is on the company's domain
  2. The candidate's own source URL/snippet from extraction
  3. A fixed set of company pages (home, about, blog, careers) via the page fetcher

Page text is split into sentences; sentences that trip a category keyword
heuristic become chunks tagged with that category, and the first few
substantial sentences become untagged context chunks. A page that fails to
fetch is skipped. If every page fails the candidate gets one
EvidenceFetchFailure and continues on search evidence alone.
"""
import hashlib
import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urlsplit

import requests

from leaddrip.errors import EvidenceFetchFailure, ProviderRequestError
from leaddrip.pipeline.base import RunContext
from leaddrip.pipeline.dedup import normalize_domain
from leaddrip.pipeline.pipeline_config import get_section
from leaddrip.schemas import CandidateCompany, EvidenceChunk, SearchResult
from leaddrip.services.circuit_breaker import CircuitOpenError
from leaddrip.services.retry import call_with_retry

logger = logging.getLogger('pipeline.evidence')

FETCH_ERRORS = (ProviderRequestError, CircuitOpenError, requests.RequestException)

MIN_SENTENCE_CHARS = 50
MAX_SENTENCE_CHARS = 500
CONTEXT_SENTENCES = 3

# Keyword heuristics per signal category. A sentence matching any pattern is
# tagged with the category; the evaluator only sends tagged chunks to the model
# for categories listed here.
CATEGORY_PATTERNS: Dict[str, List[re.Pattern]] = {
    'funding_corporate': [re.compile(p, re.I) for p in (
        r'\braised\b', r'\bfunding\b', r'\bseries [a-f]\b', r'\binvestment\b', r'\binvestors?\b',
        r'\bcapital\b', r'\$?\d+(\.\d+)?\s*(million|billion|[mb])\b', r'\bacquir(ed|es|ing|ition)\b',
        r'\bipo\b', r'\bmerger\b',
    )],
    'leadership_org': [re.compile(p, re.I) for p in (
        r'\bjoins as\b', r'\bappointed\b', r'\bappoints\b', r'\bnew (ceo|cto|cfo|coo|cmo|cro|vp)\b',
        r'\bwelcomes\b', r'\bpromoted to\b', r'\bnamed (as )?(chief|head|vp|president)\b',
        r'\bsteps down\b', r'\breorgani[sz]ation\b',
    )],
    'hiring_team': [re.compile(p, re.I) for p in (
        r'\bhiring\b', r'\bjoin us\b', r'\bopen (positions|roles)\b', r'\bcareers\b',
        r"\bwe(')?re growing\b", r'\bjob openings?\b', r'\bapply now\b', r'\bjoin our team\b',
    )],
    'technology_adoption': [re.compile(p, re.I) for p in (
        r'\bmigrat(ing|ed|ion) to\b', r'\badopt(ing|ed|s)\b', r'\bimplement(ing|ed|s)\b',
        r'\bpowered by\b', r'\bbuilt on\b', r'\brolled out\b', r'\bintegrat(es|ed|ion) with\b',
    )],
    'expansion_partnerships': [re.compile(p, re.I) for p in (
        r'\bexpand(ing|s|ed)?\b', r'\bnew office\b', r'\bnew market\b', r'\binternational\b',
        r'\bglobal expansion\b', r'\bpartner(s|ed|ing|ship)\b', r'\bteams up with\b', r'\balliance\b',
    )],
    'product_strategy': [re.compile(p, re.I) for p in (
        r'\blaunch(es|ed|ing)?\b', r'\bintroduc(es|ed|ing)\b', r'\bunveil(s|ed)?\b',
        r'\bnew (product|feature|platform)\b', r'\bgeneral availability\b', r'\brelease[sd]?\b',
    )],
}

_NEWS_HOSTS = (
    'techcrunch.com', 'reuters.com', 'bloomberg.com', 'forbes.com', 'wsj.com', 'nytimes.com',
    'cnbc.com', 'businessinsider.com', 'venturebeat.com', 'theverge.com', 'axios.com',
)
_SOCIAL_HOSTS = ('linkedin.com', 'twitter.com', 'x.com', 'facebook.com', 'instagram.com', 'youtube.com')
_REVIEW_HOSTS = ('g2.com', 'capterra.com', 'trustradius.com', 'trustpilot.com', 'glassdoor.com')
_DIRECTORY_HOSTS = ('crunchbase.com', 'zoominfo.com', 'pitchbook.com', 'owler.com', 'apollo.io')
_JOB_HOSTS = ('greenhouse.io', 'lever.co', 'workable.com', 'ashbyhq.com', 'indeed.com', 'wellfound.com')
_PRESS_HOSTS = ('prnewswire.com', 'businesswire.com', 'globenewswire.com', 'accesswire.com')


def _host_in(host: str, hosts) -> bool:
    return any(host == h or host.endswith('.' + h) for h in hosts)


def detect_source_type(url: str, title: str = '') -> str:
    """Best guess at what kind of page a URL is, from its host, path and title."""
    parts = urlsplit(url)
    host = normalize_domain(parts.netloc)
    path = parts.path.lower()
    title = (title or '').lower()

    if host == 'sec.gov' or host.endswith('.sec.gov'):
        return 'sec_filing'
    if _host_in(host, _JOB_HOSTS) or any(seg in path for seg in ('/jobs', '/careers', '/job/')):
        return 'job_post'
    if _host_in(host, _PRESS_HOSTS) or any(seg in path for seg in ('/press', '/newsroom', '/news/')) \
            or 'announces' in title or 'press release' in title:
        return 'press_release'
    if _host_in(host, _NEWS_HOSTS):
        return 'news'
    if _host_in(host, _SOCIAL_HOSTS):
        return 'social'
    if _host_in(host, _REVIEW_HOSTS):
        return 'review'
    if _host_in(host, _DIRECTORY_HOSTS):
        return 'directory'
    if '/blog' in path or host.startswith('blog.'):
        return 'blog'
    if path in ('', '/') or any(seg in path for seg in ('/about', '/team', '/company')):
        return 'company_site'
    return 'other'


def chunk_hash(url: str, snippet: str) -> str:
    return hashlib.sha256(f"{url}\n{snippet}".encode('utf-8')).hexdigest()


def tag_categories(text: str) -> List[str]:
    return [category for category, patterns in CATEGORY_PATTERNS.items()
            if any(p.search(text) for p in patterns)]


def make_chunk(url: str, snippet: str, title: str = '', source_type: Optional[str] = None) -> EvidenceChunk:
    snippet = ' '.join(snippet.split())
    return EvidenceChunk(
        url=url,
        title=title,
        snippet=snippet,
        source_type=source_type or detect_source_type(url, title),
        hash=chunk_hash(url, snippet),
        categories=tag_categories(f"{title} {snippet}"),
    )


_SENTENCE_SPLIT = re.compile(r'(?<=[.!?])\s+|\n+')
_MARKDOWN_NOISE = re.compile(r'!\[[^\]]*\]\([^)]*\)|\[([^\]]*)\]\([^)]*\)|[#*_>`|]+')


def split_sentences(text: str) -> List[str]:
    """Sentences of readable length from page text or markdown."""
    text = _MARKDOWN_NOISE.sub(lambda m: m.group(1) or ' ', text or '')
    sentences = []
    for raw in _SENTENCE_SPLIT.split(text):
        sentence = ' '.join(raw.split())
        if MIN_SENTENCE_CHARS <= len(sentence) <= MAX_SENTENCE_CHARS:
            sentences.append(sentence)
    return sentences


def chunks_from_page(url: str, title: str, text: str, max_chunks: int) -> List[EvidenceChunk]:
    sentences = split_sentences(text)
    source_type = detect_source_type(url, title)
    tagged = [s for s in sentences if tag_categories(s)]
    picked = sentences[:CONTEXT_SENTENCES] + tagged
    chunks, seen = [], set()
    for sentence in picked:
        if sentence in seen:
            continue
        seen.add(sentence)
        chunks.append(make_chunk(url, sentence, title=title, source_type=source_type))
        if len(chunks) >= max_chunks:
            break
    return chunks


def _belongs_to(url: str, domain: str) -> bool:
    host = normalize_domain(urlsplit(url).netloc)
    return host == domain or host.endswith('.' + domain)


def collect_evidence(ctx: RunContext, candidate: CandidateCompany,
                     search_results: List[SearchResult] = None) -> List[EvidenceChunk]:
    """All deduplicated evidence chunks for one candidate."""
    cfg = get_section('evidence')
    domain = candidate.domain
    chunks: List[EvidenceChunk] = []

    seeds = [r for r in (search_results or []) if _belongs_to(r.url, domain)]
    seeds = seeds[:int(cfg.get('max_search_results_per_domain', 5))]
    for result in seeds:
        if result.snippet and len(result.snippet) > 20:
            chunks.append(make_chunk(result.url, result.snippet, title=result.title))
    if candidate.snippet and candidate.source_url:
        chunks.append(make_chunk(candidate.source_url, candidate.snippet, title=candidate.company_name))

    fetcher = ctx.services.fetcher
    if fetcher is not None:
        pages = cfg.get('pages', ['/', '/about', '/blog', '/careers'])
        failures = 0
        for path in pages:
            if ctx.should_stop_launching():
                logger.info("Deadline near, skipping remaining pages for %s", domain)
                break
            url = f"https://{domain}{path if path != '/' else ''}"
            try:
                page = call_with_retry(ctx.retry_policy, fetcher.scrape, url)
            except FETCH_ERRORS as e:
                failures += 1
                logger.info("Page fetch failed for %s: %s", url, e)
                continue
            chunks.extend(chunks_from_page(page.url, page.title, page.text,
                                           int(cfg.get('max_chunks_per_page', 8))))
        if pages and failures == len(pages):
            ctx.record_error('evidence', EvidenceFetchFailure(
                f"All {failures} pages failed to fetch for {domain}"), unit=domain)

    unique, seen = [], set()
    for chunk in chunks:
        if chunk.hash in seen:
            continue
        seen.add(chunk.hash)
        unique.append(chunk)

    ctx.register_chunks(unique)
    logger.debug("Collected %d evidence chunks for %s", len(unique), domain)
    return unique
