"""
Deduplicator — one candidate per company domain.

Within a run the highest-confidence candidate for a domain wins. Across runs,
domains on the user's do-not-contact list or among their recent leads are
dropped and counted as duplicates.
"""
import logging
import re
from typing import Dict, Iterable, List, Set, Tuple

from leaddrip.schemas import CandidateCompany

logger = logging.getLogger('pipeline.dedup')

_PROTOCOL = re.compile(r'^[a-z][a-z0-9+.\-]*://')
_PORT = re.compile(r':\d*$')
_DOMAIN = re.compile(r'^(?=.{4,253}$)([a-z0-9](?:[a-z0-9\-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$')


def _normalize_once(domain: str) -> str:
    domain = domain.strip().lower()
    domain = _PROTOCOL.sub('', domain)
    if domain.startswith('www.'):
        domain = domain[4:]
    for sep in ('/', '?', '#'):
        domain = domain.split(sep, 1)[0]
    return _PORT.sub('', domain).strip()


def normalize_domain(value: str) -> str:
    """
    Canonical form of a domain or URL.

    "https://WWW.Example.com/path:8080" → "example.com". Applying it twice
    gives the same result as applying it once.
    """
    domain = value or ''
    while True:
        normalized = _normalize_once(domain)
        if normalized == domain:
            return normalized
        domain = normalized


def is_valid_domain(domain: str) -> bool:
    """At least two labels and an alphabetic TLD of two or more characters."""
    return bool(_DOMAIN.match(domain or ''))


def matches_domain(domain: str, blocked: Iterable[str]) -> bool:
    """True if domain equals, or is a subdomain of, any blocked domain."""
    for b in blocked:
        if domain == b or domain.endswith('.' + b):
            return True
    return False


def dedupe_within_run(candidates: Iterable[CandidateCompany]) -> List[CandidateCompany]:
    """Keep the highest-confidence candidate per normalized domain; ties keep the first seen."""
    best: Dict[str, CandidateCompany] = {}
    order: List[str] = []
    for candidate in candidates:
        domain = normalize_domain(candidate.domain)
        if domain != candidate.domain:
            candidate = candidate.model_copy(update={'domain': domain})
        current = best.get(domain)
        if current is None:
            best[domain] = candidate
            order.append(domain)
        elif candidate.confidence > current.confidence:
            best[domain] = candidate
    return [best[d] for d in order]


def filter_known_domains(
    candidates: Iterable[CandidateCompany],
    blocked_domains: Set[str],
    blocked_companies: Set[str] = frozenset(),
) -> Tuple[List[CandidateCompany], int]:
    """Drop candidates whose domain or company name is already known. Returns (kept, skipped)."""
    kept, skipped = [], 0
    for candidate in candidates:
        if candidate.domain in blocked_domains or candidate.company_name.strip().lower() in blocked_companies:
            logger.debug("Skipping known company %s", candidate.domain)
            skipped += 1
            continue
        kept.append(candidate)
    return kept, skipped


def deduplicate(ctx, candidates: List[CandidateCompany], blocked_domains: Set[str],
                blocked_companies: Set[str] = frozenset()) -> List[CandidateCompany]:
    """Within-run then cross-run dedup; updates candidates_after_dedup and duplicates_skipped."""
    unique = dedupe_within_run(candidates)
    kept, skipped = filter_known_domains(unique, blocked_domains, blocked_companies)
    ctx.increment('duplicates_skipped', skipped)
    ctx.set_stat('candidates_after_dedup', len(kept))
    logger.info("Dedup: %d candidates → %d unique → %d new (%d previously seen)",
                len(candidates), len(unique), len(kept), skipped)
    return kept
