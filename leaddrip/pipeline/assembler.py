"""
Lead Assembler — builds the final LeadRecord from a gated candidate.

Pure and deterministic: no model calls. Everything here is derived from the
signal matches, their cited evidence, and the user's ICP and offer.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Tuple
from urllib.parse import quote_plus

from leaddrip.pipeline.base import RunContext
from leaddrip.schemas import (
    Angle, CandidateCompany, EvidenceChunk, LeadRecord, SignalDefinition, SignalMatchReport,
    TriggeredSignal,
)

logger = logging.getLogger('pipeline.assembler')

DEFAULT_TARGET_TITLES = ['VP Sales', 'Head of Growth', 'CEO']
MAX_NARRATIVE = 8
MIN_NARRATIVE = 3

LINKEDIN_PEOPLE_SEARCH = 'https://www.linkedin.com/search/results/people/'

# How each category reads in a sentence: "{company} {phrase}".
CATEGORY_PHRASES = {
    'funding_corporate': 'has fresh capital',
    'leadership_org': 'has new leadership',
    'product_strategy': 'is shipping something new',
    'hiring_team': 'is growing the team',
    'expansion_partnerships': 'is expanding',
    'technology_adoption': 'is changing its stack',
    'risk_compliance': 'is under compliance pressure',
}


def select_triggered_signals(report: SignalMatchReport, signals: List[SignalDefinition],
                             floor: float = 0.5) -> List[Tuple[TriggeredSignal, object]]:
    """(TriggeredSignal, SignalMatch) pairs, heaviest signal first."""
    by_id = {s.id: s for s in signals if not s.is_disqualifier}
    triggered = []
    for match in report.matches:
        signal = by_id.get(match.signal_id)
        if signal is None or match.result != 'yes' or match.confidence < floor:
            continue
        triggered.append((TriggeredSignal(
            signal_id=signal.id,
            signal_name=signal.name,
            category=signal.category,
            priority=signal.priority,
            weight=signal.weight,
            confidence=match.confidence,
        ), match))
    triggered.sort(key=lambda pair: (-pair[0].weight, -pair[0].confidence))
    return triggered


def build_why_now(company: str, triggered: List[TriggeredSignal]) -> str:
    if not triggered:
        return f"{company} matches your ideal customer profile."
    names = [t.signal_name.lower() for t in triggered[:3]]
    if len(names) == 1:
        joined = names[0]
    else:
        joined = ', '.join(names[:-1]) + f" and {names[-1]}"
    return f"{company} shows {joined}, so the timing for outreach is strong."


def build_linkedin_search(company: str, roles: List[str], exclude_roles: List[str] = ()) -> Tuple[str, str]:
    """(people-search URL, boolean query) for finding buyers at the company."""
    titles = [r for r in roles if r.strip()][:4] or DEFAULT_TARGET_TITLES
    excluded = [r for r in exclude_roles if r.strip()][:4]
    keywords = f'"{company}" ' + ' OR '.join(titles)
    query = f'"{company}" (' + ' OR '.join(f'"{t}"' for t in titles) + ')'
    if excluded:
        keywords += ''.join(f' NOT {r}' for r in excluded)
        query += ''.join(f' NOT "{r}"' for r in excluded)
    url = f"{LINKEDIN_PEOPLE_SEARCH}?keywords={quote_plus(keywords)}&origin=GLOBAL_SEARCH_HEADER"
    return url, query


def build_narrative(triggered, chunks: List[EvidenceChunk]) -> List[str]:
    """
    3-8 bullets, each ending in the URL it came from.

    Signal reasoning comes first, then evidence chunks tagged with a signal
    category. Below three bullets the rest of the cited material pads the
    list: the matches' other snippets, untagged chunks, then one line per
    remaining cited URL. Fewer than three only when nothing else is cited.
    """
    bullets, used = [], set()

    def add(text, url):
        text = (text or '').strip()
        if not text or not url or (url, text) in used or len(bullets) >= MAX_NARRATIVE:
            return
        used.add((url, text))
        bullets.append(f"{text} ({url})")

    for t, match in triggered:
        if not match.evidence_urls:
            continue
        text = match.reasoning or (match.evidence_snippets[0] if match.evidence_snippets else t.signal_name)
        add(f"{t.signal_name}: {text}", match.evidence_urls[0])
        used.add((match.evidence_urls[0], text))

    for chunk in chunks:
        if chunk.categories:
            add(chunk.snippet, chunk.url)

    if len(bullets) < MIN_NARRATIVE:
        for _, match in triggered:
            for i, snippet in enumerate(match.evidence_snippets):
                if match.evidence_urls:
                    add(snippet, match.evidence_urls[min(i, len(match.evidence_urls) - 1)])
    for chunk in chunks:
        if len(bullets) >= MIN_NARRATIVE:
            break
        add(chunk.snippet, chunk.url)
    for t, match in triggered:
        for url in match.evidence_urls:
            if len(bullets) >= MIN_NARRATIVE:
                break
            add(f"{t.signal_name} ({t.priority} priority) confirmed with {t.confidence:.0%} confidence", url)
    return bullets


def build_angles(company: str, triggered) -> List[Angle]:
    angles = []
    for t, match in triggered:
        if not match.evidence_urls:
            continue
        phrase = CATEGORY_PHRASES.get(t.category, 'has a relevant change underway')
        angles.append(Angle(
            title=t.signal_name,
            description=f"{company} {phrase}. Lead with {t.signal_name.lower()} and tie it to the outcome you deliver.",
            evidence_url=match.evidence_urls[0],
        ))
    return angles


def build_openers(company: str, triggered: List[TriggeredSignal], offer) -> Tuple[str, str]:
    top = triggered[0].signal_name.lower() if triggered else 'your recent momentum'
    pitch = (offer.value_proposition or offer.description or '').strip().rstrip('.')
    short = f"Saw the news on {top} at {company}. Worth a quick chat about what usually comes next?"
    medium_parts = [
        f"Noticed {company} {CATEGORY_PHRASES.get(triggered[0].category, 'is on the move') if triggered else 'is on the move'}, specifically {top}.",
    ]
    if pitch:
        medium_parts.append(f"Teams at that stage often lean on us for {pitch[0].lower() + pitch[1:]}.")
    else:
        medium_parts.append("Teams at that stage usually hit the same handful of bottlenecks.")
    medium_parts.append("Open to a 15-minute call next week to compare notes?")
    return short, ' '.join(medium_parts)


def assemble_lead(ctx: RunContext, candidate: CandidateCompany, report: SignalMatchReport,
                  chunks: List[EvidenceChunk], score: float) -> LeadRecord:
    signals = ctx.enabled_signals
    icp = ctx.config.icp
    pairs = select_triggered_signals(report, signals, ctx.gate.signal_confidence_floor)
    triggered = [t for t, _ in pairs]

    evidence_urls, evidence_snippets = [], []
    for _, match in pairs:
        for url in match.evidence_urls:
            if url not in evidence_urls:
                evidence_urls.append(url)
        evidence_snippets.extend(s for s in match.evidence_snippets if s not in evidence_snippets)

    linkedin_url, linkedin_query = build_linkedin_search(candidate.company_name, icp.target_roles, icp.exclude_roles)
    opener_short, opener_medium = build_openers(candidate.company_name, triggered, ctx.config.offer)
    now = datetime.now(timezone.utc)

    lead = LeadRecord(
        id=str(uuid.uuid4()),
        user_id=ctx.run.user_id,
        date=now.date().isoformat(),
        domain=candidate.domain,
        company_name=candidate.company_name,
        industry=icp.industries[0] if icp.industries else None,
        geo=icp.geos[0] if icp.geos else None,
        score=score,
        why_now=build_why_now(candidate.company_name, triggered),
        triggered_signals=triggered,
        evidence_urls=evidence_urls,
        evidence_snippets=evidence_snippets[:10],
        linkedin_search_url=linkedin_url,
        linkedin_search_query=linkedin_query,
        target_titles=list(icp.target_roles) or list(DEFAULT_TARGET_TITLES),
        opener_short=opener_short,
        opener_medium=opener_medium,
        angles=build_angles(candidate.company_name, pairs),
        narrative=build_narrative(pairs, chunks),
        created_at=now,
        updated_at=now,
    )
    ctx.increment('leads_passed_gate')
    return lead
