"""
Query Planner — turns the ICP and signal library into web search queries.

Deterministic: each non-disqualifier signal's query templates are expanded
over the ICP's industry × geo terms. Templates may use {industry}, {geo} and
{year}; templates without placeholders get the ICP terms appended.

The plan is capped at max_queries. Every signal keeps at least its first
query while room allows, then remaining slots go to the highest-priority,
highest-weight signals. When the cap binds, lowest-priority signals lose
queries first.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List

from leaddrip.errors import InvalidConfiguration
from leaddrip.schemas import ICP, PRIORITY_RANK, QueryPlan, SearchQuery, SignalDefinition

logger = logging.getLogger('pipeline.planner')

MAX_PLAN_QUERIES = 50
DEFAULT_SOURCE_TYPES = ['news', 'press_release', 'company_site']

# Used when a signal ships without templates of its own.
CATEGORY_TEMPLATES = {
    'funding_corporate': ['{industry} startup raises funding {geo} {year}'],
    'leadership_org': ['{industry} company appoints new executive {geo} {year}'],
    'product_strategy': ['{industry} company launches new product {geo} {year}'],
    'hiring_team': ['{industry} company hiring {geo}'],
    'expansion_partnerships': ['{industry} company expands new market partnership {geo} {year}'],
    'technology_adoption': ['{industry} company migrates to new platform {geo} {year}'],
    'risk_compliance': ['{industry} company compliance audit {geo} {year}'],
}


def _expand(template: str, industry: str, geo: str, year: int) -> str:
    if any(token in template for token in ('{industry}', '{geo}', '{year}')):
        text = template.replace('{industry}', industry).replace('{geo}', geo).replace('{year}', str(year))
    else:
        text = f"{template} {industry} {geo}"
    return ' '.join(text.split())


def _signal_sort_key(signal: SignalDefinition):
    return (-PRIORITY_RANK[signal.priority], -signal.weight)


def describe_size(icp: ICP) -> str:
    """'50-500 employees', '50+ employees', or '' when no range is set."""
    size = icp.company_size_range
    if not size or not (size.min or size.max):
        return ''
    lo = size.min or 1
    return f"{lo}-{size.max} employees" if size.max else f"{lo}+ employees"


def summarize_icp(icp: ICP) -> str:
    parts = []
    if icp.industries:
        parts.append('Industries: ' + ', '.join(icp.industries))
    if icp.geos:
        parts.append('Geos: ' + ', '.join(icp.geos))
    if describe_size(icp):
        parts.append('Size: ' + describe_size(icp))
    if icp.target_roles:
        parts.append('Roles: ' + ', '.join(icp.target_roles))
    if icp.exclude_industries:
        parts.append('Excluding industries: ' + ', '.join(icp.exclude_industries))
    if icp.exclude_geos:
        parts.append('Excluding geos: ' + ', '.join(icp.exclude_geos))
    if icp.exclude_roles:
        parts.append('Excluding roles: ' + ', '.join(icp.exclude_roles))
    return '; '.join(parts)


def summarize_signals(signals: List[SignalDefinition]) -> str:
    return ', '.join(
        f"{s.name} ({s.priority}, w{s.weight:g}{', disqualifier' if s.is_disqualifier else ''})"
        for s in signals
    )


def plan_queries(icp: ICP, signals: List[SignalDefinition], max_queries: int = 50, year: int = None) -> QueryPlan:
    """Build a capped, deduplicated QueryPlan. Raises InvalidConfiguration on an empty ICP."""
    if not icp.industries and not icp.geos:
        raise InvalidConfiguration("ICP needs at least one industry or geo to plan searches")

    max_queries = min(max_queries, MAX_PLAN_QUERIES)
    year = year or datetime.now(timezone.utc).year
    industries = icp.industries or ['']
    geos = icp.geos or ['']
    enabled = [s for s in signals if s.enabled]
    searchable = sorted((s for s in enabled if not s.is_disqualifier), key=_signal_sort_key)

    per_signal: Dict[str, List[SearchQuery]] = {}
    for signal in searchable:
        templates = signal.query_templates or CATEGORY_TEMPLATES.get(signal.category, [signal.name])
        queries = []
        for template in templates:
            for industry in industries:
                for geo in geos:
                    queries.append(SearchQuery(
                        query=_expand(template, industry, geo, year),
                        target_signals=[signal.id],
                        expected_source_types=list(signal.accepted_sources) or list(DEFAULT_SOURCE_TYPES),
                        rationale=f"Looks for '{signal.name}' among {industry or 'any'} companies in {geo or 'any geo'}",
                    ))
        per_signal[signal.id] = queries

    if not searchable:
        # Only disqualifiers configured: search the ICP itself so there is something to vet.
        per_signal['_icp'] = [
            SearchQuery(
                query=_expand('{industry} companies {geo}', industry, geo, year),
                expected_source_types=list(DEFAULT_SOURCE_TYPES),
                rationale='Broad ICP discovery',
            )
            for industry in industries for geo in geos
        ]

    # Round-robin by priority: first query of every signal, then second, ...
    ordered: List[SearchQuery] = []
    by_text: Dict[str, SearchQuery] = {}
    depth = 0
    while len(by_text) < max_queries and any(depth < len(q) for q in per_signal.values()):
        for queries in per_signal.values():
            if depth >= len(queries) or len(by_text) >= max_queries:
                continue
            query = queries[depth]
            key = query.query.lower()
            if key in by_text:
                merged = by_text[key]
                for signal_id in query.target_signals:
                    if signal_id not in merged.target_signals:
                        merged.target_signals.append(signal_id)
                continue
            by_text[key] = query
            ordered.append(query)
        depth += 1

    dropped = sum(len(q) for q in per_signal.values()) - len(ordered)
    if dropped > 0:
        logger.info("Query plan capped at %d; %d lower-priority or duplicate queries dropped", max_queries, dropped)

    return QueryPlan(
        queries=ordered,
        icp_summary=summarize_icp(icp),
        signals_summary=summarize_signals(enabled),
    )
