"""
Candidate Extractor — asks the model which companies the search results are about.

Results go to the model in batches. Each batch's output is validated against
CandidateExtractionResult (with re-prompts on invalid output); a batch that
never validates is recorded as an ExtractionFailure and skipped. Candidates
are then filtered: low confidence, publisher/social domains and malformed
domains are dropped.
"""
import logging
from typing import List

from leaddrip.errors import ExtractionFailure, ProviderRequestError, StructuredOutputError
from leaddrip.pipeline.base import RunContext, run_bounded
from leaddrip.pipeline.dedup import is_valid_domain, matches_domain, normalize_domain
from leaddrip.pipeline.pipeline_config import get_section
from leaddrip.pipeline.planner import describe_size
from leaddrip.schemas import CandidateCompany, CandidateExtractionResult, ICP, SearchResult

logger = logging.getLogger('pipeline.extractor')

EXTRACTION_SYSTEM_PROMPT = """You identify B2B companies mentioned in web search results.

For each result, decide which company (if any) the result is primarily about.
Return the company's own website domain, not the publisher's domain: an
article on techcrunch.com about Acme should yield acme.com.

Rules:
- Skip news outlets, job boards, social networks, directories and aggregators.
- Skip results that are not about a specific company.
- Skip companies in an excluded industry or geography.
- confidence is 0-1: how sure you are of both the company and its domain.
- source_url is the search result URL the company came from.
- snippet is one sentence from the result that mentions the company."""


def chunked(items, size):
    for i in range(0, len(items), size):
        yield items[i:i + size]


def build_extraction_prompt(results: List[SearchResult], icp: ICP) -> str:
    lines = []
    size = describe_size(icp)
    if icp.industries or icp.geos or size:
        profile = (f"Target profile: industries={', '.join(icp.industries) or 'any'}; "
                   f"geos={', '.join(icp.geos) or 'any'}")
        if size:
            profile += f"; size={size}"
        lines.append(profile)
    excluded = []
    if icp.exclude_industries:
        excluded.append(f"industries={', '.join(icp.exclude_industries)}")
    if icp.exclude_geos:
        excluded.append(f"geos={', '.join(icp.exclude_geos)}")
    if excluded:
        lines.append('Exclude companies in: ' + '; '.join(excluded))
    if lines:
        lines.append('')
    lines.append('SEARCH RESULTS:')
    for i, result in enumerate(results, 1):
        lines.append(f"[{i}] {result.title}")
        lines.append(f"    URL: {result.url}")
        if result.snippet:
            lines.append(f"    {result.snippet[:500]}")
    return '\n'.join(lines)


def filter_candidates(candidates: List[CandidateCompany], min_confidence: float,
                      excluded_domains: List[str]) -> List[CandidateCompany]:
    kept = []
    for candidate in candidates:
        domain = normalize_domain(candidate.domain)
        if candidate.confidence < min_confidence:
            continue
        if not is_valid_domain(domain):
            logger.debug("Dropping candidate with malformed domain %r", candidate.domain)
            continue
        if matches_domain(domain, excluded_domains):
            logger.debug("Dropping publisher domain %s", domain)
            continue
        kept.append(candidate.model_copy(update={
            'domain': domain,
            'company_name': candidate.company_name.strip() or domain.split('.')[0].title(),
        }))
    return kept


def extract_batch(ctx: RunContext, batch: List[SearchResult]) -> List[CandidateCompany]:
    cfg = get_section('extraction')
    try:
        result = ctx.services.generation.generate_structured(
            build_extraction_prompt(batch, ctx.config.icp),
            CandidateExtractionResult,
            system=EXTRACTION_SYSTEM_PROMPT,
            feature='extraction',
            max_attempts=int(cfg.get('max_attempts', 3)),
        )
    except (StructuredOutputError, ProviderRequestError) as e:
        raise ExtractionFailure(f"Batch of {len(batch)} results skipped: {e}") from e
    return result.candidates


def extract_candidates(ctx: RunContext, results: List[SearchResult]) -> CandidateExtractionResult:
    cfg = get_section('extraction')
    excluded = [normalize_domain(d) for d in get_section('search').get('exclude_domains', [])]
    batches = list(chunked(results, int(cfg.get('batch_size', 20))))

    completed = run_bounded(
        ctx, batches, lambda batch: extract_batch(ctx, batch),
        max_workers=ctx.limits.search_concurrency,
        stage='extraction',
        unit_name=lambda batch: f"{len(batch)} results from {batch[0].url}",
    )

    candidates = []
    for _, raw in completed:
        candidates.extend(filter_candidates(raw, float(cfg.get('min_candidate_confidence', 0.6)), excluded))

    ctx.increment('candidates_found', len(candidates))
    logger.info("Extracted %d candidates from %d results in %d batches",
                len(candidates), len(results), len(batches))
    return CandidateExtractionResult(candidates=candidates, total_results_processed=len(results))
