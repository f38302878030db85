"""
Run Coordinator — drives one hunt or watch run end to end.

  hunt:  PLAN → SEARCH → EXTRACT → DEDUP ┐
  watch: supplied domains / list → DEDUP ┴→ per candidate, concurrently:
         EVIDENCE → EVALUATE → GATE → ASSEMBLE → persist leads

The run moves pending → running → completed | failed. Only run-fatal errors
(bad configuration, missing provider, storage failure) fail a run; every other
failure is recorded against its unit and the run completes with whatever it
produced. Close to the wall-clock budget no new candidates are launched and
the run completes with partial results.
"""
import logging
from typing import List, Optional

from leaddrip.errors import InvalidConfiguration, LeadDripError
from leaddrip.models.run import SignalRun
from leaddrip.pipeline.assembler import assemble_lead
from leaddrip.pipeline.base import PipelineResult, PipelineServices, RunContext, RunOptions, run_bounded
from leaddrip.pipeline.dedup import deduplicate, is_valid_domain, normalize_domain
from leaddrip.pipeline.evaluator import evaluate_candidate
from leaddrip.pipeline.evidence import collect_evidence
from leaddrip.pipeline.executor import execute_queries, run_search
from leaddrip.pipeline.extractor import extract_candidates
from leaddrip.pipeline.planner import plan_queries
from leaddrip.pipeline.scorer import gate_candidate
from leaddrip.schemas import CandidateCompany, LeadRecord, UserConfig
from leaddrip.services.generation import usage_delta

logger = logging.getLogger('pipeline.coordinator')


def run_pipeline(store, user_id: str, config: Optional[UserConfig], options: RunOptions,
                 services: PipelineServices, **context_overrides) -> PipelineResult:
    """
    Execute one run for a user and return its leads, stats and error log.

    config may be None, in which case the user's stored config is loaded.
    context_overrides are passed to RunContext (limits, gate, retry_policy,
    clock, launch_cutoff_seconds, grace_seconds) for callers that need non-default knobs.
    """
    run = SignalRun(user_id=user_id, mode=options.mode, list_id=options.list_id)
    leads: List[LeadRecord] = []
    usage_before = _usage_snapshot(services)
    logger.info("Starting %s run %s for user %s", run.mode, run.id, user_id)

    try:
        store.save_run(run)
        run.start()

        if config is None:
            config = store.get_user_config(user_id)
            if config is None:
                raise InvalidConfiguration(f"No configuration stored for user {user_id}")
        _check_services(services, options.mode)

        ctx = RunContext(run, config, services, budget_seconds=options.budget_seconds, **context_overrides)

        if options.mode == 'hunt':
            candidates = _hunt_candidates(ctx, store, user_id)
            limit = options.limit if options.limit is not None else config.modes.hunt_daily_limit
        else:
            candidates = _watch_candidates(ctx, store, user_id, options)
            limit = options.limit if options.limit is not None else len(candidates)

        candidates = sorted(candidates, key=lambda c: -c.confidence)[:limit]
        logger.info("Processing %d candidates (limit=%d)", len(candidates), limit)

        produced = run_bounded(
            ctx, candidates, lambda c: _process_candidate(ctx, c),
            max_workers=ctx.limits.candidate_concurrency,
            stage='candidate',
            unit_name=lambda c: c.domain,
        )
        # Candidates abandoned at the deadline must not count toward this run.
        ctx.close()
        ranked = sorted((lead for _, lead in produced if lead is not None), key=lambda l: -l.score)
        ranked = ranked[:ctx.limits.max_leads_per_run]

        leads = store.add_new_leads(user_id, ranked, run_id=run.id)
        if len(leads) < len(ranked):
            run.increment('duplicates_skipped', len(ranked) - len(leads))
            logger.info("%d leads already stored by a concurrent run, dropped", len(ranked) - len(leads))

        run.usage = usage_delta(usage_before, _usage_snapshot(services))
        run.complete()
        run.summary = generate_run_summary(run)
        logger.info("Run %s completed: %s", run.id, run.summary)

    except LeadDripError as e:
        if not e.fatal:
            raise
        logger.error("Run %s failed: %s", run.id, e)
        _fail(run, f"{type(e).__name__}: {e}")
        run.usage = usage_delta(usage_before, _usage_snapshot(services))
        run.summary = generate_run_summary(run)
    except Exception as e:
        logger.exception("Run %s crashed", run.id)
        _fail(run, f"Unexpected error: {e}")
        run.summary = generate_run_summary(run)

    _persist_final(store, run)
    return PipelineResult(
        run_id=run.id,
        leads=leads,
        stats=run.stats.to_dict(),
        errors=list(run.errors),
        run=run,
        usage=run.usage,
    )


def _fail(run: SignalRun, reason: str):
    if not run.is_finished:
        run.fail(reason)


def _persist_final(store, run: SignalRun):
    try:
        store.save_run(run)
    except LeadDripError as e:
        logger.error("Could not persist final state of run %s: %s", run.id, e)


def _usage_snapshot(services: PipelineServices):
    generation = getattr(services, 'generation', None)
    return generation.usage() if generation is not None and hasattr(generation, 'usage') else {}


def _check_services(services: PipelineServices, mode: str):
    if services is None or services.generation is None:
        raise InvalidConfiguration("No generation provider configured")
    if mode == 'hunt' and services.search is None:
        raise InvalidConfiguration("Hunt mode needs a search provider")


# ── Candidate sources ────────────────────────────────────────────────────────

def _hunt_candidates(ctx: RunContext, store, user_id: str) -> List[CandidateCompany]:
    plan = plan_queries(ctx.config.icp, ctx.enabled_signals, max_queries=ctx.limits.max_queries)
    logger.info("Planned %d queries. ICP: %s", len(plan.queries), plan.icp_summary)

    results = execute_queries(ctx, plan.queries)
    ctx.search_results = results
    if not results:
        logger.warning("No search results for run %s", ctx.run.id)
        return []

    extraction = extract_candidates(ctx, results)
    dnc = store.get_do_not_contact(user_id)
    blocked = dnc['domain'] | store.get_recent_domains(user_id)
    return deduplicate(ctx, extraction.candidates, blocked, dnc['company'])


def _company_name_from_domain(domain: str) -> str:
    return domain.split('.')[0].replace('-', ' ').title()


def _watch_candidates(ctx: RunContext, store, user_id: str, options: RunOptions) -> List[CandidateCompany]:
    if options.domains:
        accounts = [{'domain': d, 'company_name': None} for d in options.domains]
    elif options.list_id:
        accounts = store.get_list_accounts(options.list_id, status='active')
    else:
        raise InvalidConfiguration("Watch mode needs domains or a list_id")

    ctx.set_stat('candidates_found', len(accounts))
    candidates, seen = [], set()
    for account in accounts:
        domain = normalize_domain(account['domain'])
        if domain in seen:
            continue
        if not is_valid_domain(domain):
            logger.warning("Skipping invalid watch domain %r", account['domain'])
            continue
        seen.add(domain)
        candidates.append(CandidateCompany(
            company_name=account.get('company_name') or _company_name_from_domain(domain),
            domain=domain,
            source_url=f"https://{domain}",
            confidence=1.0,
        ))

    # Watched accounts are re-checked on purpose, so only do-not-contact applies.
    dnc = store.get_do_not_contact(user_id)
    candidates = deduplicate(ctx, candidates, dnc['domain'], dnc['company'])

    if ctx.services.search is not None and candidates:
        ctx.search_results = _watch_searches(ctx, candidates)
    return candidates


def _watch_searches(ctx: RunContext, candidates: List[CandidateCompany]):
    """One news search per watched company to seed evidence beyond its own site."""

    def _one(candidate):
        return run_search(ctx, f'"{candidate.company_name}" {candidate.domain}', exclude_domains=[])

    completed = run_bounded(
        ctx, candidates, _one,
        max_workers=ctx.limits.search_concurrency,
        stage='search',
        unit_name=lambda c: c.domain,
    )
    return [r for _, batch in completed for r in batch]


# ── Per-candidate pipeline ───────────────────────────────────────────────────

def _process_candidate(ctx: RunContext, candidate: CandidateCompany) -> Optional[LeadRecord]:
    chunks = collect_evidence(ctx, candidate, ctx.search_results)
    report = evaluate_candidate(ctx, candidate, chunks)
    decision = gate_candidate(ctx, report)
    if not decision.passed:
        logger.debug("%s dropped: %s", candidate.domain, decision.reason)
        return None
    return assemble_lead(ctx, candidate, report, chunks, decision.score)


# ── Run summary generator ────────────────────────────────────────────────────

def generate_run_summary(run: SignalRun) -> str:
    """Human-readable funnel summary. Pure Python, no API calls."""
    s = run.stats
    mode = run.mode.capitalize()

    if run.status == 'failed':
        parts = [f"{mode} run failed."]
        progress = []
        if s.queries_executed:
            progress.append(f"{s.queries_executed} queries run")
        if s.candidates_found:
            progress.append(f"{s.candidates_found} candidates found")
        if s.leads_passed_gate:
            progress.append(f"{s.leads_passed_gate} leads assembled")
        if progress:
            parts.append("Before failure: " + ', '.join(progress) + '.')
        if run.error:
            parts.append(f"Error: {run.error}")
        return ' '.join(parts)

    if s.candidates_found == 0:
        if run.mode == 'hunt':
            return f"No candidate companies found from {s.queries_executed} queries. Check the ICP and signal queries."
        return "No accounts to watch."

    lines = []
    found = f"{mode} run found {s.candidates_found} candidates"
    if s.duplicates_skipped:
        found += f" ({s.duplicates_skipped} already known)"
    if run.mode == 'hunt':
        found += f" from {s.queries_executed} queries"
    lines.append(found + '.')
    lines.append(f"{s.candidates_after_dedup} researched with {s.evidence_chunks_fetched} evidence snippets "
                 f"and {s.signal_evaluations} signal checks.")

    outcome = f"{s.leads_passed_gate} leads delivered"
    dropped = []
    if s.disqualified:
        dropped.append(f"{s.disqualified} disqualified")
    gated = s.candidates_after_dedup - s.leads_generated - s.disqualified
    if gated > 0:
        dropped.append(f"{gated} below the confidence gate or unfinished")
    if dropped:
        outcome += ' (' + ', '.join(dropped) + ')'
    lines.append(outcome + '.')

    warnings = []
    if run.errors:
        kinds = sorted({e['kind'] for e in run.errors})
        warnings.append(f"{len(run.errors)} unit errors ({', '.join(kinds)}).")
    if s.candidates_after_dedup and s.evidence_chunks_fetched == 0:
        warnings.append("No evidence could be collected.")
    if any(e['kind'] in ('BudgetExhausted', 'Timeout') for e in run.errors):
        warnings.append("Time budget ran out before every candidate finished.")
    if warnings:
        lines.append('Warning: ' + ' '.join(warnings))
    return ' '.join(lines)
