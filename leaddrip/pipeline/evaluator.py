"""
Signal Evaluator — answers each signal question for a candidate from its evidence.

For every enabled signal the evidence is narrowed to accepted source types
and, where the category has keyword heuristics, to chunks tagged with that
category. No evidence left means "unknown" without calling the model. A "yes"
must cite at least one URL from the evidence it was shown or it is demoted
to "unknown".
"""
import logging
from typing import List

from leaddrip.errors import ProviderRequestError, SignalEvaluationFailure, StructuredOutputError
from leaddrip.pipeline.base import RunContext
from leaddrip.pipeline.evidence import CATEGORY_PATTERNS
from leaddrip.pipeline.pipeline_config import get_section
from leaddrip.schemas import (
    CandidateCompany, EvidenceChunk, SignalAnswer, SignalDefinition, SignalMatch, SignalMatchReport,
)

logger = logging.getLogger('pipeline.evaluator')

SIGNAL_SYSTEM_PROMPT = """You are a B2B sales researcher checking one buying signal for one company.

Answer strictly from the evidence provided. Do not use outside knowledge.
- result "yes": the evidence clearly shows the signal for THIS company.
- result "no": the evidence clearly shows the opposite.
- result "unknown": the evidence is missing, ambiguous, or about another company.
- confidence is 0-1.
- evidence_urls must be copied exactly from the evidence list.
- evidence_snippets are short quotes from that evidence.
- reasoning is one or two sentences."""


def select_evidence(signal: SignalDefinition, chunks: List[EvidenceChunk], max_chunks: int = 8) -> List[EvidenceChunk]:
    accepted = set(signal.accepted_sources)
    selected = [c for c in chunks if not accepted or c.source_type in accepted]
    if signal.category in CATEGORY_PATTERNS:
        selected = [c for c in selected if signal.category in c.categories]
    return selected[:max_chunks]


def build_signal_prompt(signal: SignalDefinition, candidate: CandidateCompany, chunks: List[EvidenceChunk]) -> str:
    question = signal.question.replace('{account}', candidate.company_name)
    lines = [
        f"COMPANY: {candidate.company_name} ({candidate.domain})",
        f"SIGNAL: {signal.name}",
        f"QUESTION: {question}",
        '',
        'EVIDENCE:',
    ]
    for i, chunk in enumerate(chunks, 1):
        lines.append(f"[{i}] {chunk.source_type} | {chunk.url}")
        if chunk.title:
            lines.append(f"    Title: {chunk.title}")
        lines.append(f"    {chunk.snippet}")
    return '\n'.join(lines)


def _to_match(signal: SignalDefinition, answer: SignalAnswer, chunks: List[EvidenceChunk]) -> SignalMatch:
    shown = {c.url for c in chunks}
    cited = [u for u in answer.evidence_urls if u in shown]
    result, confidence, reasoning = answer.result, answer.confidence, answer.reasoning
    if result == 'yes' and not cited:
        logger.debug("Demoting '%s' yes without a valid citation", signal.name)
        result, confidence = 'unknown', 0.0
        reasoning = (reasoning + ' (no supporting citation)').strip()
    return SignalMatch(
        signal_id=signal.id,
        signal_name=signal.name,
        result=result,
        confidence=confidence,
        evidence_urls=cited,
        evidence_snippets=answer.evidence_snippets[:3],
        reasoning=reasoning,
    )


def evaluate_signal(ctx: RunContext, candidate: CandidateCompany, signal: SignalDefinition,
                    chunks: List[EvidenceChunk]) -> SignalMatch:
    ctx.increment('signal_evaluations')
    selected = select_evidence(signal, chunks, int(get_section('evidence').get('max_chunks_per_signal', 8)))
    if not selected:
        ctx.increment('insufficient_evidence')
        return SignalMatch(signal_id=signal.id, signal_name=signal.name, result='unknown',
                           confidence=0.0, reasoning='No relevant evidence found')

    try:
        answer = ctx.services.generation.generate_structured(
            build_signal_prompt(signal, candidate, selected),
            SignalAnswer,
            system=SIGNAL_SYSTEM_PROMPT,
            feature='scoring',
        )
    except (StructuredOutputError, ProviderRequestError) as e:
        ctx.record_error('evaluation', SignalEvaluationFailure(
            f"'{signal.name}' not evaluated: {e}"), unit=candidate.domain)
        return SignalMatch(signal_id=signal.id, signal_name=signal.name, result='unknown',
                           confidence=0.0, reasoning='Evaluation failed')
    return _to_match(signal, answer, selected)


def overall_confidence(matches: List[SignalMatch], signals: List[SignalDefinition]) -> float:
    """Mean confidence of "yes" answers on non-disqualifier signals, 0 when there are none."""
    disqualifiers = {s.id for s in signals if s.is_disqualifier}
    yes = [m.confidence for m in matches if m.result == 'yes' and m.signal_id not in disqualifiers]
    return round(sum(yes) / len(yes), 4) if yes else 0.0


def evaluate_candidate(ctx: RunContext, candidate: CandidateCompany,
                       chunks: List[EvidenceChunk]) -> SignalMatchReport:
    signals = ctx.enabled_signals
    matches = [evaluate_signal(ctx, candidate, signal, chunks) for signal in signals]
    return SignalMatchReport(
        domain=candidate.domain,
        company_name=candidate.company_name,
        matches=matches,
        overall_confidence=overall_confidence(matches, signals),
    )
