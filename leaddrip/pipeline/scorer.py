"""
Scorer & Gate.

Score is the weighted share of enabled non-disqualifier signals answered
"yes", each weighted by its confidence, on a 0-100 scale. A confident "yes"
on any disqualifier vetoes the candidate outright. Survivors must clear the
overall-confidence gate to become leads.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from leaddrip.pipeline.base import RunContext
from leaddrip.schemas import SignalDefinition, SignalMatch, SignalMatchReport

logger = logging.getLogger('pipeline.scorer')


@dataclass
class GateDecision:
    passed: bool
    score: float
    reason: str = ''


def compute_score(matches: List[SignalMatch], signals: List[SignalDefinition]) -> float:
    scoring = {s.id: s for s in signals if s.enabled and not s.is_disqualifier}
    total_weight = sum(s.weight for s in scoring.values())
    if total_weight <= 0:
        return 0.0
    earned = sum(
        scoring[m.signal_id].weight * m.confidence
        for m in matches
        if m.result == 'yes' and m.signal_id in scoring
    )
    return round(min(100.0, max(0.0, earned / total_weight * 100)), 1)


def find_disqualifier(matches: List[SignalMatch], signals: List[SignalDefinition],
                      threshold: float = 0.5) -> Optional[SignalDefinition]:
    disqualifiers = {s.id: s for s in signals if s.enabled and s.is_disqualifier}
    for match in matches:
        signal = disqualifiers.get(match.signal_id)
        if signal and match.result == 'yes' and match.confidence >= threshold:
            return signal
    return None


def gate_candidate(ctx: RunContext, report: SignalMatchReport) -> GateDecision:
    """Apply veto and confidence gate, updating run counters. Marks the report if disqualified."""
    signals = ctx.enabled_signals
    score = compute_score(report.matches, signals)

    vetoed_by = find_disqualifier(report.matches, signals, ctx.gate.disqualifier_confidence)
    if vetoed_by is not None:
        report.disqualified = True
        report.disqualifier_reason = vetoed_by.name
        ctx.increment('disqualified')
        logger.info("%s disqualified by '%s'", report.domain, vetoed_by.name)
        return GateDecision(passed=False, score=score, reason=f"Disqualified: {vetoed_by.name}")

    if report.overall_confidence < ctx.gate.min_confidence:
        ctx.increment('insufficient_evidence')
        logger.debug("%s below confidence gate (%.2f < %.2f)",
                     report.domain, report.overall_confidence, ctx.gate.min_confidence)
        return GateDecision(passed=False, score=score, reason='Insufficient evidence')

    ctx.increment('leads_generated')
    return GateDecision(passed=True, score=score)
