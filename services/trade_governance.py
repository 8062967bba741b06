"""Decision combiner: turns multipliers and gate triggers into a GovernanceResult.

Rule:
  * 2+ gates triggered                      -> rejected
  * exactly 1 gate, or composite < 0.60     -> throttled
  * otherwise                               -> approved

Approved and throttled proposals get adjusted win probability, P&L ranges
and a phase-keyed duration window. Forensic scalping fields (capture ratio,
expected expectancy, exit-latency grade) are only filled for approved trades.

All functions are pure and deterministic. Nothing here logs or persists;
the caller owns that.
"""
from __future__ import annotations

import re
from collections import Counter
from typing import List, Optional, Sequence, Tuple

from schemas.governance import (
    UPSTREAM_BLOCK_REASON,
    ExitLatencyGrade,
    GovernanceContext,
    GovernanceDecision,
    GovernanceMultipliers,
    GovernanceResult,
    GovernanceStats,
    TradeMode,
    TradeProposal,
)
from services.gate_evaluator import evaluate_gates
from services.multiplier_composer import compose_multipliers
from trading_core.config import (
    DEFAULT_DECISION_TABLES,
    DEFAULT_GATE_THRESHOLDS,
    DEFAULT_MULTIPLIER_TABLES,
    DecisionTables,
    GateThresholds,
    MultiplierTables,
)

TOP_REASON_LIMIT = 5


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _mean_of(pair: Tuple[float, float]) -> float:
    return (pair[0] + pair[1]) / 2.0


# ---------------------------------------------------------------------------
# Decision pieces
# ---------------------------------------------------------------------------


def classify_decision(
    gate_count: int,
    composite: float,
    tables: DecisionTables = DEFAULT_DECISION_TABLES,
) -> GovernanceDecision:
    if gate_count >= tables.reject_gate_count:
        return "rejected"
    if gate_count == 1 or composite < tables.throttle_composite:
        return "throttled"
    return "approved"


def adjusted_win_probability(
    base: float,
    composite: float,
    tables: DecisionTables = DEFAULT_DECISION_TABLES,
) -> float:
    low, high = tables.win_probability_bounds
    return _clamp(base * (tables.win_probability_floor + composite * tables.win_probability_slope), low, high)


def drawdown_cap(composite: float) -> float:
    return max(0.15, 3.8 * (1 - (composite - 0.5) * 0.5))


def governance_score(composite: float, gate_count: int, is_major_pair: bool) -> float:
    score = composite * 60 + (25 if gate_count == 0 else 0) + (5 if is_major_pair else 0)
    return _clamp(score, 0.0, 100.0)


def confidence_boost(composite: float) -> float:
    if composite > 1.1:
        return 18.0
    if composite > 0.9:
        return 8.0
    if composite > 0.7:
        return -3.0
    return -12.0


def exit_latency_grade(exit_efficiency: float, session: float) -> ExitLatencyGrade:
    latency = exit_efficiency * session
    if latency > 1.2:
        return "A"
    if latency > 1.0:
        return "B"
    if latency > 0.85:
        return "C"
    return "D"


def alignment_label(ctx: GovernanceContext) -> str:
    if ctx.htf_supports and ctx.mtf_confirms and ctx.ltf_clean:
        return "Full Alignment"
    if ctx.htf_supports and ctx.mtf_confirms:
        return "HTF+MTF Aligned"
    if ctx.htf_supports:
        return "HTF Only"
    return "Misaligned"


def trade_mode(ctx: GovernanceContext) -> TradeMode:
    if ctx.volatility_phase == "expansion" and ctx.htf_supports and ctx.mtf_confirms:
        return "continuation"
    return "scalp"


def _shape_ranges(
    proposal: TradeProposal,
    multipliers: GovernanceMultipliers,
    ctx: GovernanceContext,
) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    win_boost = multipliers.exit_efficiency * (ctx.spread_stability_rank / 100.0)
    loss_reduction = multipliers.microstructure * multipliers.session

    win_low, win_high = proposal.base_win_range
    loss_low, loss_high = proposal.base_loss_range
    win_range = (
        win_low * (0.85 + win_boost * 0.35),
        win_high * (0.88 + win_boost * 0.30),
    )
    loss_range = (
        loss_low * (0.50 + loss_reduction * 0.40),
        loss_high * (0.75 + loss_reduction * 0.20),
    )
    return tuple(sorted(win_range)), tuple(sorted(loss_range))


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def evaluate_trade_proposal(
    proposal: TradeProposal,
    ctx: GovernanceContext,
    *,
    multiplier_tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES,
    gate_thresholds: GateThresholds = DEFAULT_GATE_THRESHOLDS,
    decision_tables: DecisionTables = DEFAULT_DECISION_TABLES,
) -> GovernanceResult:
    """Evaluate one proposal against its context snapshot."""
    multipliers = compose_multipliers(ctx, multiplier_tables)
    triggers = evaluate_gates(ctx, gate_thresholds)
    composite = multipliers.composite
    decision = classify_decision(len(triggers), composite, decision_tables)

    if decision == "rejected":
        win_probability = proposal.base_win_probability
        win_range = proposal.base_win_range
        loss_range = proposal.base_loss_range
    else:
        win_probability = adjusted_win_probability(proposal.base_win_probability, composite, decision_tables)
        win_range, loss_range = _shape_ranges(proposal, multipliers, ctx)

    approved = decision == "approved"
    spread = ctx.spread_stability_rank / 100.0
    capture = min(0.95, 0.45 + composite * 0.35 + spread * 0.1) if approved else 0.0
    expectancy = (
        win_probability * _mean_of(win_range) + (1 - win_probability) * _mean_of(loss_range)
        if approved
        else 0.0
    )

    return GovernanceResult(
        decision=decision,
        adjusted_win_probability=win_probability,
        adjusted_win_range=win_range,
        adjusted_loss_range=loss_range,
        adjusted_duration_minutes=decision_tables.duration_minutes[ctx.volatility_phase],
        adjusted_drawdown_cap=drawdown_cap(composite),
        multipliers=multipliers,
        triggered_gates=triggers,
        governance_score=governance_score(composite, len(triggers), ctx.is_major_pair),
        confidence_boost=confidence_boost(composite),
        capture_ratio=capture,
        expected_expectancy=expectancy,
        friction_cost=(1 - spread) * 0.15,
        exit_latency_grade=(
            exit_latency_grade(multipliers.exit_efficiency, multipliers.session) if approved else None
        ),
        alignment_label=alignment_label(ctx),
        volatility_label=decision_tables.phase_labels[ctx.volatility_phase],
        session_label=decision_tables.session_labels[ctx.session],
        trade_mode=trade_mode(ctx),
    )


decide = evaluate_trade_proposal


def upstream_blocked_result(proposal: TradeProposal, reason: str = UPSTREAM_BLOCK_REASON) -> GovernanceResult:
    """Hard block issued when market data could not be obtained."""
    return GovernanceResult(
        decision="rejected",
        adjusted_win_probability=proposal.base_win_probability,
        adjusted_win_range=proposal.base_win_range,
        adjusted_loss_range=proposal.base_loss_range,
        adjusted_duration_minutes=(0, 0),
        adjusted_drawdown_cap=0.0,
        multipliers=None,
        triggered_gates=[],
        governance_score=0.0,
        confidence_boost=0.0,
        blocked_by_upstream=True,
        block_reason=reason,
    )


def evaluate_with_market_context(
    proposal: TradeProposal,
    ctx: Optional[GovernanceContext],
    **kwargs,
) -> GovernanceResult:
    """Evaluate, treating a missing context as an upstream outage (no trade)."""
    if ctx is None:
        return upstream_blocked_result(proposal)
    return evaluate_trade_proposal(proposal, ctx, **kwargs)


# ---------------------------------------------------------------------------
# Aggregate stats
# ---------------------------------------------------------------------------

_NUMERIC_DETAIL = re.compile(r"\s*-?\d+(\.\d+)?\s*(%|×|p)?")


def normalize_reason(reason: str) -> str:
    """Strip numeric detail so reasons of the same gate count together."""
    head = reason.split("(")[0]
    return re.sub(r"\s+", " ", _NUMERIC_DETAIL.sub(" ", head)).strip()


def compute_governance_stats(results: Sequence[GovernanceResult]) -> GovernanceStats:
    total = len(results)
    if total == 0:
        return GovernanceStats()

    approved = [r for r in results if r.decision == "approved"]
    throttled = sum(1 for r in results if r.decision == "throttled")
    rejected = sum(1 for r in results if r.decision == "rejected")
    composites = [r.multipliers.composite for r in results if r.multipliers is not None]

    gate_counts: Counter = Counter()
    reason_counts: Counter = Counter()
    for result in results:
        gate_counts.update(result.gate_ids)
        reason_counts.update(normalize_reason(reason) for reason in result.rejection_reasons)

    def _avg(values: List[float]) -> float:
        return sum(values) / len(values) if values else 0.0

    return GovernanceStats(
        total_proposals=total,
        approved=len(approved),
        throttled=throttled,
        rejected=rejected,
        blocked_by_upstream=sum(1 for r in results if r.blocked_by_upstream),
        approval_rate=len(approved) / total,
        rejection_rate=rejected / total,
        avg_composite=_avg(composites),
        avg_governance_score=_avg([r.governance_score for r in results]),
        avg_capture_ratio=_avg([r.capture_ratio for r in approved]),
        avg_expected_expectancy=_avg([r.expected_expectancy for r in approved]),
        approved_win_rate=_avg([r.adjusted_win_probability for r in approved]),
        gate_counts=dict(gate_counts),
        top_rejection_reasons=reason_counts.most_common(TOP_REASON_LIMIT),
    )
