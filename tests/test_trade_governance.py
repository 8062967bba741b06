"""Tests for the decision combiner and batch governance stats.

Covers:
- approved / throttled / rejected classification is exhaustive and exclusive
- strong-context and double-gate reference scenarios
- adjusted win probability bounds and range shaping
- forensic fields only on approved trades
- upstream market-data outage is a hard block
- aggregate stats and normalized rejection reasons
"""
from __future__ import annotations

import pytest

from schemas.governance import GovernanceContext, TradeProposal
from services.trade_governance import (
    adjusted_win_probability,
    classify_decision,
    compute_governance_stats,
    confidence_boost,
    decide,
    drawdown_cap,
    evaluate_trade_proposal,
    evaluate_with_market_context,
    exit_latency_grade,
    normalize_reason,
    upstream_blocked_result,
)


def _ctx(**overrides) -> GovernanceContext:
    defaults = dict(
        alignment_score=90.0,
        htf_supports=True,
        mtf_confirms=True,
        ltf_clean=True,
        volatility_phase="ignition",
        phase_confidence=90.0,
        liquidity_shock_prob=10.0,
        spread_stability_rank=85.0,
        friction_ratio=5.0,
        pair_expectancy=75.0,
        pair_favored=True,
        is_major_pair=True,
        session="london-open",
        session_aggressiveness=88.0,
        sequencing_cluster="profit-momentum",
    )
    defaults.update(overrides)
    return GovernanceContext(**defaults)


def _proposal(**overrides) -> TradeProposal:
    defaults = dict(
        pair="EUR_USD",
        direction="long",
        base_win_probability=0.55,
        base_win_range=(4.0, 12.0),
        base_loss_range=(-10.0, -3.0),
    )
    defaults.update(overrides)
    return TradeProposal(**defaults)


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


def test_strong_context_is_approved():
    result = evaluate_trade_proposal(_proposal(), _ctx())
    assert result.triggered_gates == []
    assert result.multipliers.composite > 1.3
    assert result.decision == "approved"
    assert result.governance_score > 90
    assert result.confidence_boost == 18.0
    assert result.exit_latency_grade == "A"
    assert result.alignment_label == "Full Alignment"
    assert result.volatility_label == "Ignition"
    assert result.session_label == "London"
    assert result.adjusted_duration_minutes == (1, 15)


def test_friction_and_alignment_gates_reject():
    ctx = _ctx(friction_ratio=1.5, alignment_score=20.0, htf_supports=False)
    result = decide(_proposal(), ctx)
    assert result.gate_ids == ["friction_ratio", "htf_alignment"]
    assert result.decision == "rejected"
    assert result.rejection_reasons == [t.reason for t in result.triggered_gates]


def test_rejected_result_keeps_base_values():
    proposal = _proposal()
    result = evaluate_trade_proposal(proposal, _ctx(friction_ratio=1.0, overtrading_throttled=True))
    assert result.decision == "rejected"
    assert result.adjusted_win_probability == proposal.base_win_probability
    assert result.adjusted_win_range == proposal.base_win_range
    assert result.adjusted_loss_range == proposal.base_loss_range
    assert result.capture_ratio == 0.0
    assert result.exit_latency_grade is None


def test_single_gate_throttles():
    result = evaluate_trade_proposal(_proposal(), _ctx(overtrading_throttled=True))
    assert result.decision == "throttled"
    assert result.capture_ratio == 0.0
    assert result.expected_expectancy == 0.0
    assert result.exit_latency_grade is None
    assert result.adjusted_win_probability != 0.55


def test_low_composite_throttles_without_gates():
    ctx = _ctx(
        volatility_phase="exhaustion",
        phase_confidence=10.0,
        session="late-ny",
        session_aggressiveness=40.0,
        pair_expectancy=40.0,
        pair_favored=False,
        is_major_pair=False,
        sequencing_cluster="mixed",
    )
    result = evaluate_trade_proposal(_proposal(), ctx)
    assert result.triggered_gates == []
    assert result.multipliers.composite < 0.60
    assert result.decision == "throttled"


# ---------------------------------------------------------------------------
# Decision pieces
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "gates, composite, expected",
    [
        (0, 1.5, "approved"),
        (0, 0.60, "approved"),
        (0, 0.59, "throttled"),
        (1, 2.0, "throttled"),
        (1, 0.3, "throttled"),
        (2, 2.0, "rejected"),
        (5, 0.1, "rejected"),
    ],
)
def test_classify_decision(gates, composite, expected):
    assert classify_decision(gates, composite) == expected


def test_adjusted_win_probability_is_bounded():
    assert adjusted_win_probability(0.99, 4.0) == pytest.approx(0.88)
    assert adjusted_win_probability(0.10, 0.2) == pytest.approx(0.30)
    assert adjusted_win_probability(0.5, 1.0) == pytest.approx(0.5 * 1.15)


def test_drawdown_cap_floor():
    assert drawdown_cap(100.0) == pytest.approx(0.15)
    assert drawdown_cap(0.5) == pytest.approx(3.8)


def test_confidence_boost_steps():
    assert [confidence_boost(c) for c in (1.2, 1.0, 0.8, 0.5)] == [18.0, 8.0, -3.0, -12.0]


def test_exit_latency_grades():
    assert exit_latency_grade(1.2, 1.1) == "A"
    assert exit_latency_grade(1.0, 1.05) == "B"
    assert exit_latency_grade(0.9, 1.0) == "C"
    assert exit_latency_grade(0.7, 0.7) == "D"


def test_ranges_stay_ordered_after_shaping():
    result = evaluate_trade_proposal(_proposal(), _ctx())
    low, high = result.adjusted_win_range
    loss_low, loss_high = result.adjusted_loss_range
    assert low <= high
    assert loss_low <= loss_high


def test_proposal_rejects_inverted_range():
    with pytest.raises(ValueError):
        _proposal(base_win_range=(12.0, 4.0))


def test_continuation_mode_in_aligned_expansion():
    result = evaluate_trade_proposal(_proposal(), _ctx(volatility_phase="expansion"))
    assert result.trade_mode == "continuation"


# ---------------------------------------------------------------------------
# Upstream outage
# ---------------------------------------------------------------------------


def test_missing_market_context_is_hard_block():
    result = evaluate_with_market_context(_proposal(), None)
    assert result.decision == "rejected"
    assert result.blocked_by_upstream
    assert result.block_reason == "market_data_unavailable"
    assert result.multipliers is None
    assert result.rejection_reasons == ["market_data_unavailable"]


def test_available_market_context_is_evaluated_normally():
    assert evaluate_with_market_context(_proposal(), _ctx()).decision == "approved"


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


def test_normalize_reason_strips_numbers():
    assert normalize_reason("Friction ratio 1.5× < 3× threshold") == "Friction ratio < threshold"
    assert normalize_reason("Spread instability 12%") == "Spread instability"


def test_stats_over_empty_batch():
    stats = compute_governance_stats([])
    assert stats.total_proposals == 0
    assert stats.approval_rate == 0.0


def test_stats_aggregate_batch():
    approved = evaluate_trade_proposal(_proposal(), _ctx())
    throttled = evaluate_trade_proposal(_proposal(), _ctx(overtrading_throttled=True))
    rejected_a = evaluate_trade_proposal(_proposal(), _ctx(friction_ratio=1.5, alignment_score=20.0, htf_supports=False))
    rejected_b = evaluate_trade_proposal(_proposal(), _ctx(friction_ratio=2.0, alignment_score=10.0, htf_supports=False))
    blocked = upstream_blocked_result(_proposal())

    stats = compute_governance_stats([approved, throttled, rejected_a, rejected_b, blocked])
    assert stats.total_proposals == 5
    assert stats.approved == 1
    assert stats.throttled == 1
    assert stats.rejected == 3
    assert stats.blocked_by_upstream == 1
    assert stats.approval_rate == pytest.approx(0.2)
    assert stats.gate_counts == {"friction_ratio": 2, "htf_alignment": 2, "overtrading": 1}
    assert stats.approved_win_rate == pytest.approx(approved.adjusted_win_probability)
    assert stats.top_rejection_reasons[0] == ("Friction ratio < threshold", 2)
    assert ("market_data_unavailable", 1) in stats.top_rejection_reasons
