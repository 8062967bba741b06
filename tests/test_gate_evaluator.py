"""Tests for the eight rejection gates."""
from __future__ import annotations

from typing import get_args

import pytest

from app.core.errors import ConfigurationError
from schemas.governance import GateId, GovernanceContext
from services.gate_evaluator import _GATE_CHECKS, GATE_IDS, _check_gate_table, evaluate_gates
from trading_core.config import GateThresholds


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


def _gates(**overrides):
    return [t.gate for t in evaluate_gates(_ctx(**overrides))]


def test_gate_ids_form_closed_vocabulary():
    assert GATE_IDS == get_args(GateId)
    assert len(GATE_IDS) == 8


def test_gate_table_out_of_order_is_a_configuration_error():
    reordered = tuple(reversed(_GATE_CHECKS))
    with pytest.raises(ConfigurationError, match="out of sync"):
        _check_gate_table(reordered)
    _check_gate_table(_GATE_CHECKS)


def test_clean_context_triggers_nothing():
    assert evaluate_gates(_ctx()) == []


@pytest.mark.parametrize(
    "overrides, gate",
    [
        (dict(friction_ratio=2.9), "friction_ratio"),
        (dict(htf_supports=False, alignment_score=30.0), "htf_alignment"),
        (dict(edge_decaying=True, edge_decay_rate=25.0), "edge_decay"),
        (dict(spread_stability_rank=29.0), "spread_instability"),
        (dict(volatility_phase="compression", session_aggressiveness=20.0), "compression_low_session"),
        (dict(overtrading_throttled=True), "overtrading"),
        (dict(sequencing_cluster="loss-cluster", alignment_score=50.0), "loss_cluster_alignment"),
        (dict(volatility_phase="expansion", liquidity_shock_prob=75.0), "liquidity_shock"),
    ],
)
def test_each_gate_fires_alone(overrides, gate):
    assert _gates(**overrides) == [gate]


def test_gates_stay_quiet_at_their_boundaries():
    assert _gates(friction_ratio=3.0) == []
    assert _gates(htf_supports=False, alignment_score=35.0) == []
    assert _gates(edge_decaying=True, edge_decay_rate=20.0) == []
    assert _gates(spread_stability_rank=30.0) == []
    assert _gates(volatility_phase="compression", session_aggressiveness=30.0) == []
    assert _gates(sequencing_cluster="loss-cluster", alignment_score=55.0) == []
    assert _gates(volatility_phase="expansion", liquidity_shock_prob=70.0) == []


def test_edge_decay_requires_decaying_flag():
    assert _gates(edge_decaying=False, edge_decay_rate=50.0) == []


def test_liquidity_shock_tolerated_during_ignition():
    assert _gates(volatility_phase="ignition", liquidity_shock_prob=95.0) == []


def test_triggers_are_returned_in_gate_order_with_reasons():
    triggers = evaluate_gates(_ctx(friction_ratio=1.5, htf_supports=False, alignment_score=20.0))
    assert [t.gate for t in triggers] == ["friction_ratio", "htf_alignment"]
    assert triggers[0].reason == "Friction ratio 1.5× < 3× threshold"
    assert triggers[1].reason == "MTF alignment 20% without HTF support"


def test_thresholds_are_injectable():
    strict = GateThresholds(min_friction_ratio=6.0)
    assert [t.gate for t in evaluate_gates(_ctx(friction_ratio=5.0), strict)] == ["friction_ratio"]
