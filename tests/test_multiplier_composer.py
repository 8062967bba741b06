"""Tests for the seven-factor multiplier composer."""
from __future__ import annotations

import math
from dataclasses import replace

import pytest

from schemas.governance import GovernanceContext
from services.multiplier_composer import (
    alignment_multiplier,
    clamp_multiplier,
    compose_multipliers,
    exit_efficiency_multiplier,
    microstructure_multiplier,
    pair_performance_multiplier,
    regime_multiplier,
    sequencing_multiplier,
    session_multiplier,
)
from trading_core.config import DEFAULT_MULTIPLIER_TABLES, MULTIPLIER_BOUNDS


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


def test_strong_context_composite():
    m = compose_multipliers(_ctx())
    assert m.alignment == pytest.approx(1.18 + 0.9 * 0.17)
    assert m.regime == pytest.approx(1.35 * 0.975)
    assert m.session == pytest.approx(1.18)
    assert m.sequencing == pytest.approx(1.12)
    assert m.composite > 1.3
    assert m.composite == pytest.approx(math.prod(m.factors()))


def test_composite_is_product_of_exactly_seven_positive_factors():
    weak = _ctx(
        alignment_score=0.0,
        htf_supports=False,
        mtf_confirms=False,
        ltf_clean=False,
        volatility_phase="compression",
        phase_confidence=0.0,
        liquidity_shock_prob=100.0,
        spread_stability_rank=0.0,
        friction_ratio=0.0,
        pair_expectancy=0.0,
        pair_favored=False,
        is_major_pair=False,
        session="late-ny",
        sequencing_cluster="loss-cluster",
    )
    m = compose_multipliers(weak)
    assert len(m.factors()) == 7
    assert all(f > 0 for f in m.factors())
    assert m.composite > 0
    assert m.composite == pytest.approx(math.prod(m.factors()))


def test_every_factor_respects_bounds():
    low, high = MULTIPLIER_BOUNDS
    for ctx in (_ctx(), _ctx(alignment_score=0.0, htf_supports=False, volatility_phase="compression")):
        for value in compose_multipliers(ctx).factors():
            assert low <= value <= high


def test_clamp_multiplier():
    assert clamp_multiplier(5.0) == 2.0
    assert clamp_multiplier(0.01) == 0.25
    assert clamp_multiplier(float("nan")) == 0.25
    assert clamp_multiplier(float("inf")) == 0.25
    assert clamp_multiplier(1.1) == 1.1


def test_alignment_bands_by_confirmation_depth():
    full = alignment_multiplier(_ctx(alignment_score=50.0))
    htf_mtf = alignment_multiplier(_ctx(alignment_score=50.0, ltf_clean=False))
    htf_only = alignment_multiplier(_ctx(alignment_score=50.0, ltf_clean=False, mtf_confirms=False))
    misaligned = alignment_multiplier(_ctx(alignment_score=50.0, htf_supports=False))
    assert full > htf_mtf > htf_only > misaligned
    assert misaligned == pytest.approx(0.55 + 0.5 * 0.10)


def test_regime_scales_with_phase_confidence():
    assert regime_multiplier(_ctx(phase_confidence=100.0)) == pytest.approx(1.35)
    assert regime_multiplier(_ctx(phase_confidence=0.0)) == pytest.approx(1.35 * 0.75)
    assert regime_multiplier(_ctx(volatility_phase="compression", phase_confidence=100.0)) == pytest.approx(0.55)


def test_pair_performance_curves():
    favored = pair_performance_multiplier(_ctx())
    assert favored == pytest.approx(1.08 * (1.05 + 7 / 100 * 0.25))
    neutral_minor = pair_performance_multiplier(_ctx(pair_expectancy=60.0, pair_favored=False, is_major_pair=False))
    assert neutral_minor == pytest.approx(0.92 * (0.90 + 10 / 100 * 0.18))
    weak = pair_performance_multiplier(_ctx(pair_expectancy=40.0, pair_favored=False))
    assert weak == pytest.approx(1.08 * (0.65 + 0.4 * 0.20))


def test_microstructure_penalizes_liquidity_shock():
    calm = microstructure_multiplier(_ctx(liquidity_shock_prob=10.0))
    mild = microstructure_multiplier(_ctx(liquidity_shock_prob=40.0))
    severe = microstructure_multiplier(_ctx(liquidity_shock_prob=60.0))
    assert mild == pytest.approx(calm * 0.90)
    assert severe == pytest.approx(calm * 0.78)


def test_microstructure_caps_friction_contribution():
    assert microstructure_multiplier(_ctx(friction_ratio=6.0)) == pytest.approx(
        microstructure_multiplier(_ctx(friction_ratio=60.0))
    )


def test_exit_efficiency_uses_phase_and_spread():
    assert exit_efficiency_multiplier(_ctx(spread_stability_rank=100.0)) == pytest.approx(1.20 * 1.10)
    assert exit_efficiency_multiplier(_ctx(volatility_phase="compression", spread_stability_rank=0.0)) == pytest.approx(
        0.72 * 0.88
    )


def test_session_and_sequencing_lookups():
    assert session_multiplier(_ctx(session="late-ny")) == pytest.approx(0.68)
    assert sequencing_multiplier(_ctx(sequencing_cluster="loss-cluster")) == pytest.approx(0.70)
    assert sequencing_multiplier(_ctx(sequencing_cluster="neutral")) == 1.0


def test_tables_can_be_swapped_without_touching_algorithm():
    tables = replace(DEFAULT_MULTIPLIER_TABLES, session={**DEFAULT_MULTIPLIER_TABLES.session, "asian": 1.5})
    assert session_multiplier(_ctx(session="asian"), tables) == pytest.approx(1.5)
    assert session_multiplier(_ctx(session="asian")) == pytest.approx(0.78)
