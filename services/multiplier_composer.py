"""Seven-factor multiplier composition for trade governance.

Each factor maps a GovernanceContext onto a positive multiplier using the
lookup tables in trading_core.config. Every factor is clamped to
MULTIPLIER_BOUNDS before the composite product is taken, so a single
extreme input cannot dominate the score.

All functions are pure and deterministic.
"""
from __future__ import annotations

import math
from typing import Tuple

from schemas.governance import GovernanceContext, GovernanceMultipliers
from trading_core.config import DEFAULT_MULTIPLIER_TABLES, MULTIPLIER_BOUNDS, MultiplierTables


def clamp_multiplier(value: float, bounds: Tuple[float, float] = MULTIPLIER_BOUNDS) -> float:
    """Clamp into ``bounds``; non-finite input falls to the lower bound."""
    low, high = bounds
    if not math.isfinite(value):
        return low
    return max(low, min(high, value))


def _band(band: Tuple[float, float], score: float) -> float:
    floor, span = band
    return floor + score / 100.0 * span


# ---------------------------------------------------------------------------
# Individual factors
# ---------------------------------------------------------------------------


def alignment_multiplier(ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES) -> float:
    bands = tables.alignment
    if ctx.htf_supports and ctx.mtf_confirms and ctx.ltf_clean:
        value = _band(bands.full, ctx.alignment_score)
    elif ctx.htf_supports and ctx.mtf_confirms:
        value = _band(bands.htf_mtf, ctx.alignment_score)
    elif ctx.htf_supports:
        value = _band(bands.htf_only, ctx.alignment_score)
    else:
        value = _band(bands.misaligned, ctx.alignment_score)
    return clamp_multiplier(value)


def regime_multiplier(ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES) -> float:
    base = tables.regime_base[ctx.volatility_phase]
    floor = tables.regime_confidence_floor
    scale = floor + ctx.phase_confidence / 100.0 * (1.0 - floor)
    return clamp_multiplier(base * scale)


def pair_performance_multiplier(
    ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES
) -> float:
    p = tables.pair
    bonus = p.major_bonus if ctx.is_major_pair else p.minor_penalty
    expectancy = ctx.pair_expectancy
    if ctx.pair_favored and expectancy > p.favored_threshold:
        curve = p.favored[0] + (expectancy - p.favored_threshold) / 100.0 * p.favored[1]
    elif expectancy > p.neutral_threshold:
        curve = p.neutral[0] + (expectancy - p.neutral_threshold) / 100.0 * p.neutral[1]
    else:
        curve = _band(p.weak, expectancy)
    return clamp_multiplier(bonus * curve)


def microstructure_multiplier(
    ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES
) -> float:
    m = tables.microstructure
    friction = min(ctx.friction_ratio / m.friction_cap, 1.0)
    blend = ctx.spread_stability_rank / 100.0 * m.spread_weight + friction * m.friction_weight
    if ctx.liquidity_shock_prob > m.severe_shock_threshold:
        penalty = m.severe_shock_penalty
    elif ctx.liquidity_shock_prob > m.mild_shock_threshold:
        penalty = m.mild_shock_penalty
    else:
        penalty = 1.0
    return clamp_multiplier((m.floor + blend * m.span) * penalty)


def exit_efficiency_multiplier(
    ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES
) -> float:
    base = tables.exit_base[ctx.volatility_phase]
    scale = tables.exit_spread_floor + ctx.spread_stability_rank / 100.0 * tables.exit_spread_span
    return clamp_multiplier(base * scale)


def session_multiplier(ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES) -> float:
    return clamp_multiplier(tables.session[ctx.session])


def sequencing_multiplier(
    ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES
) -> float:
    return clamp_multiplier(tables.sequencing[ctx.sequencing_cluster])


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def compose_multipliers(
    ctx: GovernanceContext, tables: MultiplierTables = DEFAULT_MULTIPLIER_TABLES
) -> GovernanceMultipliers:
    """Compute all seven factors and their product."""
    alignment = alignment_multiplier(ctx, tables)
    regime = regime_multiplier(ctx, tables)
    pair_performance = pair_performance_multiplier(ctx, tables)
    microstructure = microstructure_multiplier(ctx, tables)
    exit_efficiency = exit_efficiency_multiplier(ctx, tables)
    session = session_multiplier(ctx, tables)
    sequencing = sequencing_multiplier(ctx, tables)

    composite = math.prod(
        (alignment, regime, pair_performance, microstructure, exit_efficiency, session, sequencing)
    )
    return GovernanceMultipliers(
        alignment=alignment,
        regime=regime,
        pair_performance=pair_performance,
        microstructure=microstructure,
        exit_efficiency=exit_efficiency,
        session=session,
        sequencing=sequencing,
        composite=composite,
    )
