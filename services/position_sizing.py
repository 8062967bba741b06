"""Layered position sizing.

Base units come from a fixed-fraction risk budget over a pair-scaled stop:

    units = floor(balance * 0.005 * confidence/80 / (8 * atr_mult * pip_value))

The base is then multiplied, in order, by the governance sizing multiplier,
pair capital multiplier, session capital budget, agent size x role, a
regime-weighted fractional-Kelly multiplier and the deployment/discovery
multiplier. Each factor is bounded on its own before it is applied and the
result is clamped to the configured unit range.
"""
from __future__ import annotations

import math
import random
from typing import Mapping, Optional, Sequence, Tuple

from schemas.sizing import (
    DiscoveryAssessment,
    PositionSizeBreakdown,
    PositionSizeRequest,
    RegimePerformance,
)
from schemas.trade_history import PairAllocation
from trading_core.config import (
    DEFAULT_ATR_MULT,
    DEFAULT_BASE_SPREAD,
    DEFAULT_DISCOVERY_TABLES,
    DEFAULT_PAIR_THRESHOLDS,
    DEFAULT_REGIME_KELLY,
    DEFAULT_SIZING_TABLES,
    PAIR_ATR_MULT,
    PAIR_BASE_SPREADS,
    SCALP_PAIRS,
    SECONDARY_PAIRS,
    SESSION_BUDGET_TABLE,
    DiscoveryTables,
    PairAllocationThresholds,
    RegimeKellyTables,
    SizingTables,
)

MIN_UNITS = 500
MAX_UNITS = 5000

PRIME_SECONDARY_SESSIONS = frozenset({"london-open", "ny-overlap"})


def bound(value: float, bounds: Tuple[float, float]) -> float:
    """Clamp ``value`` into ``bounds``; NaN and infinities become 0."""
    if not math.isfinite(value):
        return 0.0
    low, high = bounds
    return max(low, min(high, value))


def pip_value_per_unit(pair: str, tables: SizingTables = DEFAULT_SIZING_TABLES) -> float:
    return tables.jpy_pip_value_per_unit if "JPY" in pair.upper() else tables.pip_value_per_unit


def compute_base_units(
    pair: str,
    account_balance: float,
    confidence: float,
    tables: SizingTables = DEFAULT_SIZING_TABLES,
) -> int:
    """Risk-normalized unit count before any multiplier, capped at ``max_base_units``."""
    risk_amount = account_balance * tables.base_risk_pct * (confidence / tables.reference_confidence)
    stop_pips = tables.stop_pips * PAIR_ATR_MULT.get(pair, DEFAULT_ATR_MULT)
    risk_per_unit = stop_pips * pip_value_per_unit(pair, tables)
    if risk_per_unit <= 0:
        return tables.fallback_units
    units = risk_amount / risk_per_unit
    if not math.isfinite(units) or units >= tables.max_base_units:
        return tables.max_base_units
    return int(math.floor(units))


# ---------------------------------------------------------------------------
# Multipliers
# ---------------------------------------------------------------------------


def fractional_kelly(win_rate: float, payoff: float, fraction: float) -> float:
    """Fraction-scaled Kelly bet size; negative when the edge is negative."""
    prob = max(0.01, min(0.99, win_rate))
    payoff = max(0.01, payoff)
    edge = prob * (payoff + 1.0) - 1.0
    return edge / payoff * fraction


def regime_kelly_multiplier(
    regime: str,
    performance: Optional[RegimePerformance] = None,
    tables: RegimeKellyTables = DEFAULT_REGIME_KELLY,
) -> float:
    """Regime weight scaled by realized fractional Kelly against a reference.

    Regimes without enough history size neutrally (1.0).
    """
    if performance is None or performance.trades < tables.min_trades or performance.avg_loss_pips <= 0:
        return 1.0
    weight = tables.regime_weights.get(regime, 1.0)
    payoff = performance.avg_win_pips / performance.avg_loss_pips
    kelly = fractional_kelly(performance.win_rate, payoff, tables.fraction)
    return bound(weight * kelly / tables.reference_kelly, tables.bounds) if kelly > 0 else tables.bounds[0]


def session_spread_pips(pair: str, session: str) -> float:
    budget = SESSION_BUDGET_TABLE.get(session)
    multiplier = budget.friction_multiplier if budget else 1.0
    return PAIR_BASE_SPREADS.get(pair, DEFAULT_BASE_SPREAD) * multiplier


def discovery_multiplier(
    pair: str,
    session: str,
    regime: str,
    agent_id: Optional[str] = None,
    *,
    composite: float = 1.0,
    spread_pips: Optional[float] = None,
    direction: str = "long",
    tables: DiscoveryTables = DEFAULT_DISCOVERY_TABLES,
) -> DiscoveryAssessment:
    """Classify the trading environment as destructive, edge or baseline."""
    sym = pair.upper()
    spread = session_spread_pips(sym, session) if spread_pips is None else spread_pips
    env_key = f"{session}|{regime}|{sym}|{direction}|{agent_id or '-'}"

    destructive_reason = None
    if sym in tables.aud_crosses:
        destructive_reason = "AUD cross, allocation reduced"
    elif sym in tables.volatile_pairs:
        destructive_reason = f"{sym} high volatility, allocation reduced"
    elif agent_id in tables.reduced_agents:
        destructive_reason = f"Agent {agent_id} reduced allocation"
    elif session == "rollover":
        destructive_reason = "Rollover session, minimal allocation"
    elif spread > tables.spread_block_threshold:
        destructive_reason = f"Spread {spread:.1f}p elevated"
    elif regime == "ignition" and composite < tables.ignition_min_composite:
        destructive_reason = "Ignition with low composite"

    if destructive_reason:
        return DiscoveryAssessment(
            label="REDUCED_RISK", multiplier=tables.reduced, reason=destructive_reason, env_key=env_key
        )

    is_edge = (
        (session == "ny-overlap" and regime == "expansion")
        or (session == "asian" and sym == "USD_CAD" and regime in ("expansion", "compression"))
        or (session == "london-open" and sym == "USD_CAD")
        or (session == "late-ny" and sym == "USD_CAD" and regime != "ignition")
        or (session == "london-open" and sym == "AUD_USD" and regime == "expansion")
        or sym == "EUR_GBP"
        or (sym == "USD_JPY" and regime == "compression")
    )
    if is_edge:
        return DiscoveryAssessment(
            label="EDGE_BOOST",
            multiplier=tables.edge_boost,
            reason=f"Edge candidate: {session} {regime} {direction}",
            env_key=env_key,
        )
    return DiscoveryAssessment(
        label="BASELINE", multiplier=tables.baseline, reason="Baseline allocation", env_key=env_key
    )


def deployment_multiplier(
    pair: str,
    discovery: float,
    rng: random.Random,
    *,
    secondary_pairs: Sequence[str] = SECONDARY_PAIRS,
    tables: DiscoveryTables = DEFAULT_DISCOVERY_TABLES,
) -> float:
    """Discovery multiplier, capped for secondary pairs by a draw in [0.6, 0.8]."""
    if pair not in secondary_pairs:
        return discovery
    if discovery == 0:
        return 0.0
    low, high = tables.secondary_cap_range
    return min(discovery, low + rng.random() * (high - low))


def apply_pair_restrictions(
    allocation: PairAllocation,
    restriction: str,
    *,
    session: Optional[str] = None,
    secondary_pairs: Sequence[str] = SECONDARY_PAIRS,
    thresholds: PairAllocationThresholds = DEFAULT_PAIR_THRESHOLDS,
) -> float:
    """Capital multiplier after degradation rules; never blocks outright.

    Banned pairs trade at a degraded multiplier, secondary pairs are
    downgraded outside prime sessions or on poor expectancy, and the
    governance pair restriction caps or scales what remains.
    """
    t = thresholds
    multiplier = allocation.capital_multiplier
    if allocation.status == "banned":
        multiplier = t.degraded_ban_multiplier

    if allocation.pair in secondary_pairs:
        if session is not None and session not in PRIME_SECONDARY_SESSIONS:
            multiplier = min(multiplier or 1.0, t.secondary_off_session_cap)
        if allocation.closed_count >= t.secondary_min_trades:
            if allocation.expectancy < t.secondary_poor_expectancy:
                multiplier = t.secondary_poor_multiplier
            elif allocation.expectancy < 0:
                multiplier = min(multiplier, t.secondary_negative_cap)

    if restriction == "majors-only" and allocation.pair not in SCALP_PAIRS:
        multiplier = min(multiplier or 1.0, t.majors_only_cap)
    if restriction == "top-performers" and multiplier < 1.0:
        multiplier = max(t.top_performers_floor, multiplier * t.top_performers_scale)
    return multiplier


# ---------------------------------------------------------------------------
# Stack
# ---------------------------------------------------------------------------


def compute_position_size(
    request: PositionSizeRequest,
    *,
    min_units: int = MIN_UNITS,
    max_units: int = MAX_UNITS,
    tables: SizingTables = DEFAULT_SIZING_TABLES,
) -> PositionSizeBreakdown:
    """Apply the bounded multiplier stack and clamp to ``[min_units, max_units]``."""
    base = compute_base_units(request.pair, request.account_balance, request.confidence, tables)

    factors: Mapping[str, float] = {
        "governance": bound(request.governance_sizing_multiplier, tables.governance_bounds),
        "pair": bound(request.pair_capital_multiplier, tables.pair_bounds),
        "session": bound(request.session_capital_budget, tables.session_bounds),
        "agent": bound(request.agent_size_multiplier * request.agent_role_multiplier, tables.agent_bounds),
        "regime": bound(request.regime_multiplier, tables.regime_bounds),
        "deployment": bound(request.deployment_multiplier, tables.deployment_bounds),
    }

    raw = float(base)
    for value in factors.values():
        raw *= value

    units = int(math.floor(raw))
    final = max(min_units, min(max_units, units))
    return PositionSizeBreakdown(
        pair=request.pair,
        base_units=base,
        governance_multiplier=factors["governance"],
        pair_multiplier=factors["pair"],
        session_multiplier=factors["session"],
        agent_multiplier=factors["agent"],
        regime_multiplier=factors["regime"],
        deployment_multiplier=factors["deployment"],
        raw_units=raw,
        final_units=final,
        clamped=final != units,
    )
