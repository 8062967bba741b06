"""Session clock and pre-trade friction gate.

Sessions, weekend closure and the time-of-day regime label are all derived
from the UTC hour. The friction gate compares an expected move against the
estimated spread, slippage and latency cost and passes only when the ratio
clears the governance state's K threshold.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional

from schemas.governance_state import GovernanceStateConfig
from schemas.sizing import SessionBudget, SessionWindow
from trading_core.config import (
    DEFAULT_BASE_SPREAD,
    DEFAULT_FRICTION_MODEL,
    PAIR_BASE_SPREADS,
    SESSION_BUDGET_TABLE,
    FrictionModel,
)

RegimeLabel = Literal["ignition", "expansion", "exhaustion", "compression"]


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def detect_session(now: Optional[datetime] = None) -> SessionWindow:
    hour = _utc(now).hour
    if hour >= 21 or hour < 1:
        return "rollover"
    if hour < 7:
        return "asian"
    if hour < 12:
        return "london-open"
    if hour < 17:
        return "ny-overlap"
    return "late-ny"


def is_weekend(now: Optional[datetime] = None) -> bool:
    """Market closed: all of Saturday and Sunday, plus Friday from 22:00 UTC."""
    ts = _utc(now)
    weekday = ts.weekday()
    if weekday in (5, 6):
        return True
    return weekday == 4 and ts.hour >= 22


def regime_label_for_hour(now: Optional[datetime] = None) -> RegimeLabel:
    hour = _utc(now).hour
    if 7 <= hour < 10:
        return "ignition"
    if 10 <= hour < 16:
        return "expansion"
    if 16 <= hour < 20:
        return "exhaustion"
    return "compression"


def get_session_budget(session: SessionWindow) -> SessionBudget:
    values = SESSION_BUDGET_TABLE[session]
    return SessionBudget(
        session=session,
        label=values.label,
        max_density=values.max_density,
        friction_multiplier=values.friction_multiplier,
        volatility_tolerance=values.volatility_tolerance,
        capital_budget_pct=values.capital_budget_pct,
    )


@dataclass
class FrictionGateResult:
    """Outcome of the pre-trade friction check."""

    passed: bool
    result: Literal["PASS", "THROTTLE"]
    friction_score: int
    expected_move: float
    total_friction: float
    friction_ratio: float
    required_ratio: float
    reasons: List[str] = field(default_factory=list)


def run_friction_gate(
    pair: str,
    session: SessionWindow,
    state_config: GovernanceStateConfig,
    budget: Optional[SessionBudget] = None,
    model: FrictionModel = DEFAULT_FRICTION_MODEL,
) -> FrictionGateResult:
    budget = budget or get_session_budget(session)
    base_spread = PAIR_BASE_SPREADS.get(pair, DEFAULT_BASE_SPREAD)
    spread_mean = base_spread * budget.friction_multiplier
    spread_vol = spread_mean * model.spread_volatility_ratio
    total_friction = spread_mean + spread_vol + model.slippage_pips + model.latency_pips

    if base_spread < model.tight_spread:
        vol_class = model.move_tight
    elif base_spread < model.normal_spread:
        vol_class = model.move_normal
    else:
        vol_class = model.move_wide
    expected_move = vol_class * model.session_move_factor.get(session, model.default_move_factor)

    k = state_config.friction_k_override
    ratio = expected_move / total_friction
    passed = ratio >= k

    reasons: List[str] = []
    if not passed:
        reasons.append(f"Friction ratio {ratio:.1f}x < required {k:.1f}x")
        if session == "rollover":
            reasons.append("Rollover window: reduced liquidity, throttled")
    if spread_mean > base_spread * model.widened_spread_ratio:
        reasons.append(f"Spread widened {spread_mean / base_spread:.1f}x vs baseline")

    score = min(
        100.0,
        (40 if passed else 0)
        + (25 if session != "rollover" else 10)
        + (20 if spread_mean <= base_spread * 1.3 else 0)
        + 15,
    )
    return FrictionGateResult(
        passed=passed,
        result="PASS" if passed else "THROTTLE",
        friction_score=int(round(score)),
        expected_move=expected_move,
        total_friction=total_friction,
        friction_ratio=ratio,
        required_ratio=k,
        reasons=reasons,
    )
