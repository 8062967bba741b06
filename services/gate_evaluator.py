"""Rejection gates for trade governance.

Eight independent checks run against a GovernanceContext in a fixed order.
The evaluator returns every gate that fired so callers can grade severity
by count and surface the reasons to operators.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Tuple, get_args

from app.core.errors import ConfigurationError
from schemas.governance import GateId, GateTrigger, GovernanceContext
from trading_core.config import DEFAULT_GATE_THRESHOLDS, GateThresholds

GATE_IDS: Tuple[GateId, ...] = get_args(GateId)

_GateCheck = Callable[[GovernanceContext, GateThresholds], Optional[str]]


def _friction_ratio(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.friction_ratio < t.min_friction_ratio:
        return f"Friction ratio {ctx.friction_ratio:.1f}× < {t.min_friction_ratio:.0f}× threshold"
    return None


def _htf_alignment(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if not ctx.htf_supports and ctx.alignment_score < t.min_alignment_without_htf:
        return f"MTF alignment {ctx.alignment_score:.0f}% without HTF support"
    return None


def _edge_decay(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.edge_decaying and ctx.edge_decay_rate > t.max_edge_decay_rate:
        return f"Edge decaying {ctx.edge_decay_rate:.0f}%"
    return None


def _spread_instability(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.spread_stability_rank < t.min_spread_stability:
        return f"Spread instability {ctx.spread_stability_rank:.0f}%"
    return None


def _compression_low_session(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.volatility_phase == "compression" and ctx.session_aggressiveness < t.min_session_aggressiveness:
        return "Compression + low-activity session"
    return None


def _overtrading(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.overtrading_throttled:
        return "Anti-overtrading governor active"
    return None


def _loss_cluster_alignment(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.sequencing_cluster == "loss-cluster" and ctx.alignment_score < t.min_alignment_in_loss_cluster:
        return f"Loss cluster + weak alignment {ctx.alignment_score:.0f}%"
    return None


def _liquidity_shock(ctx: GovernanceContext, t: GateThresholds) -> Optional[str]:
    if ctx.liquidity_shock_prob > t.max_shock_outside_ignition and ctx.volatility_phase != "ignition":
        return f"High shock risk {ctx.liquidity_shock_prob:.0f}% outside ignition"
    return None


_GATE_CHECKS: Tuple[Tuple[GateId, _GateCheck], ...] = (
    ("friction_ratio", _friction_ratio),
    ("htf_alignment", _htf_alignment),
    ("edge_decay", _edge_decay),
    ("spread_instability", _spread_instability),
    ("compression_low_session", _compression_low_session),
    ("overtrading", _overtrading),
    ("loss_cluster_alignment", _loss_cluster_alignment),
    ("liquidity_shock", _liquidity_shock),
)


def _check_gate_table(checks: Tuple[Tuple[GateId, _GateCheck], ...]) -> None:
    order = tuple(gate for gate, _ in checks)
    if order != GATE_IDS:
        raise ConfigurationError(f"gate checks {order} out of sync with GateId {GATE_IDS}")


_check_gate_table(_GATE_CHECKS)


def evaluate_gates(
    ctx: GovernanceContext,
    thresholds: GateThresholds = DEFAULT_GATE_THRESHOLDS,
) -> List[GateTrigger]:
    """Run every gate and return the triggered ones in gate order."""
    triggers: List[GateTrigger] = []
    for gate, check in _GATE_CHECKS:
        reason = check(ctx, thresholds)
        if reason is not None:
            triggers.append(GateTrigger(gate=gate, reason=reason))
    return triggers
