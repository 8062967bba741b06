"""Rolling-window governance state machine.

Maps the 20/50/200 trade windows onto one of NORMAL, DEFENSIVE, THROTTLED or
HALT, evaluated top-down so the most severe matching state wins. Each state
carries a static GovernanceStateConfig bundle that downstream sizing and
friction checks read.

Below the learning milestone the machine is pinned to NORMAL: the metrics
verdict is still computed and recorded as ``metrics_state`` and
execution-quality alarms are surfaced as warnings, but they do not change
the active state.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from schemas.governance_state import (
    GovernanceStateConfig,
    GovernanceStateDecision,
    GovernanceStateKind,
)
from schemas.trade_history import RollingWindowMetrics
from trading_core.config import DEFAULT_STATE_THRESHOLDS, STATE_CONFIG_TABLE, StateThresholds

logger = logging.getLogger(__name__)

NOMINAL_REASON = "All metrics nominal"


def _build_state_configs() -> Dict[GovernanceStateKind, GovernanceStateConfig]:
    configs: Dict[GovernanceStateKind, GovernanceStateConfig] = {}
    for state, values in STATE_CONFIG_TABLE.items():
        configs[state] = GovernanceStateConfig(
            state=state,
            density_multiplier=values.density_multiplier,
            sizing_multiplier=values.sizing_multiplier,
            friction_k_override=values.friction_k_override,
            pair_restriction=values.pair_restriction,
            session_aggressiveness=dict(values.session_aggressiveness),
            recovery_conditions=values.recovery_conditions,
        )
    return configs


STATE_CONFIGS: Dict[GovernanceStateKind, GovernanceStateConfig] = _build_state_configs()


def get_state_config(state: GovernanceStateKind) -> GovernanceStateConfig:
    return STATE_CONFIGS[state]


# ---------------------------------------------------------------------------
# Transition function
# ---------------------------------------------------------------------------


def determine_state(
    w20: RollingWindowMetrics,
    w50: RollingWindowMetrics,
    w200: RollingWindowMetrics,
    thresholds: StateThresholds = DEFAULT_STATE_THRESHOLDS,
) -> Tuple[GovernanceStateKind, List[str]]:
    """Return the state implied by the windows and the reasons for it."""
    t = thresholds

    if (
        w20.trade_count >= t.halt_w20_min_trades
        and w20.win_rate < t.halt_w20_max_win_rate
        and w20.expectancy < t.halt_w20_max_expectancy
    ):
        return "HALT", [
            f"20-trade WR {w20.win_rate * 100:.0f}% < {t.halt_w20_max_win_rate * 100:.0f}% "
            f"with expectancy {w20.expectancy:.2f}p"
        ]
    if (
        w50.trade_count >= t.halt_w50_min_trades
        and w50.friction_adj_pnl < t.halt_w50_max_friction_adj_pnl
    ):
        return "HALT", [
            f"50-trade friction-adj P&L {w50.friction_adj_pnl:.1f}p is catastrophic"
        ]

    if (
        w50.trade_count >= t.throttle_w50_min_trades
        and w50.win_rate < t.throttle_w50_max_win_rate
        and w50.expectancy < t.throttle_w50_max_expectancy
    ):
        return "THROTTLED", [
            f"50-trade WR {w50.win_rate * 100:.0f}% < {t.throttle_w50_max_win_rate * 100:.0f}% "
            f"with expectancy {w50.expectancy:.2f}p"
        ]

    reasons: List[str] = []
    if w50.trade_count >= t.defensive_w50_min_trades and w50.expectancy < t.defensive_w50_max_expectancy:
        reasons.append(f"50-trade expectancy {w50.expectancy:.2f}p is negative")
    if w200.trade_count >= t.defensive_w200_min_trades and w200.capture_ratio < t.defensive_w200_min_capture:
        reasons.append(
            f"200-trade capture ratio {w200.capture_ratio * 100:.0f}% "
            f"< {t.defensive_w200_min_capture * 100:.0f}%"
        )
    if reasons:
        return "DEFENSIVE", reasons

    return "NORMAL", [NOMINAL_REASON]


# Exposed operation name used by callers outside the engine.
determine_governance_state = determine_state


def execution_quality_warnings(
    w20: RollingWindowMetrics,
    thresholds: StateThresholds = DEFAULT_STATE_THRESHOLDS,
) -> List[str]:
    """Catastrophic execution-quality readings on the 20-trade window."""
    warnings: List[str] = []
    if w20.rejection_rate > thresholds.critical_rejection_rate and w20.avg_quality < thresholds.critical_quality:
        warnings.append(
            f"Rejection rate {w20.rejection_rate * 100:.0f}% with execution quality {w20.avg_quality:.0f}"
        )
    if w20.slippage_drift and w20.avg_quality < thresholds.drift_quality:
        warnings.append(f"Slippage drift with execution quality {w20.avg_quality:.0f}")
    return warnings


# ---------------------------------------------------------------------------
# Public service
# ---------------------------------------------------------------------------


class GovernanceStateMachine:
    """Evaluates the governance state for one cycle.

    Usage::

        machine = GovernanceStateMachine(learning_milestone=500)
        decision = machine.evaluate(w20, w50, w200, total_trades=1200)
        sizing = decision.config.sizing_multiplier
    """

    def __init__(
        self,
        *,
        learning_milestone: int = 500,
        thresholds: Optional[StateThresholds] = None,
    ) -> None:
        self._milestone = learning_milestone
        self._thresholds = thresholds or DEFAULT_STATE_THRESHOLDS

    @property
    def learning_milestone(self) -> int:
        return self._milestone

    def is_learning_phase(self, total_trades: int) -> bool:
        return total_trades < self._milestone

    def evaluate(
        self,
        w20: RollingWindowMetrics,
        w50: RollingWindowMetrics,
        w200: RollingWindowMetrics,
        total_trades: int,
    ) -> GovernanceStateDecision:
        metrics_state, reasons = determine_state(w20, w50, w200, self._thresholds)
        warnings = execution_quality_warnings(w20, self._thresholds)
        learning = self.is_learning_phase(total_trades)

        state: GovernanceStateKind = metrics_state
        if learning:
            state = "NORMAL"
            if metrics_state != "NORMAL":
                warnings = [f"Metrics imply {metrics_state}: {r}" for r in reasons] + warnings
            reasons = [
                f"Learning phase: {total_trades}/{self._milestone} trades, state pinned to NORMAL"
            ]

        if state != "NORMAL" or warnings:
            logger.debug(
                "Governance state %s (metrics=%s, learning=%s): %s | warnings=%s",
                state,
                metrics_state,
                learning,
                "; ".join(reasons),
                "; ".join(warnings),
            )

        return GovernanceStateDecision(
            state=state,
            reasons=reasons,
            warnings=warnings,
            config=STATE_CONFIGS[state],
            learning_phase=learning,
            metrics_state=metrics_state,
            total_trades=total_trades,
        )
