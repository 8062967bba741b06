"""Governance state machine schemas.

Severity ordering::

  NORMAL ──► DEFENSIVE ──► THROTTLED ──► HALT

HALT never stops trading outright; it pins density and sizing at the
minimum viable level until the rolling windows recover.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Tuple

from pydantic import Field

from .governance import FrozenModel

GovernanceStateKind = Literal["NORMAL", "DEFENSIVE", "THROTTLED", "HALT"]
PairRestriction = Literal["none", "majors-only", "top-performers"]

STATE_SEVERITY: Dict[GovernanceStateKind, int] = {
    "NORMAL": 0,
    "DEFENSIVE": 1,
    "THROTTLED": 2,
    "HALT": 3,
}


def state_severity(state: GovernanceStateKind) -> int:
    return STATE_SEVERITY[state]


def more_severe(a: GovernanceStateKind, b: GovernanceStateKind) -> GovernanceStateKind:
    """Return whichever state is further along the severity ladder."""
    return a if STATE_SEVERITY[a] >= STATE_SEVERITY[b] else b


class GovernanceStateConfig(FrozenModel):
    """Static parameter bundle applied while a state is active."""

    state: GovernanceStateKind
    density_multiplier: float = Field(gt=0.0, le=1.0)
    sizing_multiplier: float = Field(gt=0.0, le=1.0)
    friction_k_override: float = Field(gt=0.0)
    pair_restriction: PairRestriction = "none"
    session_aggressiveness: Dict[str, float] = Field(default_factory=dict)
    recovery_conditions: Tuple[str, ...] = ()


class GovernanceStateDecision(FrozenModel):
    """Outcome of one state-machine evaluation, kept for audit."""

    state: GovernanceStateKind
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    config: GovernanceStateConfig
    learning_phase: bool = False
    metrics_state: GovernanceStateKind
    total_trades: int = Field(default=0, ge=0)
