"""Position sizing schemas."""

from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import Field

from .governance import Direction, FrozenModel

SessionWindow = Literal["asian", "london-open", "ny-overlap", "late-ny", "rollover"]
DiscoveryLabel = Literal["REDUCED_RISK", "EDGE_BOOST", "BASELINE"]


class SessionBudget(FrozenModel):
    session: SessionWindow
    label: str
    max_density: int = Field(ge=0)
    friction_multiplier: float = Field(gt=0.0)
    volatility_tolerance: float = Field(gt=0.0)
    capital_budget_pct: float = Field(ge=0.0, le=1.0)


class RegimePerformance(FrozenModel):
    """Realized results for one regime, used for the Kelly-informed multiplier."""

    regime: str
    trades: int = Field(default=0, ge=0)
    win_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    avg_win_pips: float = Field(default=0.0, ge=0.0)
    avg_loss_pips: float = Field(default=0.0, ge=0.0)


class PositionSizeRequest(FrozenModel):
    """Every input the sizing stack multiplies together for one trade."""

    pair: str
    direction: Direction = "long"
    account_balance: float = Field(gt=0.0)
    confidence: float = Field(ge=0.0, le=100.0)
    governance_sizing_multiplier: float = 1.0
    pair_capital_multiplier: float = 1.0
    session_capital_budget: float = 1.0
    agent_size_multiplier: float = 1.0
    agent_role_multiplier: float = 1.0
    regime_multiplier: float = 1.0
    deployment_multiplier: float = 1.0


class PositionSizeBreakdown(FrozenModel):
    """Audit trail of the sizing stack; multipliers are the bounded values applied."""

    pair: str
    base_units: int
    governance_multiplier: float
    pair_multiplier: float
    session_multiplier: float
    agent_multiplier: float
    regime_multiplier: float
    deployment_multiplier: float
    raw_units: float
    final_units: int
    clamped: bool = False
    notes: Dict[str, str] = Field(default_factory=dict)


class DiscoveryAssessment(FrozenModel):
    label: DiscoveryLabel
    multiplier: float = Field(ge=0.0)
    reason: str
    env_key: Optional[str] = None
