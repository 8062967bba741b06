"""Schemas for per-trade governance: proposals, context snapshots and results."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class SerializableModel(BaseModel):
    """Base-model that standardizes JSON helpers and validation."""

    model_config = {"extra": "forbid", "validate_assignment": True}

    def to_json(self, **kwargs: Any) -> str:
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_json(cls, raw: str) -> "SerializableModel":
        return cls.model_validate_json(raw)


class FrozenModel(SerializableModel):
    """Immutable snapshot; any attempt to assign raises a validation error."""

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

Direction = Literal["long", "short"]
VolatilityPhase = Literal["compression", "ignition", "expansion", "exhaustion"]
TradingSession = Literal["asian", "london-open", "ny-overlap", "late-ny"]
SequencingCluster = Literal["profit-momentum", "loss-cluster", "mixed", "neutral"]
GovernanceDecision = Literal["approved", "throttled", "rejected"]
ExitLatencyGrade = Literal["A", "B", "C", "D"]
TradeMode = Literal["scalp", "continuation"]

GateId = Literal[
    "friction_ratio",
    "htf_alignment",
    "edge_decay",
    "spread_instability",
    "compression_low_session",
    "overtrading",
    "loss_cluster_alignment",
    "liquidity_shock",
]

UPSTREAM_BLOCK_REASON = "market_data_unavailable"


def _ordered_range(value: Tuple[float, float]) -> Tuple[float, float]:
    low, high = value
    if low > high:
        raise ValueError(f"range lower bound {low} exceeds upper bound {high}")
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class TradeProposal(FrozenModel):
    """Candidate trade awaiting a governance decision."""

    pair: str
    direction: Direction
    base_win_probability: float = Field(ge=0.0, le=1.0)
    base_win_range: Tuple[float, float]
    base_loss_range: Tuple[float, float]

    @field_validator("base_win_range", "base_loss_range")
    @classmethod
    def _check_range(cls, value: Tuple[float, float]) -> Tuple[float, float]:
        return _ordered_range(value)


class MarketSignal(FrozenModel):
    """Indicator consensus for one (pair, timeframe) from the market-data collaborator."""

    pair: str
    timeframe: str = "15m"
    consensus_score: float = Field(ge=-100.0, le=100.0)
    consensus_direction: Literal["bullish", "bearish", "neutral"] = "neutral"
    indicator_signals: Dict[str, str] = Field(default_factory=dict)
    atr: Optional[float] = Field(default=None, ge=0.0)
    atr_avg: Optional[float] = Field(default=None, ge=0.0)
    regime: Optional[str] = None
    regime_strength: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class GovernanceContext(FrozenModel):
    """Point-in-time market, microstructure and session snapshot for one proposal."""

    alignment_score: float = Field(ge=0.0, le=100.0)
    htf_supports: bool
    mtf_confirms: bool
    ltf_clean: bool
    volatility_phase: VolatilityPhase
    phase_confidence: float = Field(ge=0.0, le=100.0)
    liquidity_shock_prob: float = Field(ge=0.0, le=100.0)
    spread_stability_rank: float = Field(ge=0.0, le=100.0)
    friction_ratio: float = Field(ge=0.0)
    pair_expectancy: float = Field(ge=0.0, le=100.0)
    pair_favored: bool = False
    is_major_pair: bool = False
    session: TradingSession
    session_aggressiveness: float = Field(ge=0.0, le=100.0)
    edge_decaying: bool = False
    edge_decay_rate: float = Field(default=0.0, ge=0.0)
    overtrading_throttled: bool = False
    sequencing_cluster: SequencingCluster = "neutral"


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class GovernanceMultipliers(FrozenModel):
    alignment: float = Field(gt=0.0)
    regime: float = Field(gt=0.0)
    pair_performance: float = Field(gt=0.0)
    microstructure: float = Field(gt=0.0)
    exit_efficiency: float = Field(gt=0.0)
    session: float = Field(gt=0.0)
    sequencing: float = Field(gt=0.0)
    composite: float = Field(gt=0.0)

    def factors(self) -> Tuple[float, ...]:
        """The seven independent multipliers, in composition order."""
        return (
            self.alignment,
            self.regime,
            self.pair_performance,
            self.microstructure,
            self.exit_efficiency,
            self.session,
            self.sequencing,
        )


class GateTrigger(FrozenModel):
    gate: GateId
    reason: str


class GovernanceResult(FrozenModel):
    """Outcome of a single governance evaluation."""

    decision: GovernanceDecision
    adjusted_win_probability: float
    adjusted_win_range: Tuple[float, float]
    adjusted_loss_range: Tuple[float, float]
    adjusted_duration_minutes: Tuple[int, int]
    adjusted_drawdown_cap: float
    multipliers: Optional[GovernanceMultipliers] = None
    triggered_gates: List[GateTrigger] = Field(default_factory=list)
    governance_score: float = Field(ge=0.0, le=100.0)
    confidence_boost: float = 0.0
    capture_ratio: float = 0.0
    expected_expectancy: float = 0.0
    friction_cost: float = 0.0
    exit_latency_grade: Optional[ExitLatencyGrade] = None
    alignment_label: str = ""
    volatility_label: str = ""
    session_label: str = ""
    trade_mode: TradeMode = "scalp"
    blocked_by_upstream: bool = False
    block_reason: Optional[str] = None

    @property
    def rejection_reasons(self) -> List[str]:
        """Operator-facing reasons in gate order, upstream block first."""
        reasons = [self.block_reason] if self.block_reason else []
        return reasons + [trigger.reason for trigger in self.triggered_gates]

    @property
    def gate_ids(self) -> List[GateId]:
        return [trigger.gate for trigger in self.triggered_gates]


class GovernanceStats(SerializableModel):
    """Aggregate view over a batch of governance results."""

    total_proposals: int = 0
    approved: int = 0
    throttled: int = 0
    rejected: int = 0
    blocked_by_upstream: int = 0
    approval_rate: float = 0.0
    rejection_rate: float = 0.0
    avg_composite: float = 0.0
    avg_governance_score: float = 0.0
    avg_capture_ratio: float = 0.0
    avg_expected_expectancy: float = 0.0
    approved_win_rate: float = 0.0
    gate_counts: Dict[str, int] = Field(default_factory=dict)
    top_rejection_reasons: List[Tuple[str, int]] = Field(default_factory=list)
