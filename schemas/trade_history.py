"""Trade-history rows and the rolling statistics derived from them."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import Field

from .governance import Direction, FrozenModel

TradeStatus = Literal[
    "filled", "closed", "rejected", "submitted", "shadow_eval", "skipped", "cancelled"
]
TradeDecision = Literal["enter", "skip", "blocked"]
PairStatus = Literal["promoted", "normal", "restricted", "banned"]

DECISION_BUCKETS: tuple[TradeDecision, ...] = ("enter", "skip", "blocked")


def pip_scale(pair: str) -> float:
    """Price-delta to pips conversion factor (JPY-quoted pairs use 2 decimals)."""
    return 100.0 if "JPY" in pair.upper() else 10_000.0


class TradeRecord(FrozenModel):
    """One order row as returned by the trade-history collaborator."""

    pair: str
    direction: Direction
    status: TradeStatus
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    session_label: Optional[str] = None
    regime_label: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    execution_quality_score: Optional[float] = None
    slippage_pips: Optional[float] = None
    gate_result: Optional[str] = None
    agent_id: Optional[str] = None

    @property
    def is_filled(self) -> bool:
        return self.status in ("filled", "closed") and self.entry_price is not None

    @property
    def is_closed(self) -> bool:
        return (
            self.status == "closed"
            and self.entry_price is not None
            and self.exit_price is not None
        )

    @property
    def decision(self) -> TradeDecision:
        gate = (self.gate_result or "").lower()
        if gate == "rejected" or self.status == "rejected":
            return "blocked"
        if gate == "throttled" or self.status == "shadow_eval":
            return "skip"
        return "enter"

    @property
    def pnl_pips(self) -> Optional[float]:
        """Realized pips for a closed trade, ``None`` otherwise."""
        if not self.is_closed:
            return None
        delta = self.exit_price - self.entry_price
        if self.direction == "short":
            delta = -delta
        return delta * pip_scale(self.pair)


class RollingWindowMetrics(FrozenModel):
    """Statistics over the newest ``window_size`` trade records."""

    window_size: int = Field(ge=1)
    trade_count: int = Field(ge=0)
    closed_count: int = Field(default=0, ge=0)
    win_rate: float = Field(ge=0.0, le=1.0)
    expectancy: float
    profit_factor: Optional[float] = Field(default=None, ge=0.0)
    total_pnl_pips: float = 0.0
    drawdown_slope: float = Field(default=0.0, ge=0.0)
    friction_adj_pnl: float = 0.0
    rejection_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    decision_entropy: float = Field(default=0.0, ge=0.0)
    decision_distribution: Dict[TradeDecision, int] = Field(default_factory=dict)
    capture_ratio: float = Field(ge=0.0, le=1.0)
    avg_quality: float = 70.0
    avg_slippage: float = 0.0
    slippage_drift: bool = False
    is_neutral_default: bool = False


class PairAllocation(FrozenModel):
    """Rolling per-pair performance and the capital multiplier it earns."""

    pair: str
    display_pair: str
    trade_count: int = 0
    closed_count: int = 0
    win_rate: float = 0.5
    expectancy: float = 0.0
    sharpe: float = 0.0
    avg_quality: float = 70.0
    net_pnl_pips: float = 0.0
    status: PairStatus = "normal"
    capital_multiplier: float = Field(default=1.0, ge=0.0)
