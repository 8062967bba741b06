"""Direction authority and GovernanceContext construction.

Direction is only authorized by indicator consensus: |score| >= 25 with a
bullish or bearish reading. Shorts additionally need a short-eligible pair
and session. Missing market data is never replaced with a guessed
direction; the caller must block the trade.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from schemas.governance import (
    Direction,
    GovernanceContext,
    MarketSignal,
    SequencingCluster,
    TradingSession,
)
from schemas.trade_history import PairAllocation, RollingWindowMetrics
from services.friction_gate import get_session_budget, regime_label_for_hour
from trading_core.config import (
    DEFAULT_BASE_SPREAD,
    DEFAULT_FRICTION_MODEL,
    MAJOR_PAIRS,
    PAIR_BASE_SPREADS,
    SESSION_AGGRESSIVENESS,
    SHORT_ELIGIBLE_PAIRS,
    SHORT_ELIGIBLE_SESSIONS,
)

MIN_CONSENSUS = 25.0
HTF_BIAS_THRESHOLD = 25.0
MTF_MOMENTUM_THRESHOLD = 35.0
LTF_IGNITION_THRESHOLD = 20.0

DEFAULT_PHASE_CONFIDENCE = 70.0
DEFAULT_SHOCK_PROB = 15.0
FAVORED_PAIR_EXPECTANCY = 65.0
SEQUENCING_RUN = 3

_PHASES = ("compression", "ignition", "expansion", "exhaustion")

AuthorizationStatus = Literal[
    "authorized", "weak-consensus", "neutral-consensus", "direction-mismatch", "mtf-unavailable"
]


@dataclass(frozen=True)
class DirectionAuthorization:
    status: AuthorizationStatus
    direction: Optional[Direction]
    confidence: float
    consensus_score: float
    htf_bias: bool
    mtf_momentum: bool
    ltf_ignition: bool

    @property
    def authorized(self) -> bool:
        return self.status == "authorized"


def authorize_direction(signal: Optional[MarketSignal], pair: str, session: str) -> DirectionAuthorization:
    """Turn indicator consensus into an authorized direction, or a reason not to trade."""
    if signal is None:
        return DirectionAuthorization("mtf-unavailable", None, 0.0, 0.0, False, False, False)

    score = signal.consensus_score
    strength = abs(score)
    htf, mtf, ltf = (
        strength >= HTF_BIAS_THRESHOLD,
        strength >= MTF_MOMENTUM_THRESHOLD,
        strength >= LTF_IGNITION_THRESHOLD,
    )
    confidence = round(60 + strength * 0.3)

    def _result(status: AuthorizationStatus, direction: Optional[Direction]) -> DirectionAuthorization:
        return DirectionAuthorization(status, direction, confidence, score, htf, mtf, ltf)

    if strength < MIN_CONSENSUS:
        return _result("weak-consensus", None)
    if signal.consensus_direction == "bullish":
        return _result("authorized", "long")
    if signal.consensus_direction == "bearish":
        if pair in SHORT_ELIGIBLE_PAIRS and session in SHORT_ELIGIBLE_SESSIONS:
            return _result("authorized", "short")
        return _result("direction-mismatch", None)
    return _result("neutral-consensus", None)


# ---------------------------------------------------------------------------
# Context inputs
# ---------------------------------------------------------------------------


def context_session(session: str) -> TradingSession:
    """Governance session for a clock session; rollover scores as late NY."""
    return "late-ny" if session == "rollover" else session


def spread_stability_rank(pair: str, session: str) -> float:
    """Baseline spread as a share of the session's expected spread plus its noise."""
    base = PAIR_BASE_SPREADS.get(pair, DEFAULT_BASE_SPREAD)
    expected = base * get_session_budget(session).friction_multiplier
    noisy = expected * (1 + DEFAULT_FRICTION_MODEL.spread_volatility_ratio)
    return max(0.0, min(100.0, 100.0 * base / noisy))


def liquidity_shock_probability(signal: MarketSignal) -> float:
    if signal.atr is None or not signal.atr_avg:
        return DEFAULT_SHOCK_PROB
    return max(0.0, min(100.0, (signal.atr / signal.atr_avg - 1.0) * 100.0))


def pair_expectancy_rank(allocation: Optional[PairAllocation]) -> float:
    """0-100 rank of a pair's rolling performance; 50 when unknown."""
    if allocation is None or allocation.closed_count == 0:
        return 50.0
    rank = 50.0 + allocation.expectancy * 5.0 + (allocation.win_rate - 0.5) * 40.0
    return max(0.0, min(100.0, rank))


def edge_decay_rate(w20: RollingWindowMetrics, w50: RollingWindowMetrics) -> float:
    """Percent drop of short-window expectancy against the longer window."""
    if w20.is_neutral_default or w50.is_neutral_default or w50.expectancy <= 0:
        return 0.0
    if w20.expectancy >= w50.expectancy:
        return 0.0
    return (w50.expectancy - w20.expectancy) / w50.expectancy * 100.0


def classify_sequencing(recent_pnls: Sequence[float]) -> SequencingCluster:
    """Cluster from newest-first realized P&L of the latest closed trades."""
    head = list(recent_pnls[:SEQUENCING_RUN])
    if len(head) < SEQUENCING_RUN:
        return "neutral"
    if all(p > 0 for p in head):
        return "profit-momentum"
    if all(p <= 0 for p in head):
        return "loss-cluster"
    return "mixed"


def build_governance_context(
    pair: str,
    signal: MarketSignal,
    session: str,
    *,
    authorization: Optional[DirectionAuthorization] = None,
    friction_ratio: float,
    pair_allocation: Optional[PairAllocation] = None,
    spread_rank: Optional[float] = None,
    decay_rate: float = 0.0,
    overtrading_throttled: bool = False,
    sequencing_cluster: SequencingCluster = "neutral",
) -> GovernanceContext:
    """Map indicator consensus and microstructure inputs into a context snapshot."""
    auth = authorization or authorize_direction(signal, pair, session)
    phase = signal.regime if signal.regime in _PHASES else regime_label_for_hour()
    governed_session = context_session(session)
    expectancy = pair_expectancy_rank(pair_allocation)

    return GovernanceContext(
        alignment_score=40.0 * auth.htf_bias + 35.0 * auth.mtf_momentum + 25.0 * auth.ltf_ignition,
        htf_supports=auth.htf_bias,
        mtf_confirms=auth.mtf_momentum,
        ltf_clean=auth.ltf_ignition,
        volatility_phase=phase,
        phase_confidence=(
            signal.regime_strength if signal.regime_strength is not None else DEFAULT_PHASE_CONFIDENCE
        ),
        liquidity_shock_prob=liquidity_shock_probability(signal),
        spread_stability_rank=spread_rank if spread_rank is not None else spread_stability_rank(pair, session),
        friction_ratio=max(0.0, friction_ratio),
        pair_expectancy=expectancy,
        pair_favored=expectancy > FAVORED_PAIR_EXPECTANCY,
        is_major_pair=pair in MAJOR_PAIRS,
        session=governed_session,
        session_aggressiveness=SESSION_AGGRESSIVENESS[governed_session],
        edge_decaying=decay_rate > 0,
        edge_decay_rate=max(0.0, decay_rate),
        overtrading_throttled=overtrading_throttled,
        sequencing_cluster=sequencing_cluster,
    )
