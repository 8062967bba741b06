"""Evaluation cycle wiring the governance engines to their collaborators.

Each cycle re-reads the trade history and agent stats, recomputes the
rolling windows, governance state, pair allocations and coalition from
scratch, then evaluates proposals one at a time against a fresh market
signal. The only state carried between cycles lives in the injected
GovernanceStore.

Usage::

    cycle = GovernanceCycle(history, agents, market, store=GovernanceStore())
    evaluations = cycle.run(proposals)
    for ev in evaluations:
        if ev.executable:
            broker.place(ev.pair, ev.direction, ev.units)
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Literal, Mapping, Optional, Protocol, Sequence, Tuple

from app.core.config import Settings, get_settings
from app.core.errors import MarketDataUnavailableError
from app.core.logging import get_logger
from schemas.coalition import AgentSelection, AgentStats, ExecutionSnapshot
from schemas.governance import Direction, GovernanceResult, MarketSignal, TradeProposal
from schemas.governance_state import GovernanceStateDecision
from schemas.sizing import (
    DiscoveryAssessment,
    PositionSizeBreakdown,
    PositionSizeRequest,
    RegimePerformance,
    SessionWindow,
)
from schemas.trade_history import PairAllocation, RollingWindowMetrics, TradeRecord
from services.coalition_resolver import resolve_agent_snapshot, select_agent
from services.friction_gate import (
    FrictionGateResult,
    detect_session,
    get_session_budget,
    is_weekend,
    regime_label_for_hour,
    run_friction_gate,
)
from services.governance_context import (
    authorize_direction,
    build_governance_context,
    classify_sequencing,
    edge_decay_rate,
)
from services.governance_state_machine import GovernanceStateMachine
from services.governance_store import GovernanceStore
from services.position_sizing import (
    apply_pair_restrictions,
    compute_position_size,
    deployment_multiplier,
    discovery_multiplier,
    regime_kelly_multiplier,
)
from services.rolling_metrics_engine import compute_pair_allocation, compute_pair_allocations, compute_windows
from services.trade_governance import evaluate_trade_proposal, evaluate_with_market_context

logger = get_logger(__name__)

SIGNAL_TIMEFRAME = "15m"
OVERTRADING_LOOKBACK = timedelta(hours=1)

EvaluationStatus = Literal["approved", "throttled", "rejected", "blocked", "skipped", "gated"]


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class TradeHistoryProvider(Protocol):
    def recent_trades(self, limit: int) -> List[TradeRecord]:
        """Newest-first trade rows, at most ``limit``."""

    def total_trade_count(self) -> int:
        """Historical filled-trade count across all time."""


class AgentMetricsProvider(Protocol):
    def agent_stats(self) -> List[AgentStats]:
        """One aggregate row per known agent."""


class MarketDataProvider(Protocol):
    def market_signal(self, pair: str, timeframe: str) -> MarketSignal:
        """Indicator consensus; raises MarketDataUnavailableError or an OSError when it cannot serve one."""


# ---------------------------------------------------------------------------
# Cycle records
# ---------------------------------------------------------------------------


@dataclass
class CycleState:
    """Everything recomputed at the start of a cycle."""

    as_of: datetime
    session: SessionWindow
    regime: str
    weekend: bool
    history: List[TradeRecord]
    windows: Tuple[RollingWindowMetrics, RollingWindowMetrics, RollingWindowMetrics]
    governance: GovernanceStateDecision
    pair_allocations: Dict[str, PairAllocation]
    execution: ExecutionSnapshot


@dataclass
class TradeEvaluation:
    """Outcome of one proposal through the full governance pipeline."""

    pair: str
    direction: Direction
    status: EvaluationStatus
    reason: Optional[str] = None
    governance: Optional[GovernanceResult] = None
    selection: Optional[AgentSelection] = None
    friction: Optional[FrictionGateResult] = None
    discovery: Optional[DiscoveryAssessment] = None
    sizing: Optional[PositionSizeBreakdown] = None
    shadow: bool = False

    @property
    def units(self) -> int:
        return self.sizing.final_units if self.sizing else 0

    @property
    def executable(self) -> bool:
        return self.status == "approved" and self.sizing is not None and not self.shadow


# ---------------------------------------------------------------------------
# Cycle
# ---------------------------------------------------------------------------


class GovernanceCycle:
    def __init__(
        self,
        history: TradeHistoryProvider,
        agents: AgentMetricsProvider,
        market: MarketDataProvider,
        *,
        store: GovernanceStore,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        regime_performance: Optional[Mapping[str, RegimePerformance]] = None,
    ) -> None:
        self._history = history
        self._agents = agents
        self._market = market
        self._store = store
        self._settings = settings or get_settings()
        self._rng = rng or random.Random(self._settings.governance_rng_seed)
        self._regime_performance = dict(regime_performance or {})
        self._state_machine = GovernanceStateMachine(
            learning_milestone=self._settings.governance_learning_milestone
        )

    @property
    def store(self) -> GovernanceStore:
        return self._store

    def refresh(self, now: Optional[datetime] = None) -> CycleState:
        """Recompute windows, state, allocations and coalition for this cycle."""
        now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
        s = self._settings
        history = self._history.recent_trades(s.history_lookback)
        windows = compute_windows(history)
        governance = self._state_machine.evaluate(*windows, total_trades=self._history.total_trade_count())
        allocations = compute_pair_allocations(history, primary_pair=s.primary_pair)
        execution = resolve_agent_snapshot(
            self._agents.agent_stats(), learning_milestone=s.coalition_learning_milestone
        )

        requirement = execution.coalition_requirement
        logger.info(
            "governance_cycle_refreshed",
            state=governance.state,
            metrics_state=governance.metrics_state,
            learning_phase=governance.learning_phase,
            reasons=governance.reasons,
            warnings=governance.warnings,
            coalition_tier=requirement.tier,
            min_agents=requirement.min_agents,
            eligible=execution.eligible_count,
            survivorship=requirement.survivorship_score,
        )
        for event in execution.promotions:
            logger.info(
                "coalition_promotion",
                agent_id=event.agent_id,
                source=event.source,
                size_multiplier=event.size_multiplier,
                trigger_metric=event.trigger_metric,
            )

        return CycleState(
            as_of=now,
            session=detect_session(now),
            regime=regime_label_for_hour(now),
            weekend=is_weekend(now),
            history=history,
            windows=windows,
            governance=governance,
            pair_allocations=allocations,
            execution=execution,
        )

    # --- helpers -------------------------------------------------------------

    def _fetch_signal(self, pair: str) -> Optional[MarketSignal]:
        try:
            return self._market.market_signal(pair, SIGNAL_TIMEFRAME)
        except MarketDataUnavailableError as exc:
            logger.warning("market_data_unavailable", pair=pair, timeframe=exc.timeframe, detail=exc.detail)
            return None
        except OSError as exc:
            # ConnectionError and TimeoutError land here: an unreachable provider is an outage.
            logger.warning("market_data_unavailable", pair=pair, timeframe=SIGNAL_TIMEFRAME, detail=repr(exc))
            return None

    def _overtrading(self, cycle: CycleState) -> bool:
        budget = get_session_budget(cycle.session)
        allowed = budget.max_density * cycle.governance.config.density_multiplier
        cutoff = cycle.as_of - OVERTRADING_LOOKBACK
        recent = sum(
            1
            for r in cycle.history
            if r.is_filled and r.created_at is not None and _as_utc(r.created_at) >= cutoff
        )
        return recent > allowed

    def _sequencing(self, cycle: CycleState):
        pnls = [r.pnl_pips for r in cycle.history if r.is_closed]
        return classify_sequencing(pnls)

    # --- evaluation ----------------------------------------------------------

    def evaluate(
        self,
        proposal: TradeProposal,
        *,
        cycle: Optional[CycleState] = None,
        account_balance: Optional[float] = None,
    ) -> TradeEvaluation:
        cycle = cycle or self.refresh()
        s = self._settings
        pair = proposal.pair

        def _done(status: EvaluationStatus, reason: Optional[str] = None, **kwargs) -> TradeEvaluation:
            return TradeEvaluation(pair=pair, direction=proposal.direction, status=status, reason=reason, **kwargs)

        if cycle.weekend:
            return _done("skipped", "market-closed")
        if not cycle.execution.coalition_met:
            return _done("blocked", "coalition-unmet")

        signal = self._fetch_signal(pair)
        if signal is None:
            blocked = evaluate_with_market_context(proposal, None)
            return _done("blocked", blocked.block_reason, governance=blocked)

        auth = authorize_direction(signal, pair, cycle.session)
        if not auth.authorized:
            return _done("skipped", auth.status)
        if auth.direction != proposal.direction:
            return _done("skipped", "direction-mismatch")

        selection = select_agent(cycle.execution, pair, self._rng, primary_pair=s.primary_pair)
        if selection is None:
            return _done("blocked", "no-eligible-agent")
        if proposal.direction in selection.agent.blocked_directions:
            return _done("skipped", f"agent {selection.agent.agent_id} blocks {proposal.direction}", selection=selection)
        if not selection.can_set_direction and not auth.mtf_momentum:
            return _done(
                "skipped", f"support agent {selection.agent.agent_id} cannot override MTF failure", selection=selection
            )

        bypassed = self._store.is_bypassed(pair, cycle.as_of)
        allocation = cycle.pair_allocations.get(pair) or compute_pair_allocation(
            cycle.history, pair, primary_pair=s.primary_pair
        )
        restriction = "none" if bypassed else cycle.governance.config.pair_restriction
        pair_multiplier = apply_pair_restrictions(allocation, restriction, session=cycle.session)

        friction = run_friction_gate(pair, cycle.session, cycle.governance.config)
        if not friction.passed and not bypassed:
            return _done("gated", "; ".join(friction.reasons), selection=selection, friction=friction)

        w20, w50, _ = cycle.windows
        ctx = build_governance_context(
            pair,
            signal,
            cycle.session,
            authorization=auth,
            friction_ratio=friction.friction_ratio,
            pair_allocation=allocation,
            decay_rate=edge_decay_rate(w20, w50),
            overtrading_throttled=self._overtrading(cycle),
            sequencing_cluster=self._sequencing(cycle),
        )
        result = evaluate_trade_proposal(proposal, ctx)
        if result.decision == "rejected":
            return _done(
                "rejected", "; ".join(result.rejection_reasons), governance=result, selection=selection, friction=friction
            )

        discovery = discovery_multiplier(
            pair,
            cycle.session,
            cycle.regime,
            selection.agent.agent_id,
            composite=friction.friction_score / 100.0,
            direction=proposal.direction,
        )
        request = PositionSizeRequest(
            pair=pair,
            direction=proposal.direction,
            account_balance=account_balance or s.default_account_balance,
            confidence=min(100.0, auth.confidence),
            governance_sizing_multiplier=cycle.governance.config.sizing_multiplier,
            pair_capital_multiplier=pair_multiplier,
            session_capital_budget=get_session_budget(cycle.session).capital_budget_pct,
            agent_size_multiplier=selection.agent.size_multiplier,
            agent_role_multiplier=selection.role_multiplier,
            regime_multiplier=regime_kelly_multiplier(cycle.regime, self._regime_performance.get(cycle.regime)),
            deployment_multiplier=deployment_multiplier(pair, discovery.multiplier, self._rng),
        )
        sizing = compute_position_size(request, min_units=s.sizing_min_units, max_units=s.sizing_max_units)

        shadow = False
        if result.decision == "approved":
            shadow = not self._store.assert_not_shadow_mode(f"order {pair} {proposal.direction}")

        logger.info(
            "trade_evaluated",
            pair=pair,
            direction=proposal.direction,
            decision=result.decision,
            composite=round(result.multipliers.composite, 3),
            gates=result.gate_ids,
            agent_id=selection.agent.agent_id,
            role=selection.role,
            units=sizing.final_units,
            discovery=discovery.label,
            shadow=shadow,
        )
        return _done(
            result.decision,
            "; ".join(result.rejection_reasons) or None,
            governance=result,
            selection=selection,
            friction=friction,
            discovery=discovery,
            sizing=sizing,
            shadow=shadow,
        )

    def run(
        self,
        proposals: Sequence[TradeProposal],
        *,
        now: Optional[datetime] = None,
        account_balance: Optional[float] = None,
    ) -> List[TradeEvaluation]:
        """Refresh once, evaluate every proposal, record batch stats in the store."""
        cycle = self.refresh(now)
        evaluations = [
            self.evaluate(p, cycle=cycle, account_balance=account_balance) for p in proposals
        ]
        results = [ev.governance for ev in evaluations if ev.governance is not None]
        stats = self._store.record_results(results)
        logger.info(
            "governance_cycle_complete",
            proposals=len(proposals),
            approved=stats.approved,
            throttled=stats.throttled,
            rejected=stats.rejected,
            executable=sum(1 for ev in evaluations if ev.executable),
        )
        return evaluations


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts
