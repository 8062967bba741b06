"""Governance services: pure engines plus the evaluation cycle that wires them."""

from .rolling_metrics_engine import compute_pair_allocations, compute_window, compute_windows
from .governance_state_machine import (
    GovernanceStateMachine,
    determine_governance_state,
    determine_state,
    get_state_config,
)
from .multiplier_composer import compose_multipliers
from .gate_evaluator import evaluate_gates
from .trade_governance import (
    compute_governance_stats,
    evaluate_trade_proposal,
    evaluate_with_market_context,
    upstream_blocked_result,
)
from .coalition_resolver import compute_coalition_requirement, resolve_agent_snapshot, select_agent
from .position_sizing import compute_position_size, discovery_multiplier, regime_kelly_multiplier
from .friction_gate import detect_session, run_friction_gate
from .governance_context import authorize_direction, build_governance_context
from .governance_store import GovernanceStore
from .governance_cycle import GovernanceCycle, TradeEvaluation

__all__ = [
    "compute_pair_allocations",
    "compute_window",
    "compute_windows",
    "GovernanceStateMachine",
    "determine_governance_state",
    "determine_state",
    "get_state_config",
    "compose_multipliers",
    "evaluate_gates",
    "compute_governance_stats",
    "evaluate_trade_proposal",
    "evaluate_with_market_context",
    "upstream_blocked_result",
    "compute_coalition_requirement",
    "resolve_agent_snapshot",
    "select_agent",
    "compute_position_size",
    "discovery_multiplier",
    "regime_kelly_multiplier",
    "detect_session",
    "run_friction_gate",
    "authorize_direction",
    "build_governance_context",
    "GovernanceStore",
    "GovernanceCycle",
    "TradeEvaluation",
]
