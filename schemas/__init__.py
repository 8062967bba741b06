"""Schemas package for typed models used across the governance engine."""

from .governance import (
    GateId,
    GateTrigger,
    GovernanceContext,
    GovernanceMultipliers,
    GovernanceResult,
    GovernanceStats,
    MarketSignal,
    SerializableModel,
    TradeProposal,
)
from .trade_history import PairAllocation, RollingWindowMetrics, TradeRecord
from .governance_state import (
    GovernanceStateConfig,
    GovernanceStateDecision,
    GovernanceStateKind,
)
from .coalition import (
    AgentMetrics,
    AgentSelection,
    AgentSnapshot,
    AgentStats,
    CoalitionRequirement,
    ExecutionSnapshot,
    PromotionEvent,
)
from .sizing import (
    DiscoveryAssessment,
    PositionSizeBreakdown,
    PositionSizeRequest,
    RegimePerformance,
    SessionBudget,
)

__all__ = [
    "GateId",
    "GateTrigger",
    "GovernanceContext",
    "GovernanceMultipliers",
    "GovernanceResult",
    "GovernanceStats",
    "MarketSignal",
    "SerializableModel",
    "TradeProposal",
    "PairAllocation",
    "RollingWindowMetrics",
    "TradeRecord",
    "GovernanceStateConfig",
    "GovernanceStateDecision",
    "GovernanceStateKind",
    "AgentMetrics",
    "AgentSelection",
    "AgentSnapshot",
    "AgentStats",
    "CoalitionRequirement",
    "ExecutionSnapshot",
    "PromotionEvent",
    "DiscoveryAssessment",
    "PositionSizeBreakdown",
    "PositionSizeRequest",
    "RegimePerformance",
    "SessionBudget",
]
