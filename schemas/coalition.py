"""Agent fleet and coalition schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import Field

from .governance import FrozenModel

FleetSet = Literal["ACTIVE", "BENCH", "SHADOW"]
EffectiveTier = Literal["A", "B-Rescued", "B-Promotable", "B-Shadow", "B-Legacy", "C", "D"]
DeploymentState = Literal["deploy", "reduced", "shadow", "disabled"]
CoalitionTier = Literal["duo", "trio"]
StabilityTrend = Literal["improving", "flat", "deteriorating"]
AgentRole = Literal["champion", "stabilizer", "specialist", "diluter"]
PromotionSource = Literal["BENCH", "SHADOW", "SUPPORT"]

EXECUTABLE_TIERS: frozenset[str] = frozenset({"A", "B-Rescued", "B-Promotable"})
EXECUTABLE_DEPLOYMENTS: frozenset[str] = frozenset({"deploy", "reduced"})


class AgentStats(FrozenModel):
    """Per-agent aggregate row supplied by the agent-metrics collaborator."""

    agent_id: str
    total_trades: int = Field(default=0, ge=0)
    win_count: int = Field(default=0, ge=0)
    net_pips: float = 0.0
    gross_profit: float = Field(default=0.0, ge=0.0)
    gross_loss: float = Field(default=0.0, ge=0.0)
    long_count: int = Field(default=0, ge=0)
    long_wins: int = Field(default=0, ge=0)
    long_net: float = 0.0
    short_count: int = Field(default=0, ge=0)
    short_wins: int = Field(default=0, ge=0)
    short_net: float = 0.0


class AgentMetrics(FrozenModel):
    total_trades: int = Field(default=0, ge=0)
    win_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    expectancy: float = 0.0
    profit_factor: float = Field(default=0.0, ge=0.0)
    net_pips: float = 0.0


class AgentSnapshot(FrozenModel):
    """Resolved view of one agent for the current evaluation cycle."""

    agent_id: str
    fleet_set: FleetSet
    effective_tier: EffectiveTier
    deployment_state: DeploymentState
    size_multiplier: float = Field(ge=0.0)
    can_execute: bool = False
    constraints: List[str] = Field(default_factory=list)
    metrics: AgentMetrics = Field(default_factory=AgentMetrics)
    is_support: bool = False

    @property
    def blocked_directions(self) -> List[str]:
        prefix = "block_direction:"
        return [c[len(prefix):] for c in self.constraints if c.startswith(prefix)]


class CoalitionRequirement(FrozenModel):
    tier: CoalitionTier
    min_agents: int = Field(ge=2)
    survivorship_score: float = Field(ge=0.0, le=100.0)
    rolling_pf: float = Field(ge=0.0)
    expectancy_slope: float = 0.0
    stability_trend: StabilityTrend
    learning_phase: bool = False
    reasons: List[str] = Field(default_factory=list)


class PromotionEvent(FrozenModel):
    """Audit record for an agent admitted to the live coalition."""

    agent_id: str
    source: PromotionSource
    size_multiplier: float
    trigger_metric: str
    message: str


class ExecutionSnapshot(FrozenModel):
    agents: List[AgentSnapshot] = Field(default_factory=list)
    eligible_agents: List[AgentSnapshot] = Field(default_factory=list)
    allowed_pairs: List[str] = Field(default_factory=list)
    coalition_requirement: CoalitionRequirement
    promotions: List[PromotionEvent] = Field(default_factory=list)

    @property
    def total_agents(self) -> int:
        return len(self.agents)

    @property
    def eligible_count(self) -> int:
        return len(self.eligible_agents)

    @property
    def shadow_count(self) -> int:
        return sum(1 for a in self.agents if a.deployment_state == "shadow")

    @property
    def disabled_count(self) -> int:
        return sum(1 for a in self.agents if a.deployment_state == "disabled")

    @property
    def coalition_met(self) -> bool:
        return self.eligible_count >= self.coalition_requirement.min_agents


class AgentSelection(FrozenModel):
    agent: AgentSnapshot
    role: AgentRole
    role_multiplier: float = Field(ge=0.0)
    can_set_direction: bool = True
    score: Optional[float] = None
