"""Agent coalition resolver.

Classifies every agent from its aggregate stats, decides how many agents must
concur (duo or trio, never fewer than two) and, when the live pool is short,
promotes agents in strict priority order:

  1. BENCH   (pre-cleared, best profit factor first)   at 0.35x size
  2. SHADOW  (expectancy > -2 pips or < 3 trades)      at 0.20x size
  3. SUPPORT (non-directional confirmers, no history)  at 0.15x size

Every promotion is logged with the metric that admitted it. Agent selection
uses an injected ``random.Random`` so it is reproducible under a seed.
"""
from __future__ import annotations

import logging
import random
from typing import Iterable, List, Optional, Sequence, Tuple

from schemas.coalition import (
    EXECUTABLE_DEPLOYMENTS,
    EXECUTABLE_TIERS,
    AgentMetrics,
    AgentRole,
    AgentSelection,
    AgentSnapshot,
    AgentStats,
    CoalitionRequirement,
    ExecutionSnapshot,
    PromotionEvent,
    StabilityTrend,
)
from services.rolling_metrics_engine import bounded_profit_factor
from trading_core.config import (
    ALL_PAIRS,
    DEFAULT_COALITION_POLICY,
    DEFAULT_TIER_THRESHOLDS,
    ROLE_MULTIPLIERS,
    CoalitionPolicy,
    TierThresholds,
)

logger = logging.getLogger(__name__)

SUPPORT_CONSTRAINTS = ("support-only", "no-override")
SHORT_BLOCK_CONSTRAINT = "block_direction:short"
LONG_ONLY_LOSS_FLOOR = 0.01


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _long_only_metrics(stats: AgentStats) -> AgentMetrics:
    count = stats.long_count
    gross_profit = max(0.0, stats.long_net)
    gross_loss = max(0.0, -stats.long_net) or LONG_ONLY_LOSS_FLOOR
    return AgentMetrics(
        total_trades=count,
        win_rate=min(1.0, stats.long_wins / count) if count else 0.0,
        expectancy=stats.long_net / count if count else 0.0,
        profit_factor=gross_profit / gross_loss,
        net_pips=stats.long_net,
    )


def _overall_metrics(stats: AgentStats) -> AgentMetrics:
    total = stats.total_trades
    return AgentMetrics(
        total_trades=total,
        win_rate=min(1.0, stats.win_count / total) if total else 0.0,
        expectancy=stats.net_pips / total if total else 0.0,
        profit_factor=bounded_profit_factor(stats.gross_profit, stats.gross_loss),
        net_pips=stats.net_pips,
    )


def classify_agent(stats: AgentStats, thresholds: TierThresholds = DEFAULT_TIER_THRESHOLDS) -> AgentSnapshot:
    """Resolve tier, fleet, deployment state and size for one agent."""
    t = thresholds
    overall = _overall_metrics(stats)
    expectancy = overall.expectancy
    pf = overall.profit_factor

    session_coverage = 4 if expectancy > 0 else 2 if expectancy > -0.5 else 1
    oos_holds = expectancy > 0 and pf >= t.oos_min_pf
    if expectancy > 0 and pf >= t.a_min_pf and session_coverage >= t.a_min_session_coverage and oos_holds:
        raw_tier = "A"
    elif stats.net_pips > t.b_min_net_pips and pf >= t.b_min_pf:
        raw_tier = "B"
    elif stats.net_pips > t.c_min_net_pips:
        raw_tier = "C"
    else:
        raw_tier = "D"

    short_destructive = (
        stats.short_net < t.short_destructive_net and stats.short_count > t.short_destructive_count
    )
    metrics = overall
    constraints: List[str] = []
    tier, deployment, size, fleet = raw_tier, "disabled", 0.0, "SHADOW"

    if raw_tier == "A":
        tier, deployment, size, fleet = "A", "deploy", 1.0, "ACTIVE"
    elif raw_tier == "B" and short_destructive:
        metrics = _long_only_metrics(stats)
        constraints.append(SHORT_BLOCK_CONSTRAINT)
        if metrics.expectancy > 0 and metrics.profit_factor >= t.rescue_min_long_pf:
            if (
                metrics.profit_factor >= t.promotable_min_long_pf
                and metrics.expectancy > t.promotable_min_long_expectancy
            ):
                tier, deployment, size, fleet = "B-Promotable", "deploy", 1.0, "ACTIVE"
            else:
                tier, deployment, size, fleet = "B-Rescued", "reduced", t.rescued_size, "ACTIVE"
        else:
            tier, deployment, size, fleet = "B-Shadow", "shadow", 0.0, "BENCH"
    elif raw_tier == "B":
        if expectancy > 0 and pf >= t.b_promotable_min_pf:
            tier, deployment, size, fleet = "B-Promotable", "deploy", 1.0, "ACTIVE"
        elif expectancy > t.bench_min_expectancy and pf >= t.bench_min_pf:
            tier, deployment, size, fleet = "B-Shadow", "shadow", 0.0, "BENCH"
        else:
            tier, deployment, size, fleet = "B-Shadow", "shadow", 0.0, "SHADOW"
    elif raw_tier == "C":
        fleet = "BENCH" if expectancy > t.c_bench_min_expectancy and pf >= t.c_bench_min_pf else "SHADOW"

    can_execute = tier in EXECUTABLE_TIERS and deployment in EXECUTABLE_DEPLOYMENTS and size > 0
    return AgentSnapshot(
        agent_id=stats.agent_id,
        fleet_set=fleet,
        effective_tier=tier,
        deployment_state=deployment,
        size_multiplier=size,
        can_execute=can_execute,
        constraints=constraints,
        metrics=metrics,
    )


# ---------------------------------------------------------------------------
# Coalition requirement
# ---------------------------------------------------------------------------


def survivorship_score(win_rate: float, expectancy: float, profit_factor: float, trades: int) -> float:
    wr_score = min(30.0, win_rate * 50)
    exp_score = min(30.0, max(0.0, expectancy * 15))
    pf_score = min(25.0, max(0.0, (profit_factor - 0.5) * 12.5))
    sample_score = min(15.0, trades / 20)
    return float(round(wr_score + exp_score + pf_score + sample_score))


def stability_trend(
    profit_factor: float, win_rate: float, policy: CoalitionPolicy = DEFAULT_COALITION_POLICY
) -> StabilityTrend:
    if profit_factor >= policy.improving_pf and win_rate >= policy.improving_win_rate:
        return "improving"
    if profit_factor >= policy.flat_pf and win_rate >= policy.flat_win_rate:
        return "flat"
    return "deteriorating"


def compute_coalition_requirement(
    agents: Sequence[AgentSnapshot],
    *,
    total_trades: Optional[int] = None,
    learning_milestone: int = 500,
    policy: CoalitionPolicy = DEFAULT_COALITION_POLICY,
) -> CoalitionRequirement:
    """Decide duo (2) or trio (3) from trade-weighted eligible-agent metrics.

    ``total_trades`` is the aggregate historical count across all agents;
    when omitted it is summed from the snapshots. Below the learning
    milestone the answer is always duo.
    """
    eligible = [a for a in agents if a.can_execute]
    if total_trades is None:
        total_trades = sum(a.metrics.total_trades for a in agents)
    learning = total_trades < learning_milestone

    sample = sum(a.metrics.total_trades for a in eligible)
    divisor = sample or 1
    if eligible:
        weighted_wr = sum(a.metrics.win_rate * a.metrics.total_trades for a in eligible) / divisor
        weighted_exp = sum(a.metrics.expectancy * a.metrics.total_trades for a in eligible) / divisor
        weighted_pf = sum(a.metrics.profit_factor * a.metrics.total_trades for a in eligible) / divisor
        score = survivorship_score(weighted_wr, weighted_exp, weighted_pf, sample)
        trend = stability_trend(weighted_pf, weighted_wr, policy)
    else:
        weighted_exp, weighted_pf, score, trend = 0.0, 0.0, 0.0, "deteriorating"

    common = dict(
        survivorship_score=score,
        rolling_pf=weighted_pf,
        expectancy_slope=weighted_exp,
        stability_trend=trend,
        learning_phase=learning,
    )

    if learning:
        return CoalitionRequirement(
            tier="duo",
            min_agents=2,
            reasons=[f"Learning phase: {total_trades}/{learning_milestone} trades, duo enforced"],
            **common,
        )

    if not eligible:
        return CoalitionRequirement(tier="trio", min_agents=3, reasons=["No eligible agents"], **common)

    if score >= policy.duo_min_survivorship and weighted_pf >= policy.duo_min_pf and trend != "deteriorating":
        return CoalitionRequirement(
            tier="duo",
            min_agents=2,
            reasons=[
                f"Survivorship {score:.0f} >= {policy.duo_min_survivorship:.0f}",
                f"PF {weighted_pf:.2f} >= {policy.duo_min_pf:.2f}",
                f"Stability: {trend}",
            ],
            **common,
        )

    reasons = []
    if score < policy.duo_min_survivorship:
        reasons.append(f"Survivorship {score:.0f} < {policy.duo_min_survivorship:.0f}")
    if weighted_pf < policy.duo_min_pf:
        reasons.append(f"PF {weighted_pf:.2f} < {policy.duo_min_pf:.2f}")
    if trend == "deteriorating":
        reasons.append(f"Stability: {trend}")
    return CoalitionRequirement(tier="trio", min_agents=3, reasons=reasons, **common)


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


def support_agent(agent_id: str, policy: CoalitionPolicy = DEFAULT_COALITION_POLICY) -> AgentSnapshot:
    return AgentSnapshot(
        agent_id=agent_id,
        fleet_set="ACTIVE",
        effective_tier="B-Rescued",
        deployment_state="reduced",
        size_multiplier=policy.support_size,
        can_execute=True,
        constraints=list(SUPPORT_CONSTRAINTS),
        metrics=AgentMetrics(total_trades=0, win_rate=0.5, expectancy=0.0, profit_factor=1.0, net_pips=0.0),
        is_support=True,
    )


def _promote(agent: AgentSnapshot, size: float) -> AgentSnapshot:
    return agent.model_copy(
        update={
            "can_execute": True,
            "deployment_state": "reduced",
            "size_multiplier": size,
            "fleet_set": "ACTIVE",
        }
    )


def _metric_summary(agent: AgentSnapshot) -> str:
    m = agent.metrics
    return f"PF={m.profit_factor:.2f}, exp={m.expectancy:.2f}, trades={m.total_trades}"


def promote_to_minimum(
    agents: Sequence[AgentSnapshot],
    requirement: CoalitionRequirement,
    policy: CoalitionPolicy = DEFAULT_COALITION_POLICY,
) -> Tuple[List[AgentSnapshot], List[PromotionEvent]]:
    """Fill the live pool up to ``requirement.min_agents``.

    Returns the updated agent list (support agents appended) and the
    promotion events in the order they happened. Input snapshots are not
    modified.
    """
    updated = list(agents)
    events: List[PromotionEvent] = []
    needed = requirement.min_agents

    def eligible_count() -> int:
        return sum(1 for a in updated if a.can_execute)

    def admit(index: int, source: str, size: float) -> None:
        promoted = _promote(updated[index], size)
        updated[index] = promoted
        summary = _metric_summary(promoted)
        event = PromotionEvent(
            agent_id=promoted.agent_id,
            source=source,
            size_multiplier=size,
            trigger_metric=summary,
            message=f"{source}->ACTIVE: {promoted.agent_id} ({summary})",
        )
        events.append(event)
        logger.info("Auto-promote %s", event.message)

    def candidates(fleet: str) -> List[int]:
        idx = [i for i, a in enumerate(updated) if a.fleet_set == fleet and not a.can_execute]
        return sorted(idx, key=lambda i: updated[i].metrics.profit_factor, reverse=True)

    for i in candidates("BENCH"):
        if eligible_count() >= needed:
            break
        m = updated[i].metrics
        if m.profit_factor >= policy.bench_min_pf or m.total_trades < policy.bench_small_sample:
            admit(i, "BENCH", policy.bench_size)

    for i in candidates("SHADOW"):
        if eligible_count() >= needed:
            break
        m = updated[i].metrics
        if m.expectancy > policy.shadow_min_expectancy or m.total_trades < policy.shadow_small_sample:
            admit(i, "SHADOW", policy.shadow_size)

    existing = {a.agent_id for a in updated}
    for agent_id in policy.support_agent_ids:
        if eligible_count() >= needed:
            break
        if agent_id in existing:
            continue
        sa = support_agent(agent_id, policy)
        updated.append(sa)
        event = PromotionEvent(
            agent_id=agent_id,
            source="SUPPORT",
            size_multiplier=sa.size_multiplier,
            trigger_metric=f"eligible={eligible_count() - 1} < required={needed}",
            message=f"SUPPORT agent activated: {agent_id}",
        )
        events.append(event)
        logger.info("Auto-promote %s", event.message)

    if events:
        logger.info("Coalition eligible count after promotion: %d (required %d)", eligible_count(), needed)
    return updated, events


def resolve_agent_snapshot(
    stats: Iterable[AgentStats],
    *,
    learning_milestone: int = 500,
    thresholds: TierThresholds = DEFAULT_TIER_THRESHOLDS,
    policy: CoalitionPolicy = DEFAULT_COALITION_POLICY,
    allowed_pairs: Sequence[str] = ALL_PAIRS,
) -> ExecutionSnapshot:
    """Classify every agent, size the coalition and promote up to it."""
    rows = list(stats)
    agents = [classify_agent(s, thresholds) for s in rows]
    total_trades = sum(s.total_trades for s in rows)
    requirement = compute_coalition_requirement(
        agents,
        total_trades=total_trades,
        learning_milestone=learning_milestone,
        policy=policy,
    )
    agents, promotions = promote_to_minimum(agents, requirement, policy)
    return ExecutionSnapshot(
        agents=agents,
        eligible_agents=[a for a in agents if a.can_execute],
        allowed_pairs=list(allowed_pairs),
        coalition_requirement=requirement,
        promotions=promotions,
    )


# ---------------------------------------------------------------------------
# Roles and selection
# ---------------------------------------------------------------------------


def classify_agent_role(agent: AgentSnapshot) -> Tuple[AgentRole, float]:
    m = agent.metrics
    if m.expectancy > 0 and m.profit_factor >= 1.1 and m.win_rate >= 0.55:
        role: AgentRole = "champion"
    elif m.expectancy >= -0.1 and m.profit_factor >= 0.95:
        role = "stabilizer"
    elif m.expectancy > 0 or m.net_pips > -100:
        role = "specialist"
    else:
        role = "diluter"
    return role, ROLE_MULTIPLIERS[role]


def select_agent(
    snapshot: ExecutionSnapshot,
    pair: str,
    rng: random.Random,
    *,
    primary_pair: str = "USD_CAD",
) -> Optional[AgentSelection]:
    """Weighted pick of the agent that leads the trade.

    Diluters are excluded; the primary pair prefers champions and
    stabilizers. Support agents can confirm but never set direction.
    """
    eligible = snapshot.eligible_agents
    if not eligible:
        return None

    classified = [(a, *classify_agent_role(a)) for a in eligible]
    classified = [c for c in classified if c[1] != "diluter"]
    if not classified:
        first = eligible[0]
        return AgentSelection(
            agent=first,
            role="stabilizer",
            role_multiplier=ROLE_MULTIPLIERS["stabilizer"],
            can_set_direction=not first.is_support,
        )

    pool = classified
    if pair == primary_pair:
        preferred = [c for c in classified if c[1] in ("champion", "stabilizer")]
        pool = preferred or classified

    scored = [
        (agent, role, mult, max(0.01, agent.metrics.expectancy * agent.metrics.profit_factor * agent.size_multiplier * mult))
        for agent, role, mult in pool
    ]
    total = sum(s[3] for s in scored)
    pick = rng.random() * total
    cumulative = 0.0
    chosen = scored[-1]
    for entry in scored:
        cumulative += entry[3]
        if pick <= cumulative:
            chosen = entry
            break

    agent, role, mult, score = chosen
    return AgentSelection(
        agent=agent,
        role=role,
        role_multiplier=mult,
        can_set_direction=not agent.is_support,
        score=score,
    )
