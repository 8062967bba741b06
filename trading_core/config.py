"""Versioned heuristic tables consumed by the governance engines.

Every lookup the engines use lives here as a named, frozen structure so a
table can be swapped in tests without touching the algorithm that reads it.
Bump ``GOVERNANCE_TABLES_VERSION`` whenever a value changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

GOVERNANCE_TABLES_VERSION = "2.3.0"


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


# ---------------------------------------------------------------------------
# Multiplier composer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AlignmentBands:
    """(floor, span) per confirmation depth; multiplier = floor + score/100 * span."""

    full: Tuple[float, float] = (1.18, 0.17)
    htf_mtf: Tuple[float, float] = (0.98, 0.12)
    htf_only: Tuple[float, float] = (0.82, 0.08)
    misaligned: Tuple[float, float] = (0.55, 0.10)


@dataclass(frozen=True)
class PairPerformanceBands:
    major_bonus: float = 1.08
    minor_penalty: float = 0.92
    favored_threshold: float = 68.0
    neutral_threshold: float = 50.0
    favored: Tuple[float, float] = (1.05, 0.25)
    neutral: Tuple[float, float] = (0.90, 0.18)
    weak: Tuple[float, float] = (0.65, 0.20)


@dataclass(frozen=True)
class MicrostructureBands:
    friction_cap: float = 6.0
    spread_weight: float = 0.55
    friction_weight: float = 0.45
    floor: float = 0.60
    span: float = 0.55
    severe_shock_threshold: float = 55.0
    severe_shock_penalty: float = 0.78
    mild_shock_threshold: float = 35.0
    mild_shock_penalty: float = 0.90


@dataclass(frozen=True)
class MultiplierTables:
    alignment: AlignmentBands = field(default_factory=AlignmentBands)
    regime_base: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"compression": 0.55, "ignition": 1.35, "expansion": 1.25, "exhaustion": 0.65}
        )
    )
    regime_confidence_floor: float = 0.75
    pair: PairPerformanceBands = field(default_factory=PairPerformanceBands)
    microstructure: MicrostructureBands = field(default_factory=MicrostructureBands)
    exit_base: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"compression": 0.72, "ignition": 1.20, "expansion": 1.15, "exhaustion": 0.78}
        )
    )
    exit_spread_floor: float = 0.88
    exit_spread_span: float = 0.22
    session: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"london-open": 1.18, "ny-overlap": 1.12, "asian": 0.78, "late-ny": 0.68}
        )
    )
    sequencing: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"profit-momentum": 1.12, "loss-cluster": 0.70, "mixed": 0.85, "neutral": 1.0}
        )
    )


# Every individual multiplier is clamped to this range before composition.
MULTIPLIER_BOUNDS: Tuple[float, float] = (0.25, 2.0)


# ---------------------------------------------------------------------------
# Gate evaluator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GateThresholds:
    min_friction_ratio: float = 3.0
    min_alignment_without_htf: float = 35.0
    max_edge_decay_rate: float = 20.0
    min_spread_stability: float = 30.0
    min_session_aggressiveness: float = 30.0
    min_alignment_in_loss_cluster: float = 55.0
    max_shock_outside_ignition: float = 70.0


# ---------------------------------------------------------------------------
# Decision combiner
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecisionTables:
    throttle_composite: float = 0.60
    reject_gate_count: int = 2
    win_probability_bounds: Tuple[float, float] = (0.30, 0.88)
    win_probability_floor: float = 0.70
    win_probability_slope: float = 0.45
    duration_minutes: Mapping[str, Tuple[int, int]] = field(
        default_factory=lambda: _frozen(
            {
                "compression": (8, 45),
                "ignition": (1, 15),
                "expansion": (2, 25),
                "exhaustion": (1, 12),
            }
        )
    )
    phase_labels: Mapping[str, str] = field(
        default_factory=lambda: _frozen(
            {
                "compression": "Compression",
                "ignition": "Ignition",
                "expansion": "Expansion",
                "exhaustion": "Exhaustion",
            }
        )
    )
    session_labels: Mapping[str, str] = field(
        default_factory=lambda: _frozen(
            {"asian": "Asian", "london-open": "London", "ny-overlap": "NY Overlap", "late-ny": "Late NY"}
        )
    )


# ---------------------------------------------------------------------------
# Governance state machine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateThresholds:
    halt_w20_min_trades: int = 5
    halt_w20_max_win_rate: float = 0.20
    halt_w20_max_expectancy: float = -5.0
    halt_w50_min_trades: int = 20
    halt_w50_max_friction_adj_pnl: float = -100.0
    throttle_w50_min_trades: int = 20
    throttle_w50_max_win_rate: float = 0.35
    throttle_w50_max_expectancy: float = -1.5
    defensive_w50_min_trades: int = 20
    defensive_w50_max_expectancy: float = 0.0
    defensive_w200_min_trades: int = 50
    defensive_w200_min_capture: float = 0.30
    # Execution-quality readings that surface as warnings during the learning phase.
    critical_rejection_rate: float = 0.60
    critical_quality: float = 35.0
    drift_quality: float = 50.0


@dataclass(frozen=True)
class StateConfigValues:
    density_multiplier: float
    sizing_multiplier: float
    friction_k_override: float
    pair_restriction: str
    session_aggressiveness: Mapping[str, float]
    recovery_conditions: Tuple[str, ...]


STATE_CONFIG_TABLE: Mapping[str, StateConfigValues] = _frozen(
    {
        "NORMAL": StateConfigValues(
            density_multiplier=1.0,
            sizing_multiplier=1.0,
            friction_k_override=3.0,
            pair_restriction="none",
            session_aggressiveness=_frozen(
                {"asian": 0.85, "london-open": 1.0, "ny-overlap": 1.0, "late-ny": 0.65, "rollover": 0.5}
            ),
            recovery_conditions=(),
        ),
        "DEFENSIVE": StateConfigValues(
            density_multiplier=0.65,
            sizing_multiplier=0.75,
            friction_k_override=3.8,
            pair_restriction="majors-only",
            session_aggressiveness=_frozen(
                {"asian": 0.4, "london-open": 0.85, "ny-overlap": 0.8, "late-ny": 0.3, "rollover": 0.0}
            ),
            recovery_conditions=(
                "expectancy > 0.5 over 20 trades",
                "win rate > 55%",
                "capture ratio > 0.40",
            ),
        ),
        "THROTTLED": StateConfigValues(
            density_multiplier=0.30,
            sizing_multiplier=0.50,
            friction_k_override=4.5,
            pair_restriction="top-performers",
            session_aggressiveness=_frozen(
                {"asian": 0.0, "london-open": 0.6, "ny-overlap": 0.5, "late-ny": 0.0, "rollover": 0.0}
            ),
            recovery_conditions=(
                "expectancy > 0.8 over 30 trades",
                "win rate > 60%",
                "no slippage drift",
            ),
        ),
        "HALT": StateConfigValues(
            density_multiplier=0.15,
            sizing_multiplier=0.35,
            friction_k_override=5.5,
            pair_restriction="top-performers",
            session_aggressiveness=_frozen(
                {"asian": 0.0, "london-open": 0.3, "ny-overlap": 0.25, "late-ny": 0.0, "rollover": 0.0}
            ),
            recovery_conditions=("trading continues at minimum viable parameters",),
        ),
    }
)


# ---------------------------------------------------------------------------
# Pairs, sessions and friction
# ---------------------------------------------------------------------------

MAJOR_PAIRS: frozenset[str] = frozenset(
    {"EUR_USD", "GBP_USD", "USD_JPY", "AUD_USD", "USD_CAD", "EUR_JPY", "GBP_JPY"}
)

ALL_PAIRS: Tuple[str, ...] = (
    "EUR_USD", "GBP_USD", "USD_JPY", "AUD_USD", "USD_CAD",
    "EUR_JPY", "GBP_JPY", "EUR_GBP", "NZD_USD", "AUD_JPY",
    "USD_CHF", "EUR_CHF", "EUR_AUD", "GBP_AUD", "AUD_NZD",
)

# Pairs that stay at full allocation under a majors-only restriction.
SCALP_PAIRS: frozenset[str] = frozenset(
    {"EUR_USD", "GBP_USD", "USD_JPY", "AUD_USD", "USD_CAD", "EUR_JPY", "GBP_JPY", "EUR_GBP"}
)

SECONDARY_PAIRS: Tuple[str, ...] = ("AUD_USD", "EUR_USD", "EUR_GBP")

SHORT_ELIGIBLE_PAIRS: frozenset[str] = frozenset({"USD_JPY", "GBP_JPY", "EUR_USD", "GBP_USD"})
SHORT_ELIGIBLE_SESSIONS: frozenset[str] = frozenset({"london-open", "ny-overlap"})

PAIR_ATR_MULT: Mapping[str, float] = _frozen(
    {
        "EUR_USD": 1.0, "GBP_USD": 1.35, "USD_JPY": 1.1, "AUD_USD": 0.95,
        "USD_CAD": 0.9, "EUR_JPY": 1.4, "GBP_JPY": 1.8, "EUR_GBP": 0.7,
        "NZD_USD": 0.85, "AUD_JPY": 1.2, "USD_CHF": 0.8, "EUR_CHF": 0.65,
        "EUR_AUD": 1.3, "GBP_AUD": 1.7, "AUD_NZD": 0.75,
    }
)

PAIR_BASE_SPREADS: Mapping[str, float] = _frozen(
    {
        "EUR_USD": 0.6, "GBP_USD": 0.9, "USD_JPY": 0.7, "AUD_USD": 0.8,
        "USD_CAD": 1.0, "EUR_JPY": 1.1, "GBP_JPY": 1.5, "EUR_GBP": 0.8,
        "NZD_USD": 1.2, "AUD_JPY": 1.3, "USD_CHF": 1.0, "EUR_CHF": 1.2,
        "EUR_AUD": 1.6, "GBP_AUD": 2.0, "AUD_NZD": 1.8,
    }
)

DEFAULT_ATR_MULT = 1.0
DEFAULT_BASE_SPREAD = 1.5

# Session aggressiveness fed into GovernanceContext (0-100 scale).
SESSION_AGGRESSIVENESS: Mapping[str, float] = _frozen(
    {"asian": 35.0, "london-open": 88.0, "ny-overlap": 78.0, "late-ny": 22.0, "rollover": 10.0}
)


@dataclass(frozen=True)
class SessionBudgetValues:
    label: str
    max_density: int
    friction_multiplier: float
    volatility_tolerance: float
    capital_budget_pct: float


SESSION_BUDGET_TABLE: Mapping[str, SessionBudgetValues] = _frozen(
    {
        "london-open": SessionBudgetValues("London Open", 6, 0.8, 1.3, 1.0),
        "ny-overlap": SessionBudgetValues("NY Overlap", 5, 0.85, 1.2, 0.95),
        "asian": SessionBudgetValues("Asian Session", 3, 1.3, 0.85, 0.6),
        "late-ny": SessionBudgetValues("Late NY", 2, 1.2, 0.75, 0.4),
        "rollover": SessionBudgetValues("Rollover", 1, 1.8, 0.5, 0.15),
    }
)


@dataclass(frozen=True)
class FrictionModel:
    spread_volatility_ratio: float = 0.25
    slippage_pips: float = 0.15
    latency_pips: float = 0.05
    tight_spread: float = 0.9
    normal_spread: float = 1.3
    move_tight: float = 12.0
    move_normal: float = 9.0
    move_wide: float = 7.0
    session_move_factor: Mapping[str, float] = field(
        default_factory=lambda: _frozen({"london-open": 1.3, "ny-overlap": 1.15})
    )
    default_move_factor: float = 0.85
    widened_spread_ratio: float = 1.8


# ---------------------------------------------------------------------------
# Pair allocation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PairAllocationThresholds:
    min_closed_trades: int = 2
    ban_min_trades: int = 5
    ban_max_expectancy: float = -2.0
    ban_max_win_rate: float = 0.30
    restrict_min_trades: int = 3
    restrict_max_expectancy: float = -0.5
    restrict_max_win_rate: float = 0.40
    restrict_min_quality: float = 40.0
    star_sharpe: float = 1.5
    star_win_rate: float = 0.65
    star_multiplier: float = 1.5
    promote_sharpe: float = 1.0
    promote_win_rate: float = 0.55
    promote_multiplier: float = 1.25
    restricted_multiplier: float = 0.5
    negative_multiplier: float = 0.7
    degraded_ban_multiplier: float = 0.3
    majors_only_cap: float = 0.4
    top_performers_scale: float = 0.7
    top_performers_floor: float = 0.2
    secondary_off_session_cap: float = 0.4
    secondary_min_trades: int = 5
    secondary_poor_expectancy: float = -1.0
    secondary_poor_multiplier: float = 0.25
    secondary_negative_cap: float = 0.5


# ---------------------------------------------------------------------------
# Coalition resolver
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TierThresholds:
    a_min_pf: float = 1.10
    a_min_session_coverage: int = 3
    oos_min_pf: float = 1.05
    b_min_net_pips: float = -1000.0
    b_min_pf: float = 0.90
    c_min_net_pips: float = -1500.0
    short_destructive_net: float = -500.0
    short_destructive_count: int = 50
    rescue_min_long_pf: float = 1.2
    promotable_min_long_pf: float = 1.3
    promotable_min_long_expectancy: float = 0.4
    b_promotable_min_pf: float = 1.1
    bench_min_expectancy: float = -0.3
    bench_min_pf: float = 0.85
    c_bench_min_expectancy: float = -1.0
    c_bench_min_pf: float = 0.7
    rescued_size: float = 0.35


@dataclass(frozen=True)
class CoalitionPolicy:
    duo_min_survivorship: float = 40.0
    duo_min_pf: float = 1.05
    improving_pf: float = 1.3
    improving_win_rate: float = 0.55
    flat_pf: float = 1.0
    flat_win_rate: float = 0.45
    bench_min_pf: float = 0.7
    bench_small_sample: int = 5
    bench_size: float = 0.35
    shadow_min_expectancy: float = -2.0
    shadow_small_sample: int = 3
    shadow_size: float = 0.20
    support_size: float = 0.15
    support_agent_ids: Tuple[str, ...] = ("support-mtf-confirmer", "support-regime-confirmer", "support-session-confirmer")


# Role multipliers for agent selection.
ROLE_MULTIPLIERS: Mapping[str, float] = _frozen(
    {"champion": 1.30, "stabilizer": 0.95, "specialist": 0.75, "diluter": 0.0}
)


# ---------------------------------------------------------------------------
# Position sizing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SizingTables:
    base_risk_pct: float = 0.005
    reference_confidence: float = 80.0
    stop_pips: float = 8.0
    pip_value_per_unit: float = 0.0001
    jpy_pip_value_per_unit: float = 0.0067
    fallback_units: int = 1000
    max_base_units: int = 10_000_000
    governance_bounds: Tuple[float, float] = (0.0, 1.0)
    pair_bounds: Tuple[float, float] = (0.0, 1.5)
    session_bounds: Tuple[float, float] = (0.0, 1.0)
    agent_bounds: Tuple[float, float] = (0.0, 1.5)
    regime_bounds: Tuple[float, float] = (0.0, 1.5)
    deployment_bounds: Tuple[float, float] = (0.0, 1.35)


@dataclass(frozen=True)
class RegimeKellyTables:
    """Fractional Kelly settings for the regime-weighted sizing multiplier."""

    fraction: float = 0.5
    min_trades: int = 20
    reference_kelly: float = 0.10
    bounds: Tuple[float, float] = (0.25, 1.5)
    regime_weights: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"ignition": 1.10, "expansion": 1.0, "exhaustion": 0.80, "compression": 0.70}
        )
    )


@dataclass(frozen=True)
class DiscoveryTables:
    edge_boost: float = 1.35
    baseline: float = 0.55
    reduced: float = 0.20
    spread_block_threshold: float = 1.0
    ignition_min_composite: float = 0.75
    secondary_cap_range: Tuple[float, float] = (0.6, 0.8)
    aud_crosses: frozenset[str] = frozenset(
        {"AUD_JPY", "AUD_USD", "AUD_NZD", "AUD_CAD", "AUD_CHF", "EUR_AUD", "GBP_AUD"}
    )
    volatile_pairs: frozenset[str] = frozenset({"GBP_USD", "GBP_JPY"})
    reduced_agents: frozenset[str] = frozenset({"sentiment-reactor", "range-navigator"})


DEFAULT_MULTIPLIER_TABLES = MultiplierTables()
DEFAULT_GATE_THRESHOLDS = GateThresholds()
DEFAULT_DECISION_TABLES = DecisionTables()
DEFAULT_STATE_THRESHOLDS = StateThresholds()
DEFAULT_FRICTION_MODEL = FrictionModel()
DEFAULT_PAIR_THRESHOLDS = PairAllocationThresholds()
DEFAULT_TIER_THRESHOLDS = TierThresholds()
DEFAULT_COALITION_POLICY = CoalitionPolicy()
DEFAULT_SIZING_TABLES = SizingTables()
DEFAULT_REGIME_KELLY = RegimeKellyTables()
DEFAULT_DISCOVERY_TABLES = DiscoveryTables()
