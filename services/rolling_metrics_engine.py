"""Rolling-window statistics over the trade history.

Reduces a newest-first list of TradeRecord rows into RollingWindowMetrics for
the 20/50/200 windows and into per-pair capital allocations.

All functions are pure and deterministic; windows are recomputed from the
full history on every call. Thin windows (< 3 filled trades) yield a neutral
default instead of noisy statistics.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemas.trade_history import (
    DECISION_BUCKETS,
    PairAllocation,
    RollingWindowMetrics,
    TradeDecision,
    TradeRecord,
    pip_scale,
)
from trading_core.config import ALL_PAIRS, DEFAULT_PAIR_THRESHOLDS, PairAllocationThresholds

WINDOW_SIZES: Tuple[int, int, int] = (20, 50, 200)
MIN_FILLED_TRADES = 3
NEUTRAL_QUALITY = 70.0

PROFIT_FACTOR_CAP = 99.0
GROSS_LOSS_EPSILON = 1e-9

DRIFT_MIN_SAMPLES = 8
DRIFT_RECENT_SAMPLES = 5
DRIFT_RATIO = 1.4


# ---------------------------------------------------------------------------
# Primitive helpers
# ---------------------------------------------------------------------------


def pips_between(pair: str, direction: str, entry_price: float, exit_price: float) -> float:
    """Signed pip P&L of a round trip (positive = profit)."""
    delta = exit_price - entry_price
    if direction == "short":
        delta = -delta
    return delta * pip_scale(pair)


def profit_factor_or_none(gross_profit: float, gross_loss: float) -> Optional[float]:
    """Gross profit / gross loss, or ``None`` when there is no loss to divide by."""
    if abs(gross_loss) < GROSS_LOSS_EPSILON:
        return None
    return gross_profit / abs(gross_loss)


def bounded_profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Profit factor with explicit sentinels: 99 for loss-free profit, 0 for 0/0."""
    pf = profit_factor_or_none(gross_profit, gross_loss)
    if pf is not None:
        return pf
    return PROFIT_FACTOR_CAP if gross_profit > 0 else 0.0


def shannon_entropy(counts: Iterable[int]) -> float:
    """Base-2 Shannon entropy of a count distribution; empty buckets are skipped."""
    values = [c for c in counts if c > 0]
    total = sum(values)
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in values:
        p = count / total
        entropy -= p * math.log2(p)
    return entropy


def detect_slippage_drift(samples: Sequence[float]) -> bool:
    """True when the 5 newest slippage samples average > 40% above the rest.

    ``samples`` is newest-first. Needs at least 8 samples and a positive
    baseline mean.
    """
    if len(samples) < DRIFT_MIN_SAMPLES:
        return False
    recent = samples[:DRIFT_RECENT_SAMPLES]
    older = samples[DRIFT_RECENT_SAMPLES:]
    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    return older_avg > 0 and recent_avg > older_avg * DRIFT_RATIO


def _mean(values: Sequence[float], default: float) -> float:
    return sum(values) / len(values) if values else default


def _max_drawdown(pnls_chronological: Sequence[float]) -> float:
    peak = 0.0
    cumulative = 0.0
    worst = 0.0
    for pnl in pnls_chronological:
        cumulative += pnl
        peak = max(peak, cumulative)
        worst = max(worst, peak - cumulative)
    return worst


def _decision_counts(records: Sequence[TradeRecord]) -> Dict[TradeDecision, int]:
    counts: Dict[TradeDecision, int] = {bucket: 0 for bucket in DECISION_BUCKETS}
    for record in records:
        counts[record.decision] += 1
    return counts


# ---------------------------------------------------------------------------
# Window computation
# ---------------------------------------------------------------------------


def compute_window(history: Sequence[TradeRecord], window_size: int) -> RollingWindowMetrics:
    """Statistics over the newest ``window_size`` records of ``history``."""
    window = list(history[:window_size])
    filled = [r for r in window if r.is_filled]
    closed = [r for r in window if r.is_closed]
    rejected = [r for r in window if r.status == "rejected"]

    distribution = _decision_counts(window)
    entropy = shannon_entropy(distribution.values())

    if len(filled) < MIN_FILLED_TRADES:
        return RollingWindowMetrics(
            window_size=window_size,
            trade_count=len(filled),
            closed_count=len(closed),
            win_rate=0.5,
            expectancy=0.0,
            profit_factor=None,
            capture_ratio=0.5,
            avg_quality=NEUTRAL_QUALITY,
            decision_entropy=entropy,
            decision_distribution=distribution,
            is_neutral_default=True,
        )

    pnls = [r.pnl_pips for r in closed]
    wins = sum(1 for p in pnls if p > 0)
    total_pnl = sum(pnls)
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = -sum(p for p in pnls if p < 0)

    win_rate = wins / len(closed) if closed else 0.5
    expectancy = total_pnl / len(closed) if closed else 0.0

    qualities = [r.execution_quality_score for r in filled if r.execution_quality_score is not None]
    slippages = [r.slippage_pips for r in filled if r.slippage_pips is not None]
    avg_quality = _mean(qualities, NEUTRAL_QUALITY)
    avg_slippage = _mean(slippages, 0.0)

    meaningful = len(filled) + len(rejected)
    rejection_rate = len(rejected) / meaningful if meaningful else 0.0

    if win_rate > 0:
        capture_ratio = min(0.95, win_rate * 0.8 + (avg_quality / 100.0) * 0.2)
    else:
        capture_ratio = 0.3
    capture_ratio = max(0.0, capture_ratio)

    # history is newest-first; drawdown must walk the equity curve forwards.
    drawdown = _max_drawdown(list(reversed(pnls)))
    drawdown_slope = drawdown / len(closed) if closed else 0.0

    return RollingWindowMetrics(
        window_size=window_size,
        trade_count=len(filled),
        closed_count=len(closed),
        win_rate=win_rate,
        expectancy=expectancy,
        profit_factor=profit_factor_or_none(gross_profit, gross_loss),
        total_pnl_pips=total_pnl,
        drawdown_slope=drawdown_slope,
        friction_adj_pnl=total_pnl - sum(slippages),
        rejection_rate=rejection_rate,
        decision_entropy=entropy,
        decision_distribution=distribution,
        capture_ratio=capture_ratio,
        avg_quality=avg_quality,
        avg_slippage=avg_slippage,
        slippage_drift=detect_slippage_drift(slippages),
    )


def compute_windows(
    history: Sequence[TradeRecord],
    sizes: Tuple[int, int, int] = WINDOW_SIZES,
) -> Tuple[RollingWindowMetrics, RollingWindowMetrics, RollingWindowMetrics]:
    """Return the (w20, w50, w200) windows over the same history."""
    short, medium, long_ = sizes
    return (
        compute_window(history, short),
        compute_window(history, medium),
        compute_window(history, long_),
    )


# ---------------------------------------------------------------------------
# Pair allocation
# ---------------------------------------------------------------------------


def display_pair(pair: str) -> str:
    return f"{pair[:3]}/{pair[4:]}" if len(pair) == 7 else pair


def compute_pair_allocation(
    history: Sequence[TradeRecord],
    pair: str,
    *,
    primary_pair: str = "USD_CAD",
    thresholds: PairAllocationThresholds = DEFAULT_PAIR_THRESHOLDS,
) -> PairAllocation:
    """Rolling performance for one pair and the capital multiplier it earns.

    The primary pair is never banned or restricted.
    """
    rows = [r for r in history if r.pair == pair]
    filled = [r for r in rows if r.is_filled]
    closed = [r for r in rows if r.is_closed]

    if len(closed) < thresholds.min_closed_trades:
        return PairAllocation(pair=pair, display_pair=display_pair(pair), trade_count=len(filled))

    pnls = [r.pnl_pips for r in closed]
    wins = sum(1 for p in pnls if p > 0)
    win_rate = wins / len(closed)
    net = sum(pnls)
    expectancy = net / len(closed)
    variance = sum((p - expectancy) ** 2 for p in pnls) / len(pnls)
    std_dev = math.sqrt(variance) or 1.0
    sharpe = expectancy / std_dev

    qualities = [r.execution_quality_score for r in filled if r.execution_quality_score is not None]
    avg_quality = _mean(qualities, NEUTRAL_QUALITY)

    protected = pair == primary_pair
    banned = (
        not protected
        and len(closed) >= thresholds.ban_min_trades
        and (expectancy < thresholds.ban_max_expectancy or win_rate < thresholds.ban_max_win_rate)
    )
    restricted = (
        not protected
        and len(closed) >= thresholds.restrict_min_trades
        and (
            expectancy < thresholds.restrict_max_expectancy
            or win_rate < thresholds.restrict_max_win_rate
            or avg_quality < thresholds.restrict_min_quality
        )
    )

    if banned:
        status, multiplier = "banned", 0.0
    elif restricted:
        status, multiplier = "restricted", thresholds.restricted_multiplier
    elif sharpe > thresholds.star_sharpe and win_rate > thresholds.star_win_rate:
        status, multiplier = "promoted", thresholds.star_multiplier
    elif sharpe > thresholds.promote_sharpe and win_rate > thresholds.promote_win_rate:
        status, multiplier = "promoted", thresholds.promote_multiplier
    elif expectancy < 0:
        status, multiplier = "normal", thresholds.negative_multiplier
    else:
        status, multiplier = "normal", 1.0

    return PairAllocation(
        pair=pair,
        display_pair=display_pair(pair),
        trade_count=len(filled),
        closed_count=len(closed),
        win_rate=win_rate,
        expectancy=expectancy,
        sharpe=sharpe,
        avg_quality=avg_quality,
        net_pnl_pips=net,
        status=status,
        capital_multiplier=multiplier,
    )


def compute_pair_allocations(
    history: Sequence[TradeRecord],
    pairs: Optional[Iterable[str]] = None,
    *,
    primary_pair: str = "USD_CAD",
    thresholds: PairAllocationThresholds = DEFAULT_PAIR_THRESHOLDS,
) -> Dict[str, PairAllocation]:
    return {
        pair: compute_pair_allocation(
            history, pair, primary_pair=primary_pair, thresholds=thresholds
        )
        for pair in (pairs if pairs is not None else ALL_PAIRS)
    }


def pairs_by_status(allocations: Dict[str, PairAllocation]) -> Dict[str, List[str]]:
    """Group pair names by allocation status for reporting."""
    grouped: Dict[str, List[str]] = {"promoted": [], "normal": [], "restricted": [], "banned": []}
    for allocation in allocations.values():
        grouped[allocation.status].append(allocation.pair)
    return grouped
