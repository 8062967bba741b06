"""Tests for rolling-window statistics and per-pair allocation.

Covers:
- neutral defaults for thin windows (never divides by zero)
- win rate / expectancy / profit factor over closed trades
- profit-factor sentinels (None in windows, 99/0 for bounded)
- decision distribution, entropy and rejection rate
- slippage drift detection
- JPY pip scaling
- pair allocation ban / restrict / promote tiers and primary-pair protection
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from schemas.trade_history import TradeRecord
from services.rolling_metrics_engine import (
    bounded_profit_factor,
    compute_pair_allocation,
    compute_pair_allocations,
    compute_window,
    compute_windows,
    detect_slippage_drift,
    display_pair,
    pairs_by_status,
    profit_factor_or_none,
    shannon_entropy,
)

T0 = datetime(2026, 10, 21, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _closed(pnl_pips: float, pair: str = "EUR_USD", direction: str = "long", **kwargs) -> TradeRecord:
    scale = 100.0 if "JPY" in pair else 10_000.0
    entry = 150.0 if "JPY" in pair else 1.1
    move = pnl_pips / scale
    exit_price = entry + move if direction == "long" else entry - move
    defaults = dict(
        pair=pair,
        direction=direction,
        status="closed",
        entry_price=entry,
        exit_price=exit_price,
        created_at=T0,
        closed_at=T0 + timedelta(minutes=12),
    )
    defaults.update(kwargs)
    return TradeRecord(**defaults)


def _rejected(pair: str = "EUR_USD") -> TradeRecord:
    return TradeRecord(pair=pair, direction="long", status="rejected", gate_result="rejected")


# ---------------------------------------------------------------------------
# Neutral defaults
# ---------------------------------------------------------------------------


def test_empty_history_yields_neutral_default():
    w = compute_window([], 20)
    assert w.is_neutral_default
    assert w.trade_count == 0
    assert w.win_rate == 0.5
    assert w.expectancy == 0.0
    assert w.profit_factor is None
    assert w.capture_ratio == 0.5
    assert w.avg_quality == 70.0
    assert w.decision_entropy == 0.0


def test_two_filled_trades_still_neutral():
    history = [_closed(50.0), _closed(-40.0), _rejected()]
    w = compute_window(history, 20)
    assert w.is_neutral_default
    assert w.trade_count == 2
    assert w.expectancy == 0.0
    assert w.decision_distribution == {"enter": 2, "skip": 0, "blocked": 1}


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def test_window_statistics_over_closed_trades():
    history = [_closed(10.0), _closed(-5.0), _closed(10.0), _closed(-5.0)]
    w = compute_window(history, 20)
    assert not w.is_neutral_default
    assert w.trade_count == 4
    assert w.closed_count == 4
    assert w.win_rate == pytest.approx(0.5)
    assert w.expectancy == pytest.approx(2.5)
    assert w.profit_factor == pytest.approx(2.0)
    assert w.total_pnl_pips == pytest.approx(10.0)


def test_short_trades_profit_when_price_falls():
    history = [_closed(8.0, direction="short")] * 3
    w = compute_window(history, 20)
    assert w.win_rate == 1.0
    assert w.expectancy == pytest.approx(8.0)


def test_loss_free_window_reports_no_profit_factor():
    w = compute_window([_closed(5.0), _closed(6.0), _closed(7.0)], 20)
    assert w.profit_factor is None


def test_drawdown_slope_per_closed_trade():
    # newest-first; chronological equity: +5, -25, -15
    w = compute_window([_closed(10.0), _closed(-30.0), _closed(5.0)], 20)
    assert w.drawdown_slope == pytest.approx(10.0)


def test_capture_ratio_blends_win_rate_and_quality():
    history = [_closed(10.0, execution_quality_score=80.0)] * 3 + [_closed(-5.0, execution_quality_score=80.0)]
    w = compute_window(history, 20)
    assert w.avg_quality == pytest.approx(80.0)
    assert w.capture_ratio == pytest.approx(min(0.95, 0.75 * 0.8 + 0.8 * 0.2))


def test_capture_ratio_floor_without_wins():
    w = compute_window([_closed(-5.0)] * 3, 20)
    assert w.win_rate == 0.0
    assert w.capture_ratio == pytest.approx(0.3)


def test_friction_adjusted_pnl_subtracts_slippage():
    history = [_closed(10.0, slippage_pips=0.5)] * 3
    w = compute_window(history, 20)
    assert w.friction_adj_pnl == pytest.approx(30.0 - 1.5)
    assert w.avg_slippage == pytest.approx(0.5)


def test_rejection_rate_and_entropy():
    history = [_closed(5.0), _closed(-2.0), _closed(3.0), _rejected()]
    w = compute_window(history, 20)
    assert w.rejection_rate == pytest.approx(0.25)
    assert w.decision_distribution == {"enter": 3, "skip": 0, "blocked": 1}
    expected = -(0.75 * math.log2(0.75) + 0.25 * math.log2(0.25))
    assert w.decision_entropy == pytest.approx(expected)


def test_windows_slice_newest_records():
    history = [_closed(1.0)] * 30
    w20, w50, w200 = compute_windows(history)
    assert (w20.window_size, w50.window_size, w200.window_size) == (20, 50, 200)
    assert w20.trade_count == 20
    assert w50.trade_count == 30
    assert w200.trade_count == 30


def test_jpy_pairs_use_two_decimal_pips():
    record = TradeRecord(
        pair="USD_JPY", direction="long", status="closed", entry_price=150.00, exit_price=150.10
    )
    assert record.pnl_pips == pytest.approx(10.0)


def test_open_trade_has_no_pnl():
    record = TradeRecord(pair="EUR_USD", direction="long", status="filled", entry_price=1.1)
    assert record.is_filled
    assert not record.is_closed
    assert record.pnl_pips is None


# ---------------------------------------------------------------------------
# Division guards and entropy helpers
# ---------------------------------------------------------------------------


def test_bounded_profit_factor_sentinels():
    assert bounded_profit_factor(120.0, 0.0) == 99.0
    assert bounded_profit_factor(0.0, 0.0) == 0.0
    assert bounded_profit_factor(30.0, 15.0) == pytest.approx(2.0)


def test_profit_factor_or_none_never_infinite():
    assert profit_factor_or_none(10.0, 0.0) is None
    assert profit_factor_or_none(0.0, 0.0) is None
    assert math.isfinite(profit_factor_or_none(10.0, 1e-6))


def test_shannon_entropy_uniform_and_degenerate():
    assert shannon_entropy([4, 4, 4]) == pytest.approx(math.log2(3))
    assert shannon_entropy([7, 0, 0]) == 0.0
    assert shannon_entropy([]) == 0.0


# ---------------------------------------------------------------------------
# Slippage drift
# ---------------------------------------------------------------------------


def test_slippage_drift_detected_when_recent_samples_widen():
    assert detect_slippage_drift([2.0, 2.0, 2.0, 2.0, 2.0, 1.0, 1.0, 1.0])


def test_slippage_drift_needs_eight_samples():
    assert not detect_slippage_drift([5.0, 5.0, 5.0, 5.0, 5.0, 1.0, 1.0])


def test_slippage_drift_needs_positive_baseline():
    assert not detect_slippage_drift([2.0] * 5 + [0.0] * 3)


def test_window_flags_slippage_drift():
    slips = [2.0, 2.0, 2.0, 2.0, 2.0, 1.0, 1.0, 1.0]
    history = [_closed(3.0, slippage_pips=s) for s in slips]
    assert compute_window(history, 20).slippage_drift


# ---------------------------------------------------------------------------
# Pair allocation
# ---------------------------------------------------------------------------


def test_display_pair():
    assert display_pair("EUR_USD") == "EUR/USD"
    assert display_pair("XAU") == "XAU"


def test_pair_with_too_few_trades_gets_neutral_allocation():
    alloc = compute_pair_allocation([_closed(10.0)], "EUR_USD")
    assert alloc.status == "normal"
    assert alloc.capital_multiplier == 1.0
    assert alloc.win_rate == 0.5


def test_losing_pair_is_banned():
    history = [_closed(-5.0, pair="GBP_AUD")] * 5
    alloc = compute_pair_allocation(history, "GBP_AUD")
    assert alloc.status == "banned"
    assert alloc.capital_multiplier == 0.0


def test_primary_pair_is_never_banned():
    history = [_closed(-5.0, pair="USD_CAD")] * 5
    alloc = compute_pair_allocation(history, "USD_CAD", primary_pair="USD_CAD")
    assert alloc.status == "normal"
    assert alloc.capital_multiplier == pytest.approx(0.7)


def test_weak_pair_is_restricted():
    history = [_closed(-2.0, pair="NZD_USD"), _closed(1.0, pair="NZD_USD"), _closed(-1.0, pair="NZD_USD")]
    alloc = compute_pair_allocation(history, "NZD_USD")
    assert alloc.status == "restricted"
    assert alloc.capital_multiplier == pytest.approx(0.5)


def test_consistent_winner_is_promoted_to_star():
    history = [_closed(p, pair="USD_CAD") for p in (10.0, 12.0, 8.0, 11.0, 9.0)]
    alloc = compute_pair_allocation(history, "USD_CAD")
    assert alloc.status == "promoted"
    assert alloc.capital_multiplier == pytest.approx(1.5)
    assert alloc.net_pnl_pips == pytest.approx(50.0)


def test_allocations_cover_every_pair_and_group_by_status():
    history = [_closed(-5.0, pair="GBP_AUD")] * 5
    allocations = compute_pair_allocations(history)
    assert len(allocations) == 15
    grouped = pairs_by_status(allocations)
    assert grouped["banned"] == ["GBP_AUD"]
    assert "EUR_USD" in grouped["normal"]
