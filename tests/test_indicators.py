import math
import random

import pytest

from src.analysis.indicators import (
    IndicatorConfig,
    build_ema_series,
    calculate_indicator_suite,
    calculate_macd,
    calculate_rsi,
    calculate_vwma,
    compute_timeframe_indicators,
    sort_candles,
)
from src.exchange.models import Candle
from tests.conftest import make_candles


def test_vwma_weights_closes_by_volume():
    candles = make_candles([10.0] * 10 + [20.0] * 10, volumes=[1.0] * 10 + [3.0] * 10)
    # (10*10 + 20*30) / 40
    assert calculate_vwma(candles) == pytest.approx(17.5)


def test_vwma_needs_full_window():
    assert calculate_vwma(make_candles([100.0] * 19)) is None


def test_vwma_zero_volume_is_absent():
    assert calculate_vwma(make_candles([100.0] * 20, volumes=[0.0] * 20)) is None


def test_vwma_uses_latest_window_only():
    candles = make_candles([1_000.0] * 5 + [50.0] * 20)
    assert calculate_vwma(candles) == pytest.approx(50.0)


def test_rsi_all_gains_is_100():
    assert calculate_rsi(make_candles([float(i) for i in range(1, 16)])) == 100.0


def test_rsi_all_losses_is_0():
    assert calculate_rsi(make_candles([float(i) for i in range(15, 0, -1)])) == 0.0


def test_rsi_flat_series_is_100():
    assert calculate_rsi(make_candles([42.0] * 15)) == 100.0


def test_rsi_balanced_moves_is_50():
    closes = [100.0]
    for i in range(14):
        closes.append(closes[-1] + (1.0 if i % 2 == 0 else -1.0))
    assert calculate_rsi(make_candles(closes)) == pytest.approx(50.0)


def test_rsi_needs_period_plus_one_closes():
    assert calculate_rsi(make_candles([float(i) for i in range(14)])) is None


def test_ema_series_seeded_with_simple_average():
    series = build_ema_series([1.0, 2.0, 3.0, 4.0], 3)
    assert series[:2] == [None, None]
    assert series[2] == pytest.approx(2.0)
    assert series[3] == pytest.approx(3.0)


def test_ema_series_carries_forward_over_gaps():
    series = build_ema_series([1.0, 2.0, 3.0, float("nan"), 5.0], 3)
    assert series[3] == series[2]
    assert series[4] == pytest.approx(3.5)


def test_ema_series_rejects_non_finite_seed():
    assert build_ema_series([1.0, float("nan"), 3.0, 4.0], 3) == []
    assert build_ema_series([1.0, 2.0], 3) == []


def test_macd_needs_slow_plus_signal_history():
    assert calculate_macd(make_candles([100.0] * 34)) is None
    assert calculate_macd(make_candles([100.0] * 35)) is not None


def test_macd_flat_series_is_zero():
    result = calculate_macd(make_candles([100.0] * 60))
    assert result.line == 0.0
    assert result.signal == 0.0
    assert result.histogram == 0.0


def test_macd_rising_series_is_positive():
    result = calculate_macd(make_candles([100.0 + i for i in range(60)]))
    assert result.line > 0
    assert result.histogram == pytest.approx(result.line - result.signal)


def test_suite_is_none_for_empty_input():
    assert calculate_indicator_suite([]) is None


def test_suite_reports_missing_indicators_as_none():
    snapshot = calculate_indicator_suite(make_candles([100.0 + i for i in range(20)]))
    assert snapshot.vwma20 is not None
    assert snapshot.rsi14 == 100.0
    assert snapshot.macd_line is None
    assert snapshot.macd_signal is None
    assert snapshot.macd_histogram is None


def test_suite_is_none_when_nothing_computable():
    assert calculate_indicator_suite(make_candles([100.0] * 5)) is None


def test_suite_ignores_input_order():
    candles = make_candles([100.0 + math.sin(i) * 5 for i in range(60)], volumes=[1.0 + i for i in range(60)])
    shuffled = list(candles)
    random.Random(7).shuffle(shuffled)
    assert calculate_indicator_suite(shuffled) == calculate_indicator_suite(candles)


def test_duplicate_timestamps_keep_last_candle():
    first = Candle(start_time=1_000, open=1, high=1, low=1, close=1.0, volume=1)
    replacement = Candle(start_time=1_000, open=2, high=2, low=2, close=2.0, volume=1)
    later = Candle(start_time=2_000, open=3, high=3, low=3, close=3.0, volume=1)
    ordered = sort_candles([later, first, replacement])
    assert [c.close for c in ordered] == [2.0, 3.0]


def test_custom_config_lengths():
    config = IndicatorConfig(vwma_length=3, rsi_period=2, macd_fast=2, macd_slow=3, macd_signal=2)
    snapshot = calculate_indicator_suite(make_candles([1.0, 2.0, 3.0, 4.0, 5.0]), config)
    assert snapshot.vwma20 == pytest.approx(4.0)
    assert snapshot.rsi14 == 100.0
    assert snapshot.macd_line is not None


def test_timeframe_indicators_keyed_by_label():
    result = compute_timeframe_indicators({
        "1m": make_candles([100.0] * 60),
        "5m": [],
    })
    assert set(result) == {"1m", "5m"}
    assert result["1m"].macd_line == 0.0
    assert result["5m"] is None
