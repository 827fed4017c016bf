"""
Indicator Engine - VWMA, RSI and MACD over raw candle series

All functions are pure. A value that cannot be computed from the available
history is returned as None, never as 0 or NaN.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from src.exchange.models import Candle, IndicatorSnapshot

CANDLE_COLUMNS = ["start_time", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class IndicatorConfig:
    """Lookback lengths for the indicator suite"""
    vwma_length: int = 20
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9


@dataclass(frozen=True)
class MacdResult:
    line: float
    signal: float
    histogram: float


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """
    Chronologically sorted candle frame.

    Candles without a finite start time are dropped; for duplicate
    timestamps the last candle seen wins.
    """
    rows = [
        (c.start_time, c.open, c.high, c.low, c.close, c.volume)
        for c in (candles or [])
    ]
    frame = pd.DataFrame(rows, columns=CANDLE_COLUMNS)
    if frame.empty:
        return frame

    frame["start_time"] = pd.to_numeric(frame["start_time"], errors="coerce")
    for column in CANDLE_COLUMNS[1:]:
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    frame = frame[frame["start_time"].map(math.isfinite)]
    frame = frame.drop_duplicates(subset="start_time", keep="last")
    return frame.sort_values("start_time", kind="mergesort").reset_index(drop=True)


def sort_candles(candles: Iterable[Candle]) -> List[Candle]:
    frame = candles_to_frame(candles)
    return [
        Candle(
            start_time=int(row.start_time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]


def calculate_vwma(candles: Iterable[Candle], length: int = 20) -> Optional[float]:
    """Volume-weighted moving average of the last `length` closes"""
    frame = candles_to_frame(candles)
    if length <= 0 or len(frame) < length:
        return None
    recent = frame.tail(length)
    closes = recent["close"].fillna(0.0)
    volumes = recent["volume"].fillna(0.0)
    volume_sum = float(volumes.sum())
    if not math.isfinite(volume_sum) or volume_sum <= 0:
        return None
    weighted = float((closes * volumes).sum()) / volume_sum
    return weighted if math.isfinite(weighted) else None


def calculate_rsi(candles: Iterable[Candle], period: int = 14) -> Optional[float]:
    """Simple-average RSI over the last `period` close-to-close deltas"""
    frame = candles_to_frame(candles)
    if period <= 0 or len(frame) < period + 1:
        return None

    closes = frame["close"].tail(period + 1).tolist()
    gains = 0.0
    losses = 0.0
    for previous, current in zip(closes, closes[1:]):
        delta = current - previous
        if delta >= 0:
            gains += delta
        else:
            losses -= delta

    avg_gain = gains / period
    avg_loss = losses / period
    if not math.isfinite(avg_gain) or not math.isfinite(avg_loss):
        return None
    if avg_loss == 0:
        return 100.0
    if avg_gain == 0:
        return 0.0
    rs = avg_gain / avg_loss
    return 100 - 100 / (1 + rs)


def build_ema_series(values: Sequence[float], period: int) -> List[Optional[float]]:
    """
    EMA aligned with `values`; entries before the seed are None.

    The seed is the simple average of the first `period` values. A non-finite
    input later on repeats the previous EMA value. Returns an empty list when
    there is not enough data or the seed window is not finite.
    """
    if period <= 0 or len(values) < period:
        return []
    seed_window = list(values[:period])
    if not all(_finite(v) for v in seed_window):
        return []

    result: List[Optional[float]] = [None] * len(values)
    ema = sum(seed_window) / period
    result[period - 1] = ema
    multiplier = 2 / (period + 1)
    for i in range(period, len(values)):
        value = values[i]
        if not _finite(value):
            result[i] = result[i - 1]
            continue
        ema = (value - ema) * multiplier + ema
        result[i] = ema
    return result


def calculate_macd(
    candles: Iterable[Candle],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> Optional[MacdResult]:
    """MACD line, signal and histogram for the latest candle"""
    frame = candles_to_frame(candles)
    if len(frame) < slow_period + signal_period:
        return None

    closes = frame["close"].tolist()
    fast_series = build_ema_series(closes, fast_period)
    slow_series = build_ema_series(closes, slow_period)
    if not fast_series or not slow_series:
        return None

    macd_series = [
        fast - slow
        for fast, slow in zip(fast_series, slow_series)
        if _finite(fast) and _finite(slow)
    ]
    if len(macd_series) < signal_period:
        return None

    signal_series = build_ema_series(macd_series, signal_period)
    if not signal_series:
        return None
    line = macd_series[-1]
    signal = signal_series[-1]
    if not _finite(line) or not _finite(signal):
        return None
    return MacdResult(line=line, signal=signal, histogram=line - signal)


def calculate_indicator_suite(
    candles: Iterable[Candle],
    config: IndicatorConfig = IndicatorConfig(),
) -> Optional[IndicatorSnapshot]:
    """All indicators for one timeframe; None when nothing could be computed"""
    candles = list(candles or [])
    if not candles:
        return None

    vwma = calculate_vwma(candles, config.vwma_length)
    rsi = calculate_rsi(candles, config.rsi_period)
    macd = calculate_macd(candles, config.macd_fast, config.macd_slow, config.macd_signal)
    if vwma is None and rsi is None and macd is None:
        return None

    return IndicatorSnapshot(
        vwma20=vwma,
        rsi14=rsi,
        macd_line=macd.line if macd else None,
        macd_signal=macd.signal if macd else None,
        macd_histogram=macd.histogram if macd else None,
    )


def compute_timeframe_indicators(
    series_by_label: Dict[str, List[Candle]],
    config: IndicatorConfig = IndicatorConfig(),
) -> Dict[str, Optional[IndicatorSnapshot]]:
    """Indicator suite keyed by timeframe label"""
    return {
        label: calculate_indicator_suite(candles, config)
        for label, candles in (series_by_label or {}).items()
    }


def _finite(value: Optional[float]) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)
