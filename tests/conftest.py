import math
import sys
from pathlib import Path

import pytest

# Make the project root importable when running tests directly
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from src.exchange.models import (  # noqa: E402
    AccountSnapshot,
    Candle,
    InstrumentMeta,
    OrderSide,
    Position,
    PositionMode,
    Ticker,
)
from src.risk.order_builder import TradingContext  # noqa: E402


def make_candles(closes, volumes=None, start=1_700_000_000_000, step_ms=60_000):
    volumes = volumes or [1.0] * len(closes)
    return [
        Candle(
            start_time=start + i * step_ms,
            open=close,
            high=close + 1,
            low=close - 1,
            close=close,
            volume=volume,
        )
        for i, (close, volume) in enumerate(zip(closes, volumes))
    ]


@pytest.fixture
def btc_instrument():
    return InstrumentMeta(
        min_order_qty=0.001,
        qty_step=0.001,
        tick_size=0.5,
        max_order_qty=100.0,
        min_price=0.5,
        max_price=1_999_999.0,
    )


@pytest.fixture
def account():
    return AccountSnapshot(
        total_equity=10_000.0,
        available_balance=10_000.0,
        used_margin=0.0,
        maintenance_margin=0.0,
    )


@pytest.fixture
def ticker():
    return Ticker(symbol="BTCUSDT", price=50_000.0, change_24h_pct=1.2, funding_rate=0.0001, volume_24h=2.5e9)


@pytest.fixture
def long_position():
    return Position(side=OrderSide.BUY, size=0.5, entry_price=48_000.0, leverage=5, position_index=0)


@pytest.fixture
def short_position():
    return Position(side=OrderSide.SELL, size=0.2, entry_price=52_000.0, leverage=3, position_index=2)


@pytest.fixture
def context(account, ticker, btc_instrument):
    return TradingContext(account=account, ticker=ticker, instrument=btc_instrument)


@pytest.fixture
def make_context(account, ticker, btc_instrument):
    def _make(**overrides):
        values = dict(
            account=account,
            ticker=ticker,
            instrument=btc_instrument,
            position=None,
            position_mode=PositionMode.ONE_WAY,
        )
        values.update(overrides)
        return TradingContext(**values)

    return _make


def is_step_multiple(value, step, tolerance=1e-8):
    units = value / step
    return math.isclose(units, round(units), abs_tol=tolerance)
