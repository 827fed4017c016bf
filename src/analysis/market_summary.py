"""
Market Summary - Text sections describing account, position, candles and indicators
"""
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from src.analysis.indicators import calculate_indicator_suite, sort_candles
from src.exchange.models import AccountSnapshot, Candle, IndicatorSnapshot, Position, Ticker

TIMEFRAME_ORDER = ("1m", "5m", "1h")


def format_usd(value: float) -> str:
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return "0.00"


def format_percent(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def format_big_number(value: float) -> str:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "0"
    if not math.isfinite(num):
        return "0"
    if num >= 1e9:
        return f"{num / 1e9:.2f}B"
    if num >= 1e6:
        return f"{num / 1e6:.2f}M"
    if num >= 1e3:
        return f"{num / 1e3:.2f}K"
    return f"{num:.0f}"


def format_signed_pct(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


def describe_position(position: Optional[Position], symbol: str) -> str:
    if position is None:
        return f"- {symbol} perp: Flat; no open exposure."
    direction = "LONG" if position.side.value == "Buy" else "SHORT"
    return (
        f"- {symbol} perp: {direction} {position.size:.4f} @ ${format_usd(position.entry_price)} "
        f"| Lvg {position.leverage:g}x | UPNL {position.unrealized_pnl:.2f} USDT"
    )


def _candle_time(start_time: int) -> str:
    try:
        return datetime.fromtimestamp(start_time / 1000, tz=timezone.utc).strftime("%H:%M")
    except (OverflowError, OSError, ValueError):
        return "??:??"


def _candle_price(value: float) -> str:
    return f"{value:.2f}" if math.isfinite(value) else "0.00"


def format_series_section(label: str, candles: Sequence[Candle], latest: int = 3) -> str:
    """Most recent candles of one timeframe, oldest first"""
    recent = sort_candles(candles)[-latest:]
    if not recent:
        return f"{label}: No candle data available."
    entries = [
        f"{_candle_time(c.start_time)} UTC O{_candle_price(c.open)} H{_candle_price(c.high)} "
        f"L{_candle_price(c.low)} C{_candle_price(c.close)} V{format_big_number(c.volume)}"
        for c in recent
    ]
    return f"{label} (latest {len(entries)}):\n  " + "\n  ".join(entries)


def build_sampling_data(
    series_by_label: Dict[str, List[Candle]],
    ticker: Optional[Ticker] = None,
    position: Optional[Position] = None,
) -> str:
    if not any(series_by_label.get(label) for label in TIMEFRAME_ORDER):
        price = f"${format_usd(ticker.price)}" if ticker else "unknown price"
        note = (
            f"{position.side.value} {position.size:.4f} contracts live"
            if position else "Flat stance maintained"
        )
        return f"No intraday candles available. Latest price {price}; {note}."
    return "\n".join(format_series_section(label, series_by_label.get(label) or []) for label in TIMEFRAME_ORDER)


def _indicator_value(value: Optional[float], decimals: int = 2) -> str:
    return f"{value:.{decimals}f}" if value is not None and math.isfinite(value) else "n/a"


def format_indicator_line(label: str, snapshot: Optional[IndicatorSnapshot]) -> str:
    if snapshot is None:
        return f"{label}: VWMA20 n/a, RSI14 n/a | MACD n/a/n/a/n/a"
    vwma = f"${format_usd(snapshot.vwma20)}" if snapshot.vwma20 is not None else "n/a"
    return (
        f"{label}: VWMA20 {vwma}, RSI14 {_indicator_value(snapshot.rsi14, 1)} | MACD "
        f"{_indicator_value(snapshot.macd_line)}/{_indicator_value(snapshot.macd_signal)}/"
        f"{_indicator_value(snapshot.macd_histogram)}"
    )


def build_indicator_summary(series_by_label: Dict[str, List[Candle]]) -> str:
    lines = [
        format_indicator_line(label, calculate_indicator_suite(series_by_label.get(label) or []))
        for label in TIMEFRAME_ORDER
    ]
    return "\n".join(["MACD values listed as line/signal/histogram:", *lines])


def describe_ticker(ticker: Ticker) -> str:
    return (
        f"- {ticker.symbol}: ${format_usd(ticker.price)} | 24h {format_signed_pct(ticker.change_24h_pct)} "
        f"| funding {ticker.funding_rate}"
    )


def describe_market_prices(ticker: Ticker) -> str:
    return (
        f"{ticker.symbol}: ${format_usd(ticker.price)} ({format_signed_pct(ticker.change_24h_pct)} 24h "
        f"| funding {ticker.funding_rate} | vol {format_big_number(ticker.volume_24h)} USDT)"
    )


def build_template_data(
    account: AccountSnapshot,
    ticker: Ticker,
    position: Optional[Position],
    series_by_label: Dict[str, List[Candle]],
    news_summary: str,
    output_format: str,
    max_leverage: int,
    default_leverage: int,
    session_start: datetime,
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    """Placeholder values for the decision prompt"""
    now = now or datetime.now(timezone.utc)
    runtime_minutes = max(1, round((now - session_start).total_seconds() / 60))
    params: Dict[str, object] = {
        "runtime_minutes": runtime_minutes,
        "current_time_utc": now.isoformat(),
        "real_trading_warning": "REAL CAPITAL DEPLOYMENT - confirm entries before transmitting orders.",
        "max_leverage": max_leverage,
        "default_leverage": default_leverage,
        "positions_detail": describe_position(position, ticker.symbol),
        "selected_symbols_count": 1,
        "selected_symbols_detail": describe_ticker(ticker),
        "selected_symbols_csv": ticker.symbol,
        "market_prices": describe_market_prices(ticker),
        "sampling_data": build_sampling_data(series_by_label, ticker, position),
        "indicator_section": build_indicator_summary(series_by_label)
        or "Indicator data unavailable for VWMA20/RSI14/MACD.",
        "news_section": news_summary or "No major macro catalysts reported for this session.",
        "output_format": output_format,
    }
    params.update(describe_account(account))
    return params


def describe_account(account: AccountSnapshot) -> Dict[str, str]:
    """Account fields for the prompt; margin usage comes from this snapshot only"""
    ratio = account.margin_usage_ratio
    return {
        "total_equity": format_usd(account.total_equity),
        "available_balance": format_usd(account.available_balance),
        "used_margin": format_usd(account.used_margin),
        "maintenance_margin": format_usd(account.maintenance_margin),
        "margin_usage_percent": format_percent(ratio),
        "margin_usage_ratio": f"{ratio:.4f}",
    }
