"""
Exchange Models - Value objects shared by the data source, order builder and executor
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class OrderSide(str, Enum):
    BUY = "Buy"
    SELL = "Sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class Operation(str, Enum):
    """Operation requested by a model decision"""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    CLOSE = "close"


class PositionMode(str, Enum):
    ONE_WAY = "ONE_WAY"
    HEDGE = "HEDGE"


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a venue field to float, falling back when missing or non-finite"""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if math.isfinite(parsed) else default


def to_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


@dataclass(frozen=True)
class Candle:
    """OHLCV candle; start_time is epoch milliseconds"""
    start_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values for one timeframe. None means not enough history."""
    vwma20: Optional[float] = None
    rsi14: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None


@dataclass
class AccountSnapshot:
    """Unified account balance summary"""
    total_equity: float
    available_balance: float
    used_margin: float
    maintenance_margin: float
    account_type: str = "UNIFIED"
    currency: str = "USDT"

    @property
    def margin_usage_ratio(self) -> float:
        return self.used_margin / max(self.total_equity, 1)


@dataclass
class Ticker:
    """Latest market data for a symbol"""
    symbol: str
    price: float
    change_24h_pct: float = 0.0
    funding_rate: float = 0.0
    volume_24h: float = 0.0


@dataclass
class Position:
    """Open position on the instrument"""
    side: OrderSide
    size: float
    entry_price: float
    leverage: float
    unrealized_pnl: float = 0.0
    liq_price: float = 0.0
    take_profit: float = 0.0
    stop_loss: float = 0.0
    position_index: int = 0
    mark_price: float = 0.0
    position_value: float = 0.0

    @property
    def is_protected(self) -> bool:
        return self.size > 0 and self.take_profit > 0 and self.stop_loss > 0


@dataclass
class PositionState:
    position: Optional[Position]
    mode: PositionMode = PositionMode.ONE_WAY


@dataclass(frozen=True)
class InstrumentMeta:
    """Lot size and price filters of an instrument"""
    min_order_qty: float
    qty_step: float
    tick_size: float
    max_order_qty: float = math.inf
    min_price: float = 0.0
    max_price: float = math.inf


@dataclass
class Decision:
    """Trading decision returned by the decision service"""
    operation: Operation
    symbol: str = ""
    target_portion_of_balance: float = 0.0
    leverage: Optional[float] = None
    max_price: Optional[float] = None
    min_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    reason: str = ""
    trading_strategy: str = ""

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["Decision"]:
        """Build a decision from a raw model payload; None if the operation is unknown"""
        if not isinstance(payload, dict):
            return None
        raw_operation = str(payload.get("operation") or "").strip().lower()
        try:
            operation = Operation(raw_operation)
        except ValueError:
            return None

        return cls(
            operation=operation,
            symbol=str(payload.get("symbol") or "").strip().upper(),
            target_portion_of_balance=max(0.0, to_float(payload.get("target_portion_of_balance"))),
            leverage=to_optional_float(payload.get("leverage")),
            max_price=to_optional_float(payload.get("max_price")),
            min_price=to_optional_float(payload.get("min_price")),
            stop_loss_price=to_optional_float(payload.get("stop_loss_price")),
            take_profit_price=to_optional_float(payload.get("take_profit_price")),
            reason=str(payload.get("reason") or ""),
            trading_strategy=str(payload.get("trading_strategy") or ""),
        )


@dataclass(frozen=True)
class OrderInstruction:
    """Validated limit order ready for submission"""
    category: str
    symbol: str
    side: OrderSide
    qty: float
    price: float
    leverage: int
    reduce_only: bool
    order_link_id: str
    position_index: Optional[int] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    order_type: str = "Limit"
    time_in_force: str = "GTC"
    trigger_by: str = "LastPrice"
    reason: str = ""
    trading_strategy: str = ""

    def to_request(self) -> Dict[str, Any]:
        """Render the order/create request body"""
        body: Dict[str, Any] = {
            "category": self.category,
            "symbol": self.symbol,
            "side": self.side.value,
            "orderType": self.order_type,
            "qty": _format_number(self.qty),
            "price": _format_number(self.price),
            "timeInForce": self.time_in_force,
            "reduceOnly": self.reduce_only,
            "orderLinkId": self.order_link_id,
        }
        if self.position_index is not None:
            body["positionIdx"] = self.position_index
        if self.take_profit is not None and self.take_profit > 0:
            body["takeProfit"] = _format_number(self.take_profit)
            body["tpTriggerBy"] = self.trigger_by
        if self.stop_loss is not None and self.stop_loss > 0:
            body["stopLoss"] = _format_number(self.stop_loss)
            body["slTriggerBy"] = self.trigger_by
        return body


@dataclass
class ExecutionResult:
    """Outcome of submitting one order"""
    order: OrderInstruction
    status: str
    order_id: Optional[str] = None
    error: Optional[str] = None
    response: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def _format_number(value: float) -> str:
    # Quantized values carry at most 8 decimals; avoid scientific notation
    text = f"{value:.8f}".rstrip("0").rstrip(".")
    return text or "0"
