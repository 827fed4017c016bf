"""
Guardrail Order Builder - Turns model decisions into exchange-safe limit orders

Each decision runs through a fixed pipeline of checks. A decision that fails a
check is rejected (logged and counted) and the remaining decisions are still
processed; the builder never raises for a bad decision.
"""
import itertools
import math
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from loguru import logger

from src.analysis.quantizer import RoundingMode, quantize_to_step
from src.exchange.bybit_client import DEFAULT_QTY_STEP, DEFAULT_TICK_SIZE
from src.exchange.models import (
    AccountSnapshot,
    Decision,
    InstrumentMeta,
    Operation,
    OrderInstruction,
    OrderSide,
    Position,
    PositionMode,
    Ticker,
)


class RejectionReason(str, Enum):
    SYMBOL_MISMATCH = "symbol_mismatch"
    CLOSE_WITHOUT_POSITION = "close_without_position"
    INVALID_PRICE = "invalid_price"
    PRICE_OUT_OF_RANGE = "price_out_of_range"
    MISSING_PROTECTION = "missing_protection"
    INCONSISTENT_PROTECTION = "inconsistent_protection"
    INSUFFICIENT_MARGIN = "insufficient_margin"
    QUANTITY_OUT_OF_RANGE = "quantity_out_of_range"


@dataclass
class TradingContext:
    """Per-cycle state the builder validates decisions against"""
    account: AccountSnapshot
    ticker: Ticker
    instrument: InstrumentMeta
    position: Optional[Position] = None
    position_mode: PositionMode = PositionMode.ONE_WAY
    category: str = "linear"

    @property
    def symbol(self) -> str:
        return self.ticker.symbol


@dataclass(frozen=True)
class BuildOutcome:
    """Either an accepted order or the reason a decision was rejected"""
    decision: Decision
    order: Optional[OrderInstruction] = None
    reason: Optional[RejectionReason] = None
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return self.order is not None


class _Rejected(Exception):
    def __init__(self, reason: RejectionReason, detail: str = ""):
        super().__init__(detail or reason.value)
        self.reason = reason
        self.detail = detail


def is_actionable(decision: Decision) -> bool:
    """Hold and zero-portion decisions are informational only"""
    return (
        decision is not None
        and decision.operation in (Operation.BUY, Operation.SELL, Operation.CLOSE)
        and decision.target_portion_of_balance > 0
    )


def resolve_position_index(
    operation: Operation,
    side: OrderSide,
    position: Optional[Position],
    mode: PositionMode,
) -> Optional[int]:
    """Hedge-mode slot: 1 for the long slot, 2 for the short slot; None in one-way mode"""
    if mode != PositionMode.HEDGE:
        return None
    if operation == Operation.CLOSE and position is not None:
        return 2 if position.side == OrderSide.SELL else 1
    return 1 if side == OrderSide.BUY else 2


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class GuardrailOrderBuilder:
    """Validates decisions and sizes orders within instrument and margin limits"""

    def __init__(
        self,
        max_leverage: int = 100,
        default_leverage: Optional[int] = None,
        order_link_prefix: str = "perpguard",
        default_qty_step: float = DEFAULT_QTY_STEP,
        default_tick_size: float = DEFAULT_TICK_SIZE,
    ):
        self.max_leverage = max(1, int(max_leverage))
        self.default_leverage = min(self.max_leverage, max(1, int(default_leverage or self.max_leverage)))
        self.order_link_prefix = order_link_prefix
        self.default_qty_step = default_qty_step
        self.default_tick_size = default_tick_size
        self.rejection_counts: Counter = Counter()
        self._sequence = itertools.count()

    def build(self, decisions: Iterable[Decision], context: TradingContext) -> List[OrderInstruction]:
        """Accepted orders for the decisions"""
        return [outcome.order for outcome in self.evaluate(decisions, context) if outcome.accepted]

    def evaluate(self, decisions: Iterable[Decision], context: TradingContext) -> List[BuildOutcome]:
        """Run every actionable decision through the guardrails"""
        outcomes = []
        for index, decision in enumerate(d for d in (decisions or []) if is_actionable(d)):
            try:
                order = self._build_order(decision, context, index)
            except _Rejected as rejection:
                self.rejection_counts[rejection.reason] += 1
                logger.warning(
                    f"Rejected {decision.operation.value} decision for {decision.symbol or context.symbol}: "
                    f"{rejection.reason.value} {rejection.detail}".rstrip()
                )
                outcomes.append(BuildOutcome(decision=decision, reason=rejection.reason, detail=rejection.detail))
                continue
            outcomes.append(BuildOutcome(decision=decision, order=order))
        return outcomes

    def _build_order(self, decision: Decision, context: TradingContext, index: int) -> OrderInstruction:
        symbol = decision.symbol or context.symbol
        if symbol != context.symbol:
            raise _Rejected(RejectionReason.SYMBOL_MISMATCH, f"expected {context.symbol}, got {symbol}")

        operation = decision.operation
        portion = decision.target_portion_of_balance
        position = context.position
        instrument = context.instrument
        is_close = operation == Operation.CLOSE

        if is_close and (position is None or not position.size > 0):
            raise _Rejected(RejectionReason.CLOSE_WITHOUT_POSITION)

        if operation == Operation.BUY:
            side = OrderSide.BUY
        elif operation == Operation.SELL:
            side = OrderSide.SELL
        else:
            side = position.side.opposite

        position_index = resolve_position_index(operation, side, position, context.position_mode)

        price = self._reference_price(decision, side, context)
        leverage = self._resolve_leverage(decision, position if is_close else None)

        stop_loss = take_profit = None
        if not is_close:
            stop_loss, take_profit = self._protective_prices(decision, side, price, instrument)

        qty = self._size(decision, context, price, leverage, portion, is_close)

        return OrderInstruction(
            category=context.category,
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            leverage=leverage,
            reduce_only=is_close,
            order_link_id=self._order_link_id(index),
            position_index=position_index,
            stop_loss=stop_loss,
            take_profit=take_profit,
            reason=decision.reason,
            trading_strategy=decision.trading_strategy,
        )

    def _tick_size(self, instrument: InstrumentMeta) -> float:
        return instrument.tick_size or self.default_tick_size

    def _reference_price(self, decision: Decision, side: OrderSide, context: TradingContext) -> float:
        """Guardrail price (max for buys, min for sells) or the last market price"""
        instrument = context.instrument
        candidate = decision.max_price if side == OrderSide.BUY else decision.min_price
        raw_price = candidate if candidate is not None and candidate > 0 else context.ticker.price
        price = quantize_to_step(raw_price, self._tick_size(instrument), RoundingMode.ROUND)

        if not math.isfinite(price) or price <= 0:
            raise _Rejected(RejectionReason.INVALID_PRICE, f"price={price}")
        if (instrument.min_price and price < instrument.min_price) or (
            instrument.max_price and price > instrument.max_price
        ):
            raise _Rejected(
                RejectionReason.PRICE_OUT_OF_RANGE,
                f"price={price} bounds=[{instrument.min_price}, {instrument.max_price}]",
            )
        return price

    def _resolve_leverage(self, decision: Decision, closing_position: Optional[Position]) -> int:
        if closing_position is not None and math.isfinite(closing_position.leverage):
            return max(1, _round_half_up(closing_position.leverage))

        requested = decision.leverage
        if requested is None or not math.isfinite(requested):
            return self.default_leverage
        return min(self.max_leverage, max(1, _round_half_up(requested)))

    def _protective_prices(self, decision: Decision, side: OrderSide, price: float, instrument: InstrumentMeta):
        tick = self._tick_size(instrument)
        stop_loss = take_profit = None
        if decision.stop_loss_price is not None and decision.stop_loss_price > 0:
            stop_loss = quantize_to_step(decision.stop_loss_price, tick, RoundingMode.ROUND)
        if decision.take_profit_price is not None and decision.take_profit_price > 0:
            take_profit = quantize_to_step(decision.take_profit_price, tick, RoundingMode.ROUND)

        if not stop_loss or not take_profit:
            raise _Rejected(
                RejectionReason.MISSING_PROTECTION,
                f"stop_loss={decision.stop_loss_price} take_profit={decision.take_profit_price}",
            )

        if side == OrderSide.BUY:
            consistent = stop_loss < price < take_profit
        else:
            consistent = stop_loss > price > take_profit
        if not consistent:
            raise _Rejected(
                RejectionReason.INCONSISTENT_PROTECTION,
                f"{side.value} entry={price} stop_loss={stop_loss} take_profit={take_profit}",
            )
        return stop_loss, take_profit

    def _size(
        self,
        decision: Decision,
        context: TradingContext,
        price: float,
        leverage: int,
        portion: float,
        is_close: bool,
    ) -> float:
        instrument = context.instrument
        qty_step = instrument.qty_step or self.default_qty_step
        min_qty = instrument.min_order_qty or qty_step
        max_qty = instrument.max_order_qty or math.inf

        if is_close:
            raw_qty = context.position.size * min(portion, 1.0)
        else:
            available = context.account.available_balance
            margin = available * portion
            if not math.isfinite(margin) or margin <= 0:
                raise _Rejected(RejectionReason.INSUFFICIENT_MARGIN, f"margin={margin}")

            candidate_qty = margin * leverage / price
            required_margin = min_qty * price / leverage
            if candidate_qty >= min_qty:
                raw_qty = candidate_qty
            elif available >= required_margin:
                # Small allocation still clears the venue floor
                raw_qty = min_qty
            else:
                raise _Rejected(
                    RejectionReason.INSUFFICIENT_MARGIN,
                    f"available={available:.4f} required={required_margin:.4f}",
                )

        qty = quantize_to_step(raw_qty, qty_step, RoundingMode.FLOOR)
        if not math.isfinite(qty) or qty <= 0 or qty < min_qty or qty > max_qty:
            raise _Rejected(
                RejectionReason.QUANTITY_OUT_OF_RANGE,
                f"raw_qty={raw_qty} qty={qty} bounds=[{min_qty}, {max_qty}]",
            )
        return qty

    def _order_link_id(self, index: int) -> str:
        return f"{self.order_link_prefix}-{int(time.time() * 1000)}-{index}-{next(self._sequence)}"


def order_for_execution(orders: Iterable[OrderInstruction]) -> List[OrderInstruction]:
    """Closes first, then sell-direction opens, then buy-direction opens"""
    def rank(order: OrderInstruction) -> int:
        if order.reduce_only:
            return 0
        return 1 if order.side == OrderSide.SELL else 2

    return sorted(orders, key=rank)
