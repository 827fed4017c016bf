"""
Trading Cycle - One pass from market snapshot to submitted orders and a digest
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from loguru import logger

from src.analysis.market_summary import build_template_data
from src.exchange.market_data import MarketDataSource
from src.exchange.models import Decision, ExecutionResult, OrderInstruction
from src.exchange.order_executor import OrderExecutor
from src.llm.decision_client import DecisionClient
from src.llm.prompts import BYBIT_PERP_TEMPLATE, fill_template, output_format_descriptor
from src.news.crypto_news import CryptoNewsClient
from src.notifications.telegram_notifier import (
    TelegramNotifier,
    format_cycle_digest,
    should_skip_notification,
)
from src.risk.order_builder import BuildOutcome, GuardrailOrderBuilder, TradingContext


@dataclass
class CycleReport:
    """What happened during one cycle"""
    skipped: bool = False
    decisions: List[Decision] = field(default_factory=list)
    outcomes: List[BuildOutcome] = field(default_factory=list)
    orders: List[OrderInstruction] = field(default_factory=list)
    executions: List[ExecutionResult] = field(default_factory=list)
    notified: bool = False
    duration_ms: int = 0


class TradingCycle:
    """Fetch, decide, validate, submit, notify"""

    def __init__(
        self,
        market_data: MarketDataSource,
        news: CryptoNewsClient,
        decision_client: DecisionClient,
        order_builder: GuardrailOrderBuilder,
        executor: OrderExecutor,
        notifier: TelegramNotifier,
        category: str = "linear",
        skip_when_protected: bool = True,
        session_start: Optional[datetime] = None,
    ):
        self.market_data = market_data
        self.news = news
        self.decision_client = decision_client
        self.order_builder = order_builder
        self.executor = executor
        self.notifier = notifier
        self.category = category
        self.skip_when_protected = skip_when_protected
        self.session_start = session_start or datetime.now(timezone.utc)

    async def run(self) -> CycleReport:
        started = time.monotonic()
        report = CycleReport()

        account, ticker, instrument, position_state, news, series = await asyncio.gather(
            self.market_data.get_account_snapshot(),
            self.market_data.get_ticker(),
            self.market_data.get_instrument_meta(),
            self.market_data.get_position_state(),
            self.news.fetch_latest_summary(),
            self.market_data.fetch_intraday_series(),
        )
        position = position_state.position

        context = TradingContext(
            account=account,
            ticker=ticker,
            instrument=instrument,
            position=position,
            position_mode=position_state.mode,
            category=self.category,
        )

        if self.skip_when_protected and position is not None and position.is_protected:
            logger.info(f"Existing {ticker.symbol} position already has TP/SL set; skipping new instructions this cycle")
            report.skipped = True
            report.duration_ms = int((time.monotonic() - started) * 1000)
            return report

        builder = self.order_builder
        params = build_template_data(
            account=account,
            ticker=ticker,
            position=position,
            series_by_label=series,
            news_summary=news.summary,
            output_format=output_format_descriptor(ticker.symbol, builder.default_leverage),
            max_leverage=builder.max_leverage,
            default_leverage=builder.default_leverage,
            session_start=self.session_start,
        )
        prompt = fill_template(BYBIT_PERP_TEMPLATE, params)

        report.decisions = await self.decision_client.request_decisions(prompt)
        report.outcomes = builder.evaluate(report.decisions, context)
        report.orders = [o.order for o in report.outcomes if o.accepted]

        if report.orders:
            report.executions = await self.executor.place_orders(report.orders)

        logger.info(f"Decisions: {[f'{d.operation.value}:{d.target_portion_of_balance}' for d in report.decisions]}")
        for order in report.orders:
            logger.info(f"Order instruction: {order.to_request()}")
        for result in report.executions:
            logger.info(f"Execution {result.order.order_link_id}: {result.status} {result.order_id or result.error}")

        if should_skip_notification(report.decisions):
            logger.info("All decisions are HOLD; skipping Telegram notification")
        else:
            message = format_cycle_digest(
                report.decisions,
                report.orders,
                report.executions,
                account.available_balance,
                ticker.symbol,
                builder.default_leverage,
            )
            report.notified = await self.notifier.send_message(message)

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Cycle completed in {report.duration_ms}ms")
        return report
