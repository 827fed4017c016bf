"""
Telegram Notification Module - Cycle digests and error alerts
"""
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import aiohttp
from loguru import logger

from src.analysis.market_summary import format_usd
from src.exchange.models import Decision, ExecutionResult, Operation, OrderInstruction

TELEGRAM_MAX_MESSAGE = 4096


def should_skip_notification(decisions: Sequence[Decision]) -> bool:
    """A cycle where every decision is hold is not worth a message"""
    if not decisions:
        return False
    return all(d.operation == Operation.HOLD for d in decisions)


def _price_or_na(value: Optional[float]) -> str:
    return f"${format_usd(value)}" if value is not None and value > 0 else "n/a"


def format_cycle_digest(
    decisions: Sequence[Decision],
    instructions: Sequence[OrderInstruction],
    executions: Sequence[ExecutionResult],
    available_balance: Optional[float],
    symbol: str,
    default_leverage: int,
    now: Optional[datetime] = None,
) -> str:
    """Plain-text summary of decisions, generated orders and their execution status"""
    now = now or datetime.now(timezone.utc)

    decision_lines = []
    for decision in decisions:
        pct = decision.target_portion_of_balance * 100
        leverage = decision.leverage if decision.leverage is not None else default_leverage
        decision_lines.append(
            f"• {decision.symbol or symbol} → {decision.operation.value.upper()} | {pct:.1f}% bal | lev {leverage:g}"
        )

    instruction_lines = [
        f"• {o.symbol} {o.side.value} {o.qty:g} @ {o.price:g} ({o.order_type}, lev {o.leverage} "
        f"| SL {_price_or_na(o.stop_loss)} | TP {_price_or_na(o.take_profit)})"
        for o in instructions
    ]

    execution_lines = []
    for result in executions:
        o = result.order
        if result.succeeded:
            execution_lines.append(f"• ✅ {o.symbol} {o.side.value} {o.qty:g} @ {o.price:g} (orderId {result.order_id})")
        else:
            execution_lines.append(f"• ❌ {o.symbol} {o.side.value} {o.qty:g} @ {o.price:g} — {result.error}")

    segments: List[str] = [
        f"Bybit {symbol} decisions @ {now.strftime('%a, %d %b %Y %H:%M:%S')} UTC",
        "\n".join(decision_lines) if decision_lines else "• HOLD (no actionable trades)",
        "",
    ]
    if instructions and available_balance is not None:
        segments += [f"Available balance before new orders: ${format_usd(available_balance)} USDT", ""]

    segments += [
        "Bybit API instructions:",
        "\n".join(instruction_lines) if instruction_lines else "• No orders generated; hold directive received.",
    ]
    if execution_lines:
        segments += ["", "Execution status:", "\n".join(execution_lines)]
    return "\n".join(segments)


class TelegramNotifier:
    """Telegram notification handler"""

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0):
        """
        Initialize Telegram notifier

        Args:
            bot_token: Telegram bot token
            chat_id: Chat ID to send messages to
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = f"https://api.telegram.org/bot{bot_token}"
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("Telegram notifier initialized")

    async def initialize(self):
        """Initialize async session"""
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=self.timeout)

    async def send_message(self, text: str, disable_notification: bool = False) -> bool:
        """
        Send a plain-text message to Telegram

        Returns:
            True if sent successfully. Failures are logged, never raised.
        """
        try:
            await self.initialize()
            payload = {
                "chat_id": self.chat_id,
                "text": text[:TELEGRAM_MAX_MESSAGE],
                "disable_notification": disable_notification,
            }
            async with self.session.post(f"{self.base_url}/sendMessage", json=payload) as response:
                data = await response.json(content_type=None)

            if data.get("ok"):
                logger.debug("Message sent to Telegram")
                return True
            logger.error(f"Telegram error: {data}")
            return False

        except Exception as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return False

    async def send_cycle_error(self, error: BaseException) -> bool:
        """Report a failed trading cycle"""
        return await self.send_message(f"Trading script error: {error}")

    async def close(self):
        """Close the session"""
        if self.session:
            await self.session.close()
            self.session = None
