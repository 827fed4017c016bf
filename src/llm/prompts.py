"""
Prompt Templates - Bybit perpetual decision prompt and placeholder filling
"""
import json
import re
from typing import Any, Dict

SYSTEM_PROMPT = (
    "You are a disciplined Bybit trading assistant. "
    "Respond with JSON only per the provided schema."
)

BYBIT_PERP_TEMPLATE = """=== SESSION CONTEXT ===
Runtime: {runtime_minutes} minutes since trading started
Current UTC time: {current_time_utc}

=== TRADING ENVIRONMENT ===
Platform: Bybit Perpetual Contracts
Warning: {real_trading_warning}

=== ACCOUNT STATE ===
Total Equity: ${total_equity}
Available Balance: ${available_balance}
Used Margin: ${used_margin}
Margin Usage: {margin_usage_percent}
Maintenance Margin: ${maintenance_margin}

Account Leverage Settings:
- Maximum Leverage: {max_leverage}x
- Default Leverage: {default_leverage}x

=== OPEN POSITIONS ===
{positions_detail}

=== SYMBOLS IN PLAY ===
Monitoring {selected_symbols_count} Bybit contract(s):
{selected_symbols_detail}

=== MARKET DATA ===
Current prices (USD):
{market_prices}

=== INTRADAY PRICE SERIES ===
{sampling_data}

=== TECHNICAL INDICATORS ===
VWMA20, RSI14 and MACD(12/26/9) for 1m, 5m and 1h (MACD as line/signal/histogram):
{indicator_section}

=== LATEST CRYPTO NEWS ===
{news_section}

=== RISK RULES ===
- Leverage multiplies gains and losses; liquidation moves closer to entry as leverage rises.
- Prefer 2-3x; reserve 5-10x for high-probability setups.
- Keep margin usage below 70%. Current margin usage ratio is {margin_usage_ratio}.
- When {margin_usage_ratio} < 0.70 and no conflicting position exists, a HOLD-only answer is not allowed:
  deploy at least one probing trade sized 0.05-0.20 of available balance with a clear invalidation.
- Estimate projected margin usage before finalizing:
  projected_ratio ~= {margin_usage_ratio} + (available_balance / total_equity) * sum(target_portion_of_balance * leverage)
  and keep projected_ratio < 0.70.
- Orders execute in this order: (1) closes, (2) SELL entries, (3) BUY entries.

=== DECISION REQUIREMENTS ===
- operation: "buy" (long), "sell" (short), "hold" or "close".
- buy/sell: target_portion_of_balance is the fraction (0.0-1.0) of available balance used as margin.
- close: target_portion_of_balance is the fraction of the position to close (usually 1.0).
- hold: target_portion_of_balance must be 0.
- leverage: integer 1-{max_leverage}.
- Every buy/sell must include stop_loss_price and take_profit_price on the correct side of entry.
- Provide max_price whenever the order buys (longs, covering shorts) and min_price whenever it sells
  (shorts, reducing longs). Holds omit both.
- symbol must be one of: {selected_symbols_csv}

=== OUTPUT FORMAT ===
Respond with ONLY a single valid JSON object (no markdown, no commentary) using this schema:
{output_format}
"""

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class TemplateError(KeyError):
    """Raised when template placeholders have no value"""


def fill_template(template: str, params: Dict[str, Any]) -> str:
    """Substitute {name} placeholders; every placeholder must have a non-empty value"""
    missing = []

    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        value = params.get(key)
        if value is None or value == "":
            if key not in missing:
                missing.append(key)
            return match.group(0)
        return str(value)

    filled = _PLACEHOLDER.sub(substitute, template)
    if missing:
        raise TemplateError(f"Missing template values for: {', '.join(missing)}")
    return filled


def output_format_descriptor(symbol: str, leverage: int) -> str:
    """Schema example the model must follow"""
    example = {
        "decisions": [
            {
                "operation": "buy",
                "symbol": symbol,
                "target_portion_of_balance": 0.25,
                "leverage": leverage,
                "max_price": 0,
                "stop_loss_price": 0,
                "take_profit_price": 0,
                "reason": "Concise catalyst describing why exposure is warranted.",
                "trading_strategy": "Risk outline covering stop level, target, and leverage rationale.",
            },
            {
                "operation": "hold",
                "symbol": symbol,
                "target_portion_of_balance": 0.0,
                "leverage": leverage,
                "reason": "Document why no trade is taken despite monitoring the symbol.",
                "trading_strategy": "Explain what would need to change to trigger an entry.",
            },
        ]
    }
    return json.dumps(example, indent=2)
