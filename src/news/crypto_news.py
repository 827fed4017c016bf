"""
Crypto News - Headline feed used as auxiliary prompt context
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

NO_HEADLINES = "No fresh crypto headlines available right now."
NEWS_UNAVAILABLE = "Unable to load fresh crypto news; operating with default bias."


@dataclass
class NewsSummary:
    summary: str
    articles: List[Dict[str, Any]] = field(default_factory=list)


def format_news_timestamp(value: Optional[str]) -> str:
    if not value:
        return "Unknown time"
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return "Unknown time"
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def summarize_articles(articles: List[Dict[str, Any]], limit: int = 4, preview_chars: int = 160) -> str:
    top = [a for a in (articles or []) if isinstance(a, dict)][:limit]
    if not top:
        return NO_HEADLINES

    lines = []
    for article in top:
        timestamp = format_news_timestamp(article.get("published_at"))
        theme = f" ({article['theme']})" if article.get("theme") else ""
        body = str(article.get("body") or article.get("title") or "").strip()
        preview = re.sub(r"\s+", " ", body)[:preview_chars].strip()
        lines.append(f"• {timestamp}{theme} – {preview}")
    return "\n".join(lines)


class CryptoNewsClient:
    """CryptoHorde headline client; failures degrade to a neutral summary"""

    def __init__(self, endpoint: str, api_key: str, timeout: float = 10.0):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def fetch_latest_summary(self) -> NewsSummary:
        params = {"theme": "crypto", "lang": "en", "key": self.api_key}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(self.endpoint, params=params) as response:
                    if response.status != 200:
                        raise RuntimeError(f"CryptoHorde HTTP {response.status}")
                    payload = await response.json(content_type=None)
            if not isinstance(payload, list):
                raise RuntimeError("CryptoHorde response is not an array")
        except Exception as e:
            logger.error(f"Failed to fetch crypto news: {e}")
            return NewsSummary(summary=NEWS_UNAVAILABLE)

        return NewsSummary(summary=summarize_articles(payload), articles=payload)
