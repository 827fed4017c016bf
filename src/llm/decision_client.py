"""
Decision Client - Requests trading decisions from an OpenAI-compatible chat model
"""
import asyncio
import json
from typing import Any, List, Optional

from loguru import logger
from openai import OpenAI

from src.exchange.models import Decision
from src.llm.prompts import SYSTEM_PROMPT


class DecisionServiceError(Exception):
    """The decision service failed or returned nothing usable"""


class DecisionParseError(DecisionServiceError):
    """The model reply is not a valid decisions payload"""


def _strip_code_fence(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_decisions(raw_content: str) -> List[Decision]:
    """
    Parse the model reply into decisions.

    Raises DecisionParseError when the reply is not JSON or has no decisions
    list. Entries with an unknown operation are dropped.
    """
    try:
        payload: Any = json.loads(_strip_code_fence(raw_content))
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(f"Failed to parse model output: {raw_content!r}")
        raise DecisionParseError(f"Model output is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecisionParseError("Model output must be a JSON object")
    entries = payload.get("decisions", [])
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise DecisionParseError("'decisions' must be a list")

    decisions = []
    for entry in entries:
        decision = Decision.from_payload(entry)
        if decision is None:
            logger.warning(f"Ignoring decision with unrecognised operation: {entry}")
            continue
        decisions.append(decision)
    return decisions


class DecisionClient:
    """Chat-completions client for trading decisions"""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: str = "qwen3-max",
        temperature: float = 0.2,
        timeout: float = 60.0,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        logger.info(f"Decision client initialized with model: {model}")

    async def request_decisions(self, prompt: str) -> List[Decision]:
        """Send the rendered prompt and parse the returned decisions"""
        logger.debug(f"Prompt sent to model:\n{prompt}")
        completion = await asyncio.to_thread(
            self.client.chat.completions.create,
            model=self.model,
            temperature=self.temperature,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

        content = None
        if completion.choices:
            content = completion.choices[0].message.content
        if not content or not content.strip():
            raise DecisionServiceError("Model returned empty response")

        decisions = parse_decisions(content)
        logger.info(f"Model returned {len(decisions)} decision(s)")
        return decisions
