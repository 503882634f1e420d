"""LLM-powered narrative discovery over the scanned token list"""
import asyncio
import json
import logging
import math
import re
from typing import Any, List, Optional

import anthropic

from engine.models import DiscoveredNarrative, TokenData
from telegram_bot import format_discovery_error

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = 10
MIN_MATCHING_TOKENS = 3
DEFAULT_CONFIDENCE = 5

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")

SYSTEM_PROMPT = (
    "You are a meme coin narrative analyst. You analyze lists of Solana meme tokens "
    "and identify STRONG narrative themes. You always respond with valid JSON only."
)


def format_tokens_for_llm(tokens: List[TokenData]) -> str:
    return ", ".join(f"{t.symbol} ({t.name})" for t in tokens)


def build_user_prompt(token_list: str) -> str:
    return f"""Analyze the following list of Solana meme tokens and identify STRONG narrative themes: groups of 3 or more tokens that share a common theme or trend.

TOKEN LIST:
{token_list}

INSTRUCTIONS:
1. Identify distinct narrative themes (e.g. "Dog Coins", "AI Tokens", "Political Memes", "Frog/Pepe Variants")
2. Each narrative must have AT LEAST 3 matching tokens from the list
3. A token can only belong to ONE narrative (choose the best fit)
4. For each narrative, suggest a creative token name and 3-5 letter symbol for a reactive token that could be minted in response
5. Rate each narrative with a "confidence" score from 1-10 based on:
   - How many tokens match (more = higher)
   - How clearly the theme is defined (clearer = higher)
   - How trendy/viral the narrative feels (hotter = higher)
6. Only return narratives you are confident about: quality over quantity

Respond with ONLY valid JSON using this exact schema:
{{
  "narratives": [
    {{
      "name": "Narrative Theme Name",
      "description": "Brief exciting description of why this narrative is trending (include an emoji)",
      "tokenName": "SuggestedTokenName",
      "symbol": "SYM",
      "confidence": 8,
      "matchingTokens": ["TOKEN1", "TOKEN2", "TOKEN3"]
    }}
  ]
}}

If no strong narratives are found (fewer than 3 tokens matching any theme), return: {{ "narratives": [] }}"""


# ── Response parsing ──

def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def _loads_lenient(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    # Fall back to the outermost object or array embedded in prose
    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        start = text.find(open_ch)
        end = text.rfind(close_ch) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                continue
    raise ValueError("no JSON document found in LLM response")


def parse_llm_response(text: str) -> List[Any]:
    """Extract the raw candidate list from an LLM reply.

    Accepts ``{"narratives": [...]}``, a bare array, or ``{"data": [...]}``,
    optionally wrapped in a markdown code fence. Anything else yields [].
    """
    if not text or not text.strip():
        return []
    try:
        parsed = _loads_lenient(_strip_code_fence(text))
    except ValueError as e:
        logger.warning("Failed to parse LLM response: %s", e)
        return []

    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in ("narratives", "data"):
            value = parsed.get(key)
            if isinstance(value, list):
                return value
    logger.warning("⚠️  LLM returned invalid format, expected a narrative array")
    return []


# ── Validation ──

def coerce_confidence(value: Any) -> int:
    """Clamp numeric confidence into 1..10; anything non-numeric becomes 5."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if isinstance(value, float) and math.isnan(value):
        return DEFAULT_CONFIDENCE
    return int(round(min(10, max(1, value))))


def _text(raw: dict, key: str) -> str:
    value = raw.get(key)
    return value.strip() if isinstance(value, str) else ""


def validate_narrative(raw: Any) -> Optional[DiscoveredNarrative]:
    if not isinstance(raw, dict):
        return None
    name = _text(raw, "name")
    description = _text(raw, "description")
    token_name = _text(raw, "tokenName")
    symbol = _text(raw, "symbol")
    matching = raw.get("matchingTokens")
    if not (name and description and token_name and symbol):
        return None
    if not isinstance(matching, list) or len(matching) < MIN_MATCHING_TOKENS:
        return None
    return DiscoveredNarrative(
        name=name,
        description=description,
        token_name=token_name,
        symbol=symbol,
        confidence=coerce_confidence(raw.get("confidence")),
        matching_tokens=[str(t) for t in matching],
    )


def validate_narratives(candidates: List[Any]) -> List[DiscoveredNarrative]:
    """Drop malformed candidates and order the rest by confidence, highest first.

    The sort is stable, so equal confidences keep discovery order.
    """
    valid = []
    for raw in candidates:
        narrative = validate_narrative(raw)
        if narrative is None:
            logger.debug("Discarding invalid narrative candidate: %.200r", raw)
            continue
        valid.append(narrative)
    dropped = len(candidates) - len(valid)
    if dropped:
        logger.info("   Discarded %d malformed narrative candidate(s)", dropped)
    valid.sort(key=lambda n: n.confidence, reverse=True)
    return valid


# ── Discovery ──

async def discover_narratives(tokens: List[TokenData], client: anthropic.AsyncAnthropic,
                              model: str, notifier=None,
                              max_retries: int = MAX_RETRIES) -> List[DiscoveredNarrative]:
    """Ask the LLM to group tokens into narratives.

    Rate-limit errors are retried with linearly growing backoff; any other
    failure, or running out of retries, ends discovery with an empty list.
    """
    if not tokens:
        return []

    user_prompt = build_user_prompt(format_tokens_for_llm(tokens))
    logger.info("🤖 Asking %s to analyze token narratives...", model)

    for attempt in range(1, max_retries + 1):
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=2048,
                temperature=0.3,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.RateLimitError as e:
            if attempt < max_retries:
                wait_seconds = attempt * RETRY_BACKOFF_SECONDS
                logger.info("   ⏳ Rate limited - retrying in %ds (attempt %d/%d)...",
                            wait_seconds, attempt, max_retries)
                await asyncio.sleep(wait_seconds)
                continue
            await _report_error(notifier, f"rate limited after {max_retries} attempts: {e}")
            return []
        except anthropic.APIError as e:
            await _report_error(notifier, str(e))
            return []

        text = "".join(
            getattr(block, "text", "") for block in response.content
            if getattr(block, "type", "text") == "text"
        )
        return validate_narratives(parse_llm_response(text))

    return []


async def _report_error(notifier, message: str):
    logger.error("LLM API error: %s", message)
    if notifier is not None:
        await notifier.send(format_discovery_error(message))
