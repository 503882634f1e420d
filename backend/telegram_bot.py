"""Telegram notifications for the narrative minter.

Messages go to a single operator chat configured with TELEGRAM_BOT_TOKEN and
TELEGRAM_CHAT_ID. When either is missing a NullNotifier is used instead, so
callers never check whether Telegram is enabled.
"""
import asyncio
import html
import logging
from typing import List, Sequence

import httpx

from engine.models import DiscoveredNarrative

logger = logging.getLogger(__name__)

MAX_MESSAGE_LEN = 4000
CHUNK_PAUSE_SECONDS = 0.5


class Notifier:
    """Fire-and-forget text channel. send() never raises."""

    async def send(self, text: str) -> bool:
        raise NotImplementedError


class NullNotifier(Notifier):
    async def send(self, text: str) -> bool:
        return False


class TelegramNotifier(Notifier):
    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout

    async def send(self, text: str) -> bool:
        """Send a message via Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": "HTML", "disable_web_page_preview": True}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload)
                if resp.status_code == 200:
                    return True
                # If HTML parsing fails, retry as plain text
                if resp.status_code == 400 and "parse" in resp.text.lower():
                    payload.pop("parse_mode")
                    resp = await client.post(url, json=payload)
                    return resp.status_code == 200
                logger.warning("⚠️  Telegram send failed: %s %s", resp.status_code, resp.text)
                return False
        except Exception as e:
            logger.warning("⚠️  Telegram send error: %s", e)
            return False


def get_notifier(settings) -> Notifier:
    if settings.telegram_enabled:
        return TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
    return NullNotifier()


def escape_html(text: str) -> str:
    return html.escape(str(text), quote=False)


# ── Run log ──

def _split_escaped(line: str, budget: int) -> List[str]:
    """Escape a line, splitting it so no piece exceeds budget after escaping."""
    pieces = []
    current = ""
    for ch in line:
        escaped = escape_html(ch)
        if current and len(current) + len(escaped) > budget:
            pieces.append(current)
            current = ""
        current += escaped
    pieces.append(current)
    return pieces


def chunk_run_log(transcript: str, max_len: int = MAX_MESSAGE_LEN) -> List[str]:
    """Split a run transcript into Telegram-sized HTML messages.

    Sizes are measured after HTML escaping; lines longer than a whole
    message are split across parts.
    """
    if not transcript:
        return []
    header = "📋 <b>Run Log</b>\n\n"
    single = header + f"<pre>{escape_html(transcript)}</pre>"
    if len(single) <= max_len:
        return [single]

    # Leave room for the part header and <pre> tags
    budget = max_len - 200
    chunks = []
    current = ""
    for line in transcript.split("\n"):
        for piece in _split_escaped(line, budget):
            if current and len(current) + len(piece) + 1 > budget:
                chunks.append(current)
                current = piece
            else:
                current = f"{current}\n{piece}" if current else piece
    if current:
        chunks.append(current)
    return [
        f"📋 <b>Run Log (part {i})</b>\n\n<pre>{chunk}</pre>"
        for i, chunk in enumerate(chunks, 1)
    ]


async def send_run_log(notifier: Notifier, transcript: str):
    chunks = chunk_run_log(transcript)
    for chunk in chunks:
        await notifier.send(chunk)
        if len(chunks) > 1:
            await asyncio.sleep(CHUNK_PAUSE_SECONDS)


# ── Message formatters ──

def confidence_bar(confidence: int) -> str:
    filled = max(0, min(10, confidence))
    return "█" * filled + "░" * (10 - filled)


def format_narrative_summary(narratives: Sequence[DiscoveredNarrative], new_count: int, skipped_count: int) -> str:
    plural = "" if len(narratives) == 1 else "s"
    lines = [
        "🚨 <b>Meme Narrative Detector: Analysis Complete</b>",
        "",
        f"📊 Found <b>{len(narratives)}</b> narrative{plural} | ✨ {new_count} new | ⏭️ {skipped_count} skipped",
        "",
    ]
    for n in narratives:
        lines.append(f"📌 <b>{escape_html(n.name)}</b>  [{confidence_bar(n.confidence)}] {n.confidence}/10")
        lines.append(f"   {escape_html(n.description)}")
        lines.append(f"   Tokens: <code>{escape_html(', '.join(n.matching_tokens))}</code>")
        lines.append("")
    return "\n".join(lines)


def format_token_minted(narrative: DiscoveredNarrative, mint_address: str, tx_signature: str,
                        cluster: str = "devnet") -> str:
    cluster_param = "" if cluster == "mainnet-beta" else f"?cluster={cluster}"
    return "\n".join([
        f"✅ <b>Token Minted: {escape_html(narrative.name)}</b>",
        "",
        f"🪙 <b>{escape_html(narrative.token_name)}</b> (${escape_html(narrative.symbol)})",
        f"📊 Confidence: {narrative.confidence}/10",
        f"💬 {escape_html(narrative.description)}",
        "",
        f"🔗 Mint: <code>{mint_address}</code>",
        f'🔗 <a href="https://solscan.io/tx/{tx_signature}{cluster_param}">View on Solscan</a>',
    ])


def format_mint_failed(narrative: DiscoveredNarrative, error: str) -> str:
    return (
        f"❌ <b>Mint Failed: {escape_html(narrative.name)}</b>\n"
        f"${escape_html(narrative.symbol)}\n"
        f"<code>{escape_html(error[:500])}</code>"
    )


def format_daily_cap_reached(minted_last_24h: int, per_day_cap: int, eligible_count: int) -> str:
    return (
        f"🛑 <b>Daily Mint Cap Reached</b>\n\n"
        f"{minted_last_24h} token(s) minted in the last 24h (cap {per_day_cap}).\n"
        f"{eligible_count} eligible narrative(s) left unminted this run."
    )


def format_insufficient_funds(balance_sol: float, required_sol: float, wallet: str) -> str:
    return (
        f"💸 <b>Insufficient Wallet Balance</b>\n\n"
        f"Balance: {balance_sol:.4f} SOL (need {required_sol:.4f} SOL)\n"
        f"Wallet: <code>{escape_html(wallet)}</code>"
    )


def format_discovery_error(error: str) -> str:
    return f"🚨 <b>LLM Narrative Discovery Error</b>\n<code>{escape_html(error[:500])}</code>"


def format_collector_warning(what: str, error: str) -> str:
    return f"⚠️ <b>DexScreener Error</b>\n{escape_html(what)} failed: <code>{escape_html(error[:500])}</code>"


def format_run_stopped(title: str, detail: str) -> str:
    return f"ℹ️ <b>{escape_html(title)}</b>\n{escape_html(detail)}"


def format_run_complete(minted_count: int, failed_count: int) -> str:
    return f"🏁 <b>Run Complete</b>\n✅ {minted_count} minted | ❌ {failed_count} failed"
