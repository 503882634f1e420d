"""Main pipeline: fetch tokens → discover narratives → classify → rate-limit → mint → persist"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from engine.history_store import HistoryStore
from engine.minter import MintError
from engine.mint_policy import classify, count_recent_mints, select_for_minting
from engine.models import DiscoveredNarrative, HistoryEntry, TokenData
from logging_config import RunLog, RunLogHandler
from telegram_bot import (
    Notifier, format_daily_cap_reached, format_insufficient_funds, format_mint_failed,
    format_narrative_summary, format_run_complete, format_run_stopped, format_token_minted,
    send_run_log,
)

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[], Awaitable[List[TokenData]]]
NarrativeDiscoverer = Callable[[List[TokenData]], Awaitable[List[DiscoveredNarrative]]]


class RunOutcome(str, Enum):
    NO_TOKENS = "no_tokens"
    NO_NARRATIVES = "no_narratives"
    NO_ELIGIBLE = "no_eligible"
    DAILY_CAP_REACHED = "daily_cap_reached"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COMPLETED = "completed"


@dataclass
class RunResult:
    outcome: RunOutcome
    started_at: str = ""
    tokens_scanned: int = 0
    narratives: List[DiscoveredNarrative] = field(default_factory=list)
    skipped: List[Tuple[DiscoveredNarrative, str]] = field(default_factory=list)
    selected: List[DiscoveredNarrative] = field(default_factory=list)
    minted: List[HistoryEntry] = field(default_factory=list)
    failed: List[Tuple[DiscoveredNarrative, str]] = field(default_factory=list)
    transcript: str = ""

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "started_at": self.started_at,
            "tokens_scanned": self.tokens_scanned,
            "narratives_found": len(self.narratives),
            "skipped": [{"narrative": n.name, "reason": r} for n, r in self.skipped],
            "selected": [n.name for n in self.selected],
            "minted": [e.to_dict() for e in self.minted],
            "failed": [{"narrative": n.name, "error": err} for n, err in self.failed],
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MintPipeline:
    """One scheduled run of the narrative minter.

    Every external call is awaited in sequence. Decisions use the history
    snapshot loaded at the start of the run; each successful mint is appended
    and saved immediately so a later failure never loses it.
    """

    def __init__(self, settings, store: HistoryStore, notifier: Notifier, minter,
                 fetch_tokens: TokenFetcher, discover: NarrativeDiscoverer,
                 clock: Callable[[], datetime] = _utcnow):
        self.settings = settings
        self.store = store
        self.notifier = notifier
        self.minter = minter
        self.fetch_tokens = fetch_tokens
        self.discover = discover
        self.clock = clock

    async def run(self) -> RunResult:
        run_log = RunLog()
        handler = RunLogHandler(run_log, task=asyncio.current_task())
        root = logging.getLogger()
        root.addHandler(handler)
        result: Optional[RunResult] = None
        try:
            result = await self._execute()
        finally:
            root.removeHandler(handler)
            transcript = run_log.flush()
            if result is not None:
                result.transcript = transcript
            await send_run_log(self.notifier, transcript)
        return result

    async def _stop(self, result: RunResult, outcome: RunOutcome, title: str, detail: str) -> RunResult:
        logger.info("%s: %s", title, detail)
        await self.notifier.send(format_run_stopped(title, detail))
        result.outcome = outcome
        return result

    async def _execute(self) -> RunResult:
        settings = self.settings
        result = RunResult(outcome=RunOutcome.COMPLETED, started_at=self.clock().isoformat())
        logger.info("🔍 Meme narrative minter starting run at %s", result.started_at)

        history = await self.store.load()
        logger.info("📚 Loaded %d past mint(s) from history", len(history.entries))

        # Phase 1: market data
        logger.info("[1/5] Fetching tokens from DexScreener")
        tokens = await self.fetch_tokens()
        result.tokens_scanned = len(tokens)
        if not tokens:
            return await self._stop(result, RunOutcome.NO_TOKENS, "No Tokens Fetched",
                                    "DexScreener returned no tokens, nothing to analyze.")
        logger.info("   Collected %d unique tokens", len(tokens))

        # Phase 2: narrative discovery (validated and sorted by confidence)
        logger.info("[2/5] Discovering narratives")
        narratives = await self.discover(tokens)
        result.narratives = list(narratives)
        if not narratives:
            return await self._stop(result, RunOutcome.NO_NARRATIVES, "No Narratives Found",
                                    f"No strong narratives among {len(tokens)} tokens.")

        # Phase 3: duplicates and confidence
        logger.info("[3/5] Classifying %d narrative(s)", len(narratives))
        classification = classify(narratives, history, settings.min_confidence)
        result.skipped = classification.skipped
        for n in classification.new:
            logger.info("   ✨ NEW: %s ($%s) confidence %d/10", n.name, n.symbol, n.confidence)
        for n, reason in classification.skipped:
            logger.info("   ⏭️  SKIP: %s (%d/10) - %s", n.name, n.confidence, reason)
        await self.notifier.send(format_narrative_summary(
            narratives, len(classification.new), len(classification.skipped)))

        if not classification.new:
            duplicates = len(classification.duplicates)
            low = len(classification.skipped) - duplicates
            return await self._stop(
                result, RunOutcome.NO_ELIGIBLE, "No New Narratives",
                f"{duplicates} already minted, {low} below confidence {settings.min_confidence}.")

        # Phase 4: rate limits
        logger.info("[4/5] Applying mint limits")
        now = self.clock()
        recent = count_recent_mints(history, now)
        selected = select_for_minting(classification.new, history, now,
                                      settings.max_tokens_per_run, settings.max_tokens_per_day)
        result.selected = selected
        logger.info("   %d minted in last 24h (cap %d), per-run cap %d, %d eligible -> %d selected",
                    recent, settings.max_tokens_per_day, settings.max_tokens_per_run,
                    len(classification.new), len(selected))
        if not selected:
            logger.info("🛑 Daily mint cap reached: %d/%d in the last 24h", recent, settings.max_tokens_per_day)
            await self.notifier.send(format_daily_cap_reached(
                recent, settings.max_tokens_per_day, len(classification.new)))
            result.outcome = RunOutcome.DAILY_CAP_REACHED
            return result

        balance = await self.minter.get_balance_sol()
        logger.info("💰 Wallet %s balance: %.4f SOL", self.minter.wallet_address, balance)
        if balance < settings.min_balance_sol:
            logger.info("💸 Insufficient funds: %.4f SOL < %.4f SOL required",
                        balance, settings.min_balance_sol)
            await self.notifier.send(format_insufficient_funds(
                balance, settings.min_balance_sol, self.minter.wallet_address))
            result.outcome = RunOutcome.INSUFFICIENT_FUNDS
            return result

        # Phase 5: mint, persisting after every success
        logger.info("[5/5] Minting %d token(s)", len(selected))
        for narrative in selected:
            try:
                minted = await self.minter.mint(narrative.token_name, narrative.symbol, narrative.description)
            except MintError as e:
                logger.error("Mint failed for %s ($%s): %s", narrative.name, narrative.symbol, e)
                result.failed.append((narrative, str(e)))
                await self.notifier.send(format_mint_failed(narrative, str(e)))
                continue

            entry = HistoryEntry.from_mint(narrative, minted.mint_address, minted.signature,
                                           self.clock().isoformat())
            history.append(entry)
            await self.store.save(history)
            result.minted.append(entry)
            logger.info("   ✅ Minted %s ($%s): %s", narrative.token_name, narrative.symbol, minted.mint_address)
            await self.notifier.send(format_token_minted(
                narrative, minted.mint_address, minted.signature, settings.solana_cluster))

        logger.info("🏁 Run complete: %d minted, %d failed", len(result.minted), len(result.failed))
        await self.notifier.send(format_run_complete(len(result.minted), len(result.failed)))
        return result
