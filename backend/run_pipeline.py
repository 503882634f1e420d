"""CLI runner for one narrative minting run.

Exit code 0 for every graceful outcome (including nothing to mint, daily cap
reached and insufficient funds), 1 for configuration errors or a fatal error.
"""
import asyncio
import functools
import logging
import os
import sys

# Add parent dir to path
sys.path.insert(0, os.path.dirname(__file__))

import anthropic
import sentry_sdk
from dotenv import load_dotenv

from collectors.dexscreener_collector import collect_tokens
from config import ConfigError, load_settings
from engine.history_store import get_history_store
from engine.minter import SolanaTokenMinter
from engine.narrative_engine import discover_narratives
from engine.pipeline import MintPipeline, RunResult
from logging_config import setup_logging
from telegram_bot import get_notifier

logger = logging.getLogger(__name__)


def init_sentry(settings):
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=0.1,
            environment=os.getenv("ENVIRONMENT", "production"),
        )


async def run_once(settings) -> RunResult:
    """Wire the real collaborators together and execute a single run."""
    notifier = get_notifier(settings)
    store = get_history_store(settings)
    llm = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)

    async with SolanaTokenMinter.from_settings(settings) as minter:
        pipeline = MintPipeline(
            settings,
            store=store,
            notifier=notifier,
            minter=minter,
            fetch_tokens=functools.partial(collect_tokens, notifier),
            discover=functools.partial(
                discover_narratives, client=llm, model=settings.anthropic_model, notifier=notifier),
        )
        return await pipeline.run()


async def main() -> int:
    load_dotenv()
    setup_logging()
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1
    init_sentry(settings)

    logger.info("Meme Narrative Minter - Running Pipeline")
    logger.info("=" * 50)
    try:
        result = await run_once(settings)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1
    except Exception as e:
        logger.error("Fatal error: %s", e, exc_info=True)
        sentry_sdk.capture_exception(e)
        return 1

    logger.info("=" * 50)
    logger.info("Outcome: %s", result.outcome.value)
    logger.info("Tokens scanned: %d, narratives: %d, minted: %d, failed: %d",
                result.tokens_scanned, len(result.narratives), len(result.minted), len(result.failed))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
