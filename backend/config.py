"""Runtime settings, built once from the environment at startup."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

MAX_TOKENS_PER_RUN = 2
MAX_TOKENS_PER_DAY = 10
MIN_CONFIDENCE = 7
MIN_BALANCE_SOL = 0.05

DEFAULT_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_HISTORY_PATH = os.path.join(os.path.dirname(__file__), "data", "history.json")


class ConfigError(Exception):
    """Raised when a required credential is missing or a value is malformed."""


@dataclass(frozen=True)
class Settings:
    anthropic_api_key: str
    private_key: str
    anthropic_model: str = DEFAULT_MODEL
    solana_rpc_url: str = DEFAULT_RPC_URL
    solana_cluster: str = "devnet"

    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    upstash_url: str = ""
    upstash_token: str = ""
    database_url: str = ""
    history_path: str = DEFAULT_HISTORY_PATH

    max_tokens_per_run: int = MAX_TOKENS_PER_RUN
    max_tokens_per_day: int = MAX_TOKENS_PER_DAY
    min_confidence: int = MIN_CONFIDENCE
    min_balance_sol: float = MIN_BALANCE_SOL

    agent_loop_interval_hours: float = 6
    run_trigger_secret: str = ""
    sentry_dsn: str = ""

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def upstash_enabled(self) -> bool:
        return bool(self.upstash_url and self.upstash_token)

    @property
    def postgres_enabled(self) -> bool:
        return bool(self.database_url)


def _secret(env: Mapping[str, str], name: str) -> str:
    # Strip ALL whitespace (hosting dashboards may inject newlines in long secrets)
    return "".join(env.get(name, "").split())


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from environment variables.

    Raises ConfigError when ANTHROPIC_API_KEY or PRIVATE_KEY is missing, or
    when a numeric setting cannot be parsed.
    """
    if env is None:
        env = os.environ

    api_key = _secret(env, "ANTHROPIC_API_KEY")
    if not api_key:
        raise ConfigError("ANTHROPIC_API_KEY not set - cannot discover narratives")

    private_key = _secret(env, "PRIVATE_KEY")
    if not private_key:
        raise ConfigError("PRIVATE_KEY not set - run generate_wallet.py to create a devnet wallet")

    settings = Settings(
        anthropic_api_key=api_key,
        private_key=private_key,
        anthropic_model=env.get("ANTHROPIC_MODEL", "").strip() or DEFAULT_MODEL,
        solana_rpc_url=env.get("SOLANA_RPC_URL", "").strip() or DEFAULT_RPC_URL,
        solana_cluster=env.get("SOLANA_CLUSTER", "").strip() or "devnet",
        telegram_bot_token=_secret(env, "TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=env.get("TELEGRAM_CHAT_ID", "").strip(),
        upstash_url=env.get("UPSTASH_REDIS_REST_URL", "").strip().rstrip("/"),
        upstash_token=_secret(env, "UPSTASH_REDIS_REST_TOKEN"),
        database_url=env.get("DATABASE_URL", "").strip(),
        history_path=env.get("HISTORY_PATH", "").strip() or DEFAULT_HISTORY_PATH,
        max_tokens_per_run=_int(env, "MAX_TOKENS_PER_RUN", MAX_TOKENS_PER_RUN),
        max_tokens_per_day=_int(env, "MAX_TOKENS_PER_DAY", MAX_TOKENS_PER_DAY),
        min_confidence=_int(env, "MIN_CONFIDENCE", MIN_CONFIDENCE),
        min_balance_sol=_float(env, "MIN_BALANCE_SOL", MIN_BALANCE_SOL),
        agent_loop_interval_hours=_float(env, "AGENT_LOOP_INTERVAL_HOURS", 6),
        run_trigger_secret=_secret(env, "RUN_TRIGGER_SECRET"),
        sentry_dsn=env.get("SENTRY_DSN", "").strip(),
    )
    if settings.max_tokens_per_run < 1:
        raise ConfigError("MAX_TOKENS_PER_RUN must be at least 1")
    if settings.max_tokens_per_day < 0:
        raise ConfigError("MAX_TOKENS_PER_DAY must not be negative")
    logger.debug(
        "Settings loaded (telegram=%s, upstash=%s, postgres=%s)",
        settings.telegram_enabled, settings.upstash_enabled, settings.postgres_enabled,
    )
    return settings
