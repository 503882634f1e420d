from contextlib import asynccontextmanager
import asyncio
import json
import logging
import os
import time
from datetime import datetime, timezone, timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
import sentry_sdk

from api.routes import router
from config import load_settings
from logging_config import setup_logging

load_dotenv()
setup_logging()
logger = logging.getLogger(__name__)

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")
STATUS_PATH = os.path.join(DATA_DIR, "pipeline_status.json")


def _load_status() -> dict:
    try:
        with open(STATUS_PATH) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError):
        return {}


def _save_status(status: dict):
    try:
        os.makedirs(DATA_DIR, exist_ok=True)
        with open(STATUS_PATH, "w") as f:
            json.dump(status, f, indent=2)
    except OSError as e:
        logger.warning("Could not write pipeline status: %s", e)


class PipelineRunner:
    """Runs the minting pipeline, never more than one run at a time."""

    def __init__(self, settings):
        self.settings = settings
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.status = _load_status()

    @property
    def interval_seconds(self) -> int:
        return int(self.settings.agent_loop_interval_hours * 3600)

    @property
    def running(self) -> bool:
        return self._lock.locked() or (self._task is not None and not self._task.done())

    def start(self) -> bool:
        """Schedule a background run. Returns False if one is already in flight."""
        if self.running:
            return False
        self._task = asyncio.create_task(self.run())
        return True

    async def run(self):
        if self._lock.locked():
            logger.info("Pipeline already running, skipping")
            return

        async with self._lock:
            from run_pipeline import run_once

            now = datetime.now(timezone.utc)
            next_run = (now + timedelta(seconds=self.interval_seconds)).isoformat()
            self.status = {**self.status, "status": "running", "started_at": now.isoformat(), "next_run": next_run}
            _save_status(self.status)

            start = time.time()
            try:
                result = await run_once(self.settings)
                duration = round(time.time() - start, 1)
                logger.info("Pipeline done in %.1fs: %s (%d minted)",
                            duration, result.outcome.value, len(result.minted))
                self.status = {
                    "status": "idle",
                    "last_run": datetime.now(timezone.utc).isoformat(),
                    "next_run": next_run,
                    "duration_seconds": duration,
                    "last_result": result.to_dict(),
                }
            except Exception as e:
                duration = round(time.time() - start, 1)
                logger.error("Pipeline error after %.1fs: %s", duration, e, exc_info=True)
                self.status = {
                    **self.status,
                    "status": "idle",
                    "last_error": str(e),
                    "duration_seconds": duration,
                }
            _save_status(self.status)


async def agent_loop(runner: PipelineRunner):
    """Autonomous agent loop: periodically runs the pipeline."""
    while True:
        await asyncio.sleep(runner.interval_seconds)
        await runner.run()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=0.1,
            environment=os.getenv("ENVIRONMENT", "production"),
        )
    runner = PipelineRunner(settings)
    app.state.settings = settings
    app.state.runner = runner

    logger.info("Meme Narrative Minter agent starting")
    task = asyncio.create_task(agent_loop(runner))
    logger.info("Agent loop started (runs every %.1f hours)", settings.agent_loop_interval_hours)

    yield

    task.cancel()
    logger.info("Agent shutting down")


app = FastAPI(
    title="Meme Narrative Minter",
    description="Detects Solana meme-token narratives and mints a reactive token for new ones",
    version="0.1.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round(time.time() - start, 3)
    logger.info("request | %s %s | %s | %.3fs", request.method, request.url.path, response.status_code, duration)
    return response


app.include_router(router, prefix="/api")


@app.get("/health")
async def health(request: Request):
    runner = request.app.state.runner
    return {
        "status": "ok",
        "service": "meme-narrative-minter",
        "running": runner.running,
        "loop_interval_hours": runner.settings.agent_loop_interval_hours,
        "last_run": runner.status.get("last_run"),
    }
