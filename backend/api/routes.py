import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request

from engine.history_store import get_history_store
from engine.mint_policy import count_recent_mints, daily_remaining

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/history")
async def get_history(request: Request, limit: int = 50):
    """Past mints, newest first, with the current rolling 24h quota."""
    settings = request.app.state.settings
    history = await get_history_store(settings).load()
    now = datetime.now(timezone.utc)
    recent = count_recent_mints(history, now)
    entries = [e.to_dict() for e in reversed(history.entries)]
    return {
        "entries": entries[:max(0, limit)],
        "total": len(history.entries),
        "minted_last_24h": recent,
        "daily_cap": settings.max_tokens_per_day,
        "daily_remaining": daily_remaining(history, now, settings.max_tokens_per_day),
    }


@router.get("/status")
async def get_status(request: Request):
    runner = request.app.state.runner
    return {**runner.status, "running": runner.running}


@router.post("/run", status_code=202)
async def trigger_run(request: Request, x_run_secret: Optional[str] = Header(default=None)):
    """Start a run in the background. Requires the X-Run-Secret header."""
    settings = request.app.state.settings
    runner = request.app.state.runner
    if not settings.run_trigger_secret:
        raise HTTPException(status_code=403, detail="Manual runs are disabled (RUN_TRIGGER_SECRET not set)")
    if not x_run_secret or not secrets.compare_digest(x_run_secret, settings.run_trigger_secret):
        raise HTTPException(status_code=401, detail="Invalid run secret")
    if not runner.start():
        raise HTTPException(status_code=409, detail="A run is already in progress")
    logger.info("Manual run triggered")
    return {"status": "started"}
