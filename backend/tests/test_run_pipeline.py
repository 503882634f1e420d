"""Tests for the CLI entry point's exit codes"""
from unittest.mock import AsyncMock, patch

import pytest

import run_pipeline
from engine.pipeline import RunOutcome, RunResult


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.setenv("PRIVATE_KEY", "5secret")
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("MAX_TOKENS_PER_RUN", raising=False)
    monkeypatch.delenv("MAX_TOKENS_PER_DAY", raising=False)
    with patch("run_pipeline.load_dotenv"):
        yield monkeypatch


class TestMain:
    @pytest.mark.asyncio
    async def test_missing_api_key_exits_1(self, env):
        env.delenv("ANTHROPIC_API_KEY")
        with patch("run_pipeline.run_once", new=AsyncMock()) as run_once:
            assert await run_pipeline.main() == 1
        run_once.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_numeric_setting_exits_1(self, env):
        env.setenv("MAX_TOKENS_PER_RUN", "two")
        assert await run_pipeline.main() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("outcome", list(RunOutcome))
    async def test_graceful_outcomes_exit_0(self, env, outcome):
        result = RunResult(outcome=outcome)
        with patch("run_pipeline.run_once", new=AsyncMock(return_value=result)):
            assert await run_pipeline.main() == 0

    @pytest.mark.asyncio
    async def test_fatal_error_exits_1(self, env):
        with patch("run_pipeline.run_once", new=AsyncMock(side_effect=RuntimeError("rpc down"))), \
                patch("run_pipeline.sentry_sdk.capture_exception") as capture:
            assert await run_pipeline.main() == 1
        capture.assert_called_once()

    @pytest.mark.asyncio
    async def test_bad_private_key_exits_1(self, env):
        env.setenv("PRIVATE_KEY", "not-a-key")
        assert await run_pipeline.main() == 1
