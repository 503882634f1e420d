"""Tests for the HTTP service: health, history, status and manual runs"""
import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

import main
from config import Settings


class FakeRunner:
    def __init__(self, settings, start_ok=True):
        self.settings = settings
        self.status = {"status": "idle", "last_run": "2026-03-01T06:00:00+00:00"}
        self.running = False
        self.start_ok = start_ok
        self.starts = 0

    def start(self):
        self.starts += 1
        return self.start_ok


def _write_history(path, hours_ago):
    now = datetime.now(timezone.utc)
    entries = [{
        "narrative": f"Narrative {i}",
        "tokenName": f"Token{i}",
        "symbol": f"T{i}",
        "mintAddress": f"Mint{i}",
        "txSignature": f"Sig{i}",
        "matchingTokens": ["A", "B", "C"],
        "confidence": 8,
        "createdAt": (now - timedelta(hours=h)).isoformat(),
    } for i, h in enumerate(hours_ago)]
    path.write_text(json.dumps({"entries": entries}))


@pytest.fixture
def client_factory(tmp_path):
    def make(secret="", start_ok=True):
        settings = Settings(
            anthropic_api_key="k", private_key="p",
            history_path=str(tmp_path / "history.json"),
            run_trigger_secret=secret,
        )
        runner = FakeRunner(settings, start_ok=start_ok)
        main.app.state.settings = settings
        main.app.state.runner = runner
        return TestClient(main.app), runner
    return make


class TestHealth:
    def test_health(self, client_factory):
        client, _ = client_factory()
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["running"] is False
        assert body["last_run"] == "2026-03-01T06:00:00+00:00"


class TestHistory:
    def test_empty_history(self, client_factory):
        client, _ = client_factory()
        body = client.get("/api/history").json()
        assert body["entries"] == []
        assert body["daily_remaining"] == 10

    def test_newest_first_with_quota(self, client_factory, tmp_path):
        _write_history(tmp_path / "history.json", hours_ago=[48, 5, 1])
        client, _ = client_factory()
        body = client.get("/api/history", params={"limit": 2}).json()
        assert [e["symbol"] for e in body["entries"]] == ["T2", "T1"]
        assert body["total"] == 3
        assert body["minted_last_24h"] == 2
        assert body["daily_remaining"] == 8


class TestStatus:
    def test_status(self, client_factory):
        client, _ = client_factory()
        body = client.get("/api/status").json()
        assert body["status"] == "idle"
        assert body["running"] is False


class TestTriggerRun:
    def test_disabled_without_secret(self, client_factory):
        client, runner = client_factory(secret="")
        assert client.post("/api/run", headers={"X-Run-Secret": "x"}).status_code == 403
        assert runner.starts == 0

    def test_wrong_secret(self, client_factory):
        client, runner = client_factory(secret="s3cret")
        assert client.post("/api/run", headers={"X-Run-Secret": "nope"}).status_code == 401
        assert client.post("/api/run").status_code == 401
        assert runner.starts == 0

    def test_starts_run(self, client_factory):
        client, runner = client_factory(secret="s3cret")
        resp = client.post("/api/run", headers={"X-Run-Secret": "s3cret"})
        assert resp.status_code == 202
        assert resp.json() == {"status": "started"}
        assert runner.starts == 1

    def test_conflict_while_running(self, client_factory):
        client, _ = client_factory(secret="s3cret", start_ok=False)
        assert client.post("/api/run", headers={"X-Run-Secret": "s3cret"}).status_code == 409
