"""Persistence for the mint history.

Uses PostgreSQL when DATABASE_URL is set, Upstash Redis (REST) when its
credentials are set, and falls back to a local JSON file.

Every backend follows the same contract: load() never raises and returns an
empty history when the record is missing or unreadable; save() is
best-effort and only logs failures.
"""
import json
import logging
import os
from typing import Any

import httpx

from engine.models import HistoryData

logger = logging.getLogger(__name__)

REDIS_KEY = "narrative_history"
HTTP_TIMEOUT = 10


class HistoryStore:
    backend = "base"

    async def load(self) -> HistoryData:
        try:
            raw = await self._read()
            if raw is None:
                return HistoryData()
            return HistoryData.from_dict(raw)
        except Exception as e:
            logger.warning("⚠️  Could not load history from %s, starting fresh: %s", self.backend, e)
            return HistoryData()

    async def save(self, history: HistoryData):
        try:
            await self._write(history.to_dict())
        except Exception as e:
            logger.error("Could not save history to %s: %s", self.backend, e)

    async def _read(self) -> Any:
        raise NotImplementedError

    async def _write(self, payload: dict):
        raise NotImplementedError


# ── Local filesystem ──

class JsonFileHistoryStore(HistoryStore):
    backend = "file"

    def __init__(self, path: str):
        self.path = path

    async def _read(self) -> Any:
        if not os.path.exists(self.path):
            return None
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    async def _write(self, payload: dict):
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)


# ── Upstash Redis (REST API) ──

class UpstashHistoryStore(HistoryStore):
    backend = "upstash"

    def __init__(self, url: str, token: str, key: str = REDIS_KEY):
        self.url = url.rstrip("/")
        self.token = token
        self.key = key

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}

    async def _read(self) -> Any:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            resp = await client.get(f"{self.url}/get/{self.key}", headers=self._headers())
            resp.raise_for_status()
            result = resp.json().get("result")
        if not result:
            return None
        return json.loads(result)

    async def _write(self, payload: dict):
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            resp = await client.post(
                self.url,
                json=["SET", self.key, json.dumps(payload)],
                headers=self._headers(),
            )
            resp.raise_for_status()


# ── PostgreSQL ──

class PostgresHistoryStore(HistoryStore):
    backend = "postgres"

    def __init__(self, database_url: str, key: str = REDIS_KEY):
        self.database_url = database_url
        self.key = key
        self._initialized = False

    def _get_conn(self):
        import psycopg2
        return psycopg2.connect(self.database_url)

    def _ensure_table(self, conn):
        if self._initialized:
            return
        with conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS mint_history (
                    key TEXT PRIMARY KEY,
                    value JSONB NOT NULL,
                    updated_at TIMESTAMPTZ DEFAULT NOW()
                );
            """)
        conn.commit()
        self._initialized = True

    async def _read(self) -> Any:
        conn = self._get_conn()
        try:
            self._ensure_table(conn)
            with conn.cursor() as cur:
                cur.execute("SELECT value FROM mint_history WHERE key = %s", (self.key,))
                row = cur.fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        value = row[0]
        # psycopg2 decodes JSONB to Python objects, but tolerate text columns
        return json.loads(value) if isinstance(value, str) else value

    async def _write(self, payload: dict):
        conn = self._get_conn()
        try:
            self._ensure_table(conn)
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO mint_history (key, value, updated_at)
                    VALUES (%s, %s::jsonb, NOW())
                    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
                """, (self.key, json.dumps(payload)))
            conn.commit()
        finally:
            conn.close()


def get_history_store(settings) -> HistoryStore:
    """Pick the storage backend from the configured credentials."""
    if settings.postgres_enabled:
        store = PostgresHistoryStore(settings.database_url)
    elif settings.upstash_enabled:
        store = UpstashHistoryStore(settings.upstash_url, settings.upstash_token)
    else:
        store = JsonFileHistoryStore(settings.history_path)
    logger.info("History backend: %s", store.backend)
    return store
