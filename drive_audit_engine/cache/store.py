"""
Cache backends — string key/value stores with per-key TTL.

  MemoryBackend  in-process dict, used as the hot tier when no Redis is configured
  RedisBackend   redis.asyncio hot tier shared between workers
  SQLiteBackend  durable tier; keeps every write as a history row
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

import redis.asyncio as redis

logger = logging.getLogger("drive_audit_engine.cache")


class CacheBackend(ABC):
    """Async string store. Implementations may raise; FileCache absorbs failures."""

    name: str = "backend"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int):
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str):
        raise NotImplementedError

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def close(self):
        return None


# ─── In-process ─────────────────────────────────────────────────────────────

class MemoryBackend(CacheBackend):
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._store: dict[str, tuple[str, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        item = self._store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int):
        self._store[key] = (value, self._clock() + ttl)

    async def delete(self, key: str):
        self._store.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._store if k.startswith(prefix)]
        for k in doomed:
            del self._store[k]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._store)


# ─── Redis ──────────────────────────────────────────────────────────────────

class RedisBackend(CacheBackend):
    """Hot tier on Redis using SET EX for expiry."""

    name = "redis"

    def __init__(self, url: str, client: Optional[redis.Redis] = None):
        self.url = url
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: int):
        await self._client.set(key, value, ex=max(int(ttl), 1))

    async def delete(self, key: str):
        await self._client.delete(key)

    async def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        async for key in self._client.scan_iter(match=f"{prefix}*", count=500):
            deleted += await self._client.delete(key)
        return deleted

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self):
        await self._client.aclose()


# ─── SQLite ─────────────────────────────────────────────────────────────────

class SQLiteBackend(CacheBackend):
    """
    Durable tier backed by SQLite.
    Features:
      - Every write is a new row, so earlier versions remain as history
      - Reads return the newest unexpired row for a key
      - Connection-per-call, run in a worker thread to keep the loop free
    """

    name = "sqlite"

    def __init__(self, db_path: str, clock: Callable[[], float] = time.time):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT NOT NULL,
                    data TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    expires_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_cache_key_time
                ON cache_entries(key, timestamp)
            """)
            conn.commit()

    # Synchronous primitives

    def _get_sync(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT data FROM cache_entries
                WHERE key = ? AND expires_at > ?
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
                """,
                (key, self._clock()),
            ).fetchone()
        return row[0] if row else None

    def _set_sync(self, key: str, value: str, ttl: int):
        now = self._clock()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO cache_entries (key, data, timestamp, expires_at) VALUES (?, ?, ?, ?)",
                (key, value, now, now + ttl),
            )
            conn.commit()

    def _delete_sync(self, key: str):
        with self._connect() as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()

    def _delete_prefix_sync(self, prefix: str) -> int:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM cache_entries WHERE key LIKE ? ESCAPE '\\'",
                (f"{escaped}%",),
            ).rowcount
            conn.commit()
        return deleted

    def history(self, key: str, limit: int = 10) -> list[dict]:
        """All stored versions of a key, newest first, expired ones included."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT data, timestamp, expires_at FROM cache_entries
                WHERE key = ? ORDER BY timestamp DESC, id DESC LIMIT ?
                """,
                (key, limit),
            ).fetchall()
        return [{"data": r[0], "timestamp": r[1], "expires_at": r[2]} for r in rows]

    def clear_expired(self) -> int:
        """Remove all expired cache rows."""
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?",
                (self._clock(),),
            ).rowcount
            conn.commit()
        if deleted:
            logger.info(f"Cleared {deleted} expired cache entries.")
        return deleted

    # Async interface

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str, ttl: int):
        await asyncio.to_thread(self._set_sync, key, value, ttl)

    async def delete(self, key: str):
        await asyncio.to_thread(self._delete_sync, key)

    async def delete_prefix(self, prefix: str) -> int:
        return await asyncio.to_thread(self._delete_prefix_sync, prefix)

    async def ping(self) -> bool:
        def _ping():
            with self._connect() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        return await asyncio.to_thread(_ping)
