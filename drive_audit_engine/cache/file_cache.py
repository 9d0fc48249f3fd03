"""
FileCache — two-tier cache for file metadata, analysis results and user stats.

Entries carry the freshness token (the file's modifiedTime) they were derived
from. An entry is stale when the token no longer matches the live file, or,
failing that, when its TTL has elapsed. Token mismatch always wins.

Backend failures never reach the caller: a failed read is a miss and a
failed write is dropped.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional

from ..config import CacheConfig
from ..models import AnalysisResult, AnalysisType, CacheEntry, FileRecord
from .store import CacheBackend, MemoryBackend, RedisBackend, SQLiteBackend

logger = logging.getLogger("drive_audit_engine.cache")


def analysis_id(file_id: str, scope: str, types: Iterable[AnalysisType]) -> str:
    """Stable 16-hex id for (file, scope, analysis type set)."""
    type_names = sorted({AnalysisType(t).value for t in types})
    raw = f"{file_id}:{scope}:{','.join(type_names)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class FileCache:
    """Hot tier first, durable tier second; durable hits are promoted."""

    def __init__(
        self,
        hot: Optional[CacheBackend] = None,
        durable: Optional[CacheBackend] = None,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig()
        self.hot = hot if hot is not None else MemoryBackend(clock=clock)
        self.durable = durable
        self._clock = clock
        self._stats = {
            "hits": 0, "misses": 0, "writes": 0, "promotions": 0, "discarded": 0, "backend_errors": 0,
        }

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def tiers(self) -> list[CacheBackend]:
        return [t for t in (self.hot, self.durable) if t is not None]

    # ─── Keys ──────────────────────────────────────────────────────────────

    def metadata_key(self, file_id: str, scope: str) -> str:
        return f"{self.config.key_prefix}:file:{file_id}:{scope}"

    def analysis_key(self, file_id: str, scope: str, types: Iterable[AnalysisType]) -> str:
        return f"{self.config.key_prefix}:analysis:{file_id}:{analysis_id(file_id, scope, types)}"

    def user_stats_key(self, user_email: str) -> str:
        return f"{self.config.key_prefix}:user_stats:{user_email}"

    # ─── Staleness ─────────────────────────────────────────────────────────

    def is_stale(self, entry: Optional[CacheEntry], current_token: Optional[str] = None) -> bool:
        if entry is None:
            return True
        if current_token is not None and entry.freshness_token != current_token:
            return True
        return self._clock() - entry.written_at > entry.ttl

    # ─── Metadata ──────────────────────────────────────────────────────────

    async def get_metadata(self, file_id: str, scope: str) -> Optional[CacheEntry]:
        return await self._read(self.metadata_key(file_id, scope))

    async def set_metadata(self, file_id: str, scope: str, record: FileRecord):
        entry = CacheEntry(
            value=record.to_dict(),
            freshness_token=record.modified_time,
            written_at=self._clock(),
            ttl=self.config.metadata_ttl,
        )
        await self._write(self.metadata_key(file_id, scope), entry)

    async def get_metadata_record(self, file_id: str, scope: str) -> Optional[CacheEntry]:
        """Metadata entry with its value decoded to a FileRecord, or None."""
        key = self.metadata_key(file_id, scope)
        return await self._decoded(key, await self._read(key), FileRecord.from_dict)

    # ─── Analysis ──────────────────────────────────────────────────────────

    async def get_analysis(
        self, file_id: str, scope: str, types: Iterable[AnalysisType]
    ) -> Optional[CacheEntry]:
        return await self._read(self.analysis_key(file_id, scope, types))

    async def set_analysis(
        self,
        file_id: str,
        scope: str,
        types: Iterable[AnalysisType],
        result: AnalysisResult,
        freshness_token: Optional[str],
    ):
        entry = CacheEntry(
            value=result.to_dict(),
            freshness_token=freshness_token,
            written_at=self._clock(),
            ttl=self.config.analysis_ttl,
        )
        await self._write(self.analysis_key(file_id, scope, types), entry)

    async def get_analysis_result(
        self, file_id: str, scope: str, types: Iterable[AnalysisType]
    ) -> Optional[CacheEntry]:
        """Analysis entry with its value decoded to an AnalysisResult, or None."""
        key = self.analysis_key(file_id, scope, types)
        return await self._decoded(key, await self._read(key), AnalysisResult.from_dict)

    # ─── User stats ────────────────────────────────────────────────────────

    async def get_user_stats(self, user_email: str) -> Optional[dict]:
        entry = await self._read(self.user_stats_key(user_email))
        if entry is None or self.is_stale(entry):
            return None
        return entry.value

    async def set_user_stats(self, user_email: str, stats: dict):
        entry = CacheEntry(value=stats, written_at=self._clock(), ttl=self.config.user_stats_ttl)
        await self._write(self.user_stats_key(user_email), entry)

    # ─── Maintenance ───────────────────────────────────────────────────────

    async def clear_file(self, file_id: str, scope: Optional[str] = None) -> int:
        """Drop metadata and every analysis entry for a file."""
        if scope is not None:
            meta_prefix = self.metadata_key(file_id, scope)
        else:
            meta_prefix = f"{self.config.key_prefix}:file:{file_id}:"
        analysis_prefix = f"{self.config.key_prefix}:analysis:{file_id}:"

        removed = 0
        for tier in self.tiers:
            for prefix in (meta_prefix, analysis_prefix):
                try:
                    removed += await tier.delete_prefix(prefix)
                except Exception as e:
                    self._backend_failed(tier, "delete", prefix, e)
        logger.info(f"Cleared {removed} cache entries for file {file_id}")
        return removed

    async def health_check(self) -> dict:
        report: dict[str, Any] = {"enabled": self.enabled}
        healthy = True
        for label, tier in (("hot", self.hot), ("durable", self.durable)):
            if tier is None:
                continue
            try:
                ok = await tier.ping()
                report[label] = {"backend": tier.name, "healthy": ok}
            except Exception as e:
                ok = False
                report[label] = {"backend": tier.name, "healthy": False, "error": str(e)}
            healthy = healthy and ok
        report["healthy"] = healthy
        return report

    async def close(self):
        for tier in self.tiers:
            try:
                await tier.close()
            except Exception as e:
                logger.warning(f"Error closing {tier.name} cache backend: {e}")

    def get_stats(self) -> dict:
        return dict(self._stats)

    # ─── Tier plumbing ─────────────────────────────────────────────────────

    async def _read(self, key: str) -> Optional[CacheEntry]:
        if not self.enabled:
            return None
        for tier in self.tiers:
            try:
                raw = await tier.get(key)
            except Exception as e:
                self._backend_failed(tier, "get", key, e)
                continue
            if raw is None:
                continue
            try:
                entry = CacheEntry.from_dict(json.loads(raw))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Discarding unreadable cache entry {key}: {e}")
                continue
            self._stats["hits"] += 1
            if tier is not self.hot and self.hot is not None:
                await self._promote(key, raw, entry)
            return entry
        self._stats["misses"] += 1
        return None

    async def _decoded(
        self, key: str, entry: Optional[CacheEntry], decode: Callable[[Any], Any]
    ) -> Optional[CacheEntry]:
        """An entry whose value no longer decodes is deleted and reads as a miss."""
        if entry is None:
            return None
        try:
            return replace(entry, value=decode(entry.value))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {type(e).__name__}: {e}")
            self._stats["discarded"] += 1
            for tier in self.tiers:
                try:
                    await tier.delete(key)
                except Exception as delete_error:
                    self._backend_failed(tier, "delete", key, delete_error)
            return None

    async def _promote(self, key: str, raw: str, entry: CacheEntry):
        remaining = int(entry.ttl - (self._clock() - entry.written_at))
        if remaining <= 0:
            return
        try:
            await self.hot.set(key, raw, remaining)
            self._stats["promotions"] += 1
        except Exception as e:
            self._backend_failed(self.hot, "promote", key, e)

    async def _write(self, key: str, entry: CacheEntry):
        if not self.enabled:
            return
        raw = json.dumps(entry.to_dict(), default=str)
        for tier in self.tiers:
            try:
                await tier.set(key, raw, entry.ttl)
            except Exception as e:
                self._backend_failed(tier, "set", key, e)
        self._stats["writes"] += 1

    def _backend_failed(self, tier: CacheBackend, op: str, key: str, error: Exception):
        self._stats["backend_errors"] += 1
        logger.warning(f"Cache {tier.name} {op} failed for {key}: {error}")


def build_file_cache(config: CacheConfig, clock: Callable[[], float] = time.time) -> FileCache:
    """Redis hot tier when a URL is configured, else in-process; SQLite durable tier when a path is."""
    hot: CacheBackend = RedisBackend(config.redis_url) if config.redis_url else MemoryBackend(clock=clock)
    durable = SQLiteBackend(config.sqlite_path, clock=clock) if config.sqlite_path else None
    logger.info(
        f"Cache tiers: hot={hot.name}, durable={durable.name if durable else 'none'}, "
        f"enabled={config.enabled}"
    )
    return FileCache(hot=hot, durable=durable, config=config, clock=clock)
