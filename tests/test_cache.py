"""Tests for the cache backends and the two-tier FileCache."""

import json

import pytest

from conftest import ALICE, BOB, BrokenBackend
from drive_audit_engine.cache.file_cache import FileCache, analysis_id, build_file_cache
from drive_audit_engine.cache.store import MemoryBackend, SQLiteBackend
from drive_audit_engine.config import CacheConfig
from drive_audit_engine.models import (
    AnalysisResult,
    AnalysisType,
    CacheEntry,
    FileRecord,
    Owner,
    RiskTier,
    SharingAnalysis,
)

SHARING = [AnalysisType.SHARING]
SHARING_MIGRATION = [AnalysisType.SHARING, AnalysisType.MIGRATION]


def record(file_id="f1", modified="2024-01-01T00:00:00Z"):
    return FileRecord(
        id=file_id,
        name="Budget",
        mime_type="application/vnd.google-apps.spreadsheet",
        owners=[Owner(email=ALICE)],
        modified_time=modified,
    )


def result(file_id="f1"):
    return AnalysisResult(
        file_id=file_id,
        file_name="Budget",
        user_email=ALICE,
        requested_types=list(SHARING),
        sharing=SharingAnalysis(sharing_type="public", public_link=True, risk_level=RiskTier.HIGH),
        overall_risk=RiskTier.MEDIUM,
    )


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

class TestAnalysisId:
    def test_sixteen_hex_chars(self):
        key = analysis_id("f1", ALICE, SHARING)
        assert len(key) == 16
        int(key, 16)

    def test_order_and_duplicates_do_not_matter(self):
        a = analysis_id("f1", ALICE, [AnalysisType.MIGRATION, AnalysisType.SHARING])
        b = analysis_id("f1", ALICE, [AnalysisType.SHARING, AnalysisType.MIGRATION, AnalysisType.SHARING])
        assert a == b

    def test_type_set_scope_and_file_change_the_id(self):
        base = analysis_id("f1", ALICE, SHARING)
        assert analysis_id("f1", ALICE, SHARING_MIGRATION) != base
        assert analysis_id("f1", BOB, SHARING) != base
        assert analysis_id("f2", ALICE, SHARING) != base

    def test_accepts_string_values(self):
        assert analysis_id("f1", ALICE, ["sharing"]) == analysis_id("f1", ALICE, SHARING)


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------

class TestStaleness:
    def test_missing_entry_is_stale(self, cache):
        assert cache.is_stale(None)

    def test_token_mismatch_wins_over_fresh_ttl(self, cache, clock):
        entry = CacheEntry(value={}, freshness_token="t1", written_at=clock(), ttl=3600)
        assert cache.is_stale(entry, current_token="t2")
        assert not cache.is_stale(entry, current_token="t1")

    def test_ttl_expiry_with_matching_token(self, cache, clock):
        entry = CacheEntry(value={}, freshness_token="t1", written_at=clock(), ttl=60)
        clock.advance(61)
        assert cache.is_stale(entry, current_token="t1")

    def test_ttl_only_without_freshness_check(self, cache, clock):
        entry = CacheEntry(value={}, freshness_token="t1", written_at=clock(), ttl=60)
        clock.advance(30)
        assert not cache.is_stale(entry)


# ---------------------------------------------------------------------------
# Metadata and analysis entries
# ---------------------------------------------------------------------------

class TestFileCache:
    async def test_metadata_carries_modified_time(self, cache):
        await cache.set_metadata("f1", ALICE, record(modified="2024-02-02T00:00:00Z"))
        entry = await cache.get_metadata("f1", ALICE)
        assert entry.freshness_token == "2024-02-02T00:00:00Z"
        restored = FileRecord.from_dict(entry.value)
        assert restored.name == "Budget"
        assert restored.owners[0].domain == "acme.com"

    async def test_metadata_is_scoped_per_user(self, cache):
        await cache.set_metadata("f1", ALICE, record())
        assert await cache.get_metadata("f1", BOB) is None

    async def test_analysis_round_trip(self, cache):
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        entry = await cache.get_analysis("f1", ALICE, SHARING)
        restored = AnalysisResult.from_dict(entry.value)
        assert restored.sharing.public_link
        assert restored.overall_risk == RiskTier.MEDIUM
        assert entry.freshness_token == "t1"

    async def test_narrower_type_set_never_serves_wider_request(self, cache):
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        assert await cache.get_analysis("f1", ALICE, SHARING_MIGRATION) is None

    async def test_hot_tier_expiry(self, cache, clock):
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        clock.advance(cache.config.analysis_ttl + 1)
        assert await cache.get_analysis("f1", ALICE, SHARING) is None

    async def test_disabled_cache_reads_and_writes_nothing(self, clock):
        hot = MemoryBackend(clock=clock)
        cache = FileCache(hot=hot, config=CacheConfig(enabled=False), clock=clock)
        await cache.set_metadata("f1", ALICE, record())
        assert len(hot) == 0
        assert await cache.get_metadata("f1", ALICE) is None

    async def test_user_stats(self, cache, clock):
        await cache.set_user_stats(ALICE, {"total_files": 3})
        assert await cache.get_user_stats(ALICE) == {"total_files": 3}
        clock.advance(cache.config.user_stats_ttl + 1)
        assert await cache.get_user_stats(ALICE) is None

    async def test_unreadable_entry_is_a_miss(self, cache):
        await cache.hot.set(cache.metadata_key("f1", ALICE), "{not json", 60)
        assert await cache.get_metadata("f1", ALICE) is None

    async def test_typed_reads_decode_values(self, cache):
        await cache.set_metadata("f1", ALICE, record())
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")

        meta = await cache.get_metadata_record("f1", ALICE)
        assert isinstance(meta.value, FileRecord)
        assert meta.freshness_token == "2024-01-01T00:00:00Z"
        analysis = await cache.get_analysis_result("f1", ALICE, SHARING)
        assert analysis.value.sharing.public_link
        assert analysis.freshness_token == "t1"

    async def test_undecodable_value_is_dropped(self, clock):
        hot, durable = MemoryBackend(clock=clock), MemoryBackend(clock=clock)
        cache = FileCache(hot=hot, durable=durable, clock=clock)
        key = cache.analysis_key("f1", ALICE, SHARING)
        junk = json.dumps(CacheEntry(value={"not": "an analysis"}, written_at=clock(), ttl=60).to_dict())
        await hot.set(key, junk, 60)
        await durable.set(key, junk, 60)

        assert await cache.get_analysis_result("f1", ALICE, SHARING) is None
        assert await hot.get(key) is None
        assert await durable.get(key) is None
        assert cache.get_stats()["discarded"] == 1

    async def test_metadata_of_the_wrong_shape_is_dropped(self, cache, clock):
        key = cache.metadata_key("f1", ALICE)
        await cache.hot.set(key, json.dumps(CacheEntry(value=["f1"], written_at=clock(), ttl=60).to_dict()), 60)
        assert await cache.get_metadata_record("f1", ALICE) is None
        assert await cache.get_metadata("f1", ALICE) is None

    async def test_clear_file_drops_every_entry(self, cache):
        await cache.set_metadata("f1", ALICE, record())
        await cache.set_metadata("f1", BOB, record())
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        await cache.set_analysis("f1", ALICE, SHARING_MIGRATION, result(), "t1")
        await cache.set_metadata("f2", ALICE, record("f2"))

        assert await cache.clear_file("f1") == 4
        assert await cache.get_metadata("f1", BOB) is None
        assert await cache.get_analysis("f1", ALICE, SHARING) is None
        assert await cache.get_metadata("f2", ALICE) is not None

    async def test_clear_file_for_one_scope(self, cache):
        await cache.set_metadata("f1", ALICE, record())
        await cache.set_metadata("f1", BOB, record())
        await cache.clear_file("f1", scope=ALICE)
        assert await cache.get_metadata("f1", ALICE) is None
        assert await cache.get_metadata("f1", BOB) is not None


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------

class TestTiers:
    async def test_durable_hit_is_promoted(self, clock):
        hot, durable = MemoryBackend(clock=clock), MemoryBackend(clock=clock)
        cache = FileCache(hot=hot, durable=durable, clock=clock)
        await cache.set_metadata("f1", ALICE, record())
        key = cache.metadata_key("f1", ALICE)
        await hot.delete(key)

        assert await cache.get_metadata("f1", ALICE) is not None
        assert await hot.get(key) is not None
        assert cache.get_stats()["promotions"] == 1

    async def test_promotion_keeps_remaining_ttl(self, clock):
        hot, durable = MemoryBackend(clock=clock), MemoryBackend(clock=clock)
        cache = FileCache(hot=hot, durable=durable, config=CacheConfig(metadata_ttl=100), clock=clock)
        await cache.set_metadata("f1", ALICE, record())
        await hot.delete(cache.metadata_key("f1", ALICE))
        clock.advance(60)

        await cache.get_metadata("f1", ALICE)
        clock.advance(41)
        assert await hot.get(cache.metadata_key("f1", ALICE)) is None

    async def test_failing_hot_tier_falls_through_to_durable(self, clock):
        durable = MemoryBackend(clock=clock)
        cache = FileCache(hot=BrokenBackend(clock=clock), durable=durable, clock=clock)
        await cache.set_metadata("f1", ALICE, record())
        assert await cache.get_metadata("f1", ALICE) is not None
        assert cache.get_stats()["backend_errors"] >= 2

    async def test_all_tiers_failing_is_a_miss_not_an_error(self, clock):
        cache = FileCache(hot=BrokenBackend(clock=clock), durable=BrokenBackend(clock=clock), clock=clock)
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        assert await cache.get_analysis("f1", ALICE, SHARING) is None
        assert await cache.clear_file("f1") == 0

    async def test_health_check(self, clock):
        cache = FileCache(hot=MemoryBackend(clock=clock), durable=BrokenBackend(clock=clock), clock=clock)
        health = await cache.health_check()
        assert health["hot"] == {"backend": "memory", "healthy": True}
        assert health["durable"]["healthy"] is False
        assert health["healthy"] is False

    def test_build_from_config(self, tmp_path):
        cache = build_file_cache(CacheConfig(sqlite_path=str(tmp_path / "cache.db")))
        assert cache.hot.name == "memory"
        assert cache.durable.name == "sqlite"
        assert build_file_cache(CacheConfig()).durable is None


# ---------------------------------------------------------------------------
# SQLite durable tier
# ---------------------------------------------------------------------------

class TestSQLiteBackend:
    @pytest.fixture
    def backend(self, tmp_path, clock):
        return SQLiteBackend(str(tmp_path / "nested" / "cache.db"), clock=clock)

    async def test_newest_row_wins_and_history_is_kept(self, backend, clock):
        await backend.set("k", "v1", 60)
        clock.advance(1)
        await backend.set("k", "v2", 60)

        assert await backend.get("k") == "v2"
        history = backend.history("k")
        assert [h["data"] for h in history] == ["v2", "v1"]

    async def test_expired_rows_are_invisible_but_kept_until_cleared(self, backend, clock):
        await backend.set("k", "v1", 10)
        clock.advance(11)
        assert await backend.get("k") is None
        assert len(backend.history("k")) == 1
        assert backend.clear_expired() == 1
        assert backend.history("k") == []

    async def test_delete_prefix_escapes_wildcards(self, backend):
        await backend.set("drive_audit:file:a_b:x", "1", 60)
        await backend.set("drive_audit:file:aXb:x", "2", 60)
        assert await backend.delete_prefix("drive_audit:file:a_b:") == 1
        assert await backend.get("drive_audit:file:aXb:x") == "2"

    async def test_ping(self, backend):
        assert await backend.ping()

    async def test_as_durable_tier_of_file_cache(self, backend, clock):
        cache = FileCache(hot=MemoryBackend(clock=clock), durable=backend, clock=clock)
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t1")
        await cache.set_analysis("f1", ALICE, SHARING, result(), "t2")
        key = cache.analysis_key("f1", ALICE, SHARING)
        assert len(backend.history(key)) == 2
