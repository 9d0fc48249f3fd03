"""Two-tier cache: hot (Redis or memory) over durable (SQLite)."""

from .store import CacheBackend, MemoryBackend, RedisBackend, SQLiteBackend
from .file_cache import FileCache, analysis_id, build_file_cache

__all__ = [
    "CacheBackend",
    "MemoryBackend",
    "RedisBackend",
    "SQLiteBackend",
    "FileCache",
    "analysis_id",
    "build_file_cache",
]
