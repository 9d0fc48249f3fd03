"""
File processor — drives each file through the cache-aware pipeline:

    cache_check → metadata_fetch → analysis → cache_write → done
                                                         ↘ error (from any stage)

Files are scheduled in windows; users are scheduled in smaller windows of
the same shape. Every failure becomes a structured outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from functools import reduce
from typing import Any, Awaitable, Callable, Iterable, NamedTuple, Optional, Sequence

from ..cache.file_cache import FileCache
from ..config import EngineConfig
from ..models import (
    DEFAULT_ANALYSIS_TYPES,
    AnalysisType,
    FileOutcome,
    FileRecord,
    UserAggregate,
    UserScanResult,
)
from .batching import run_windowed
from .events import Observer, Stage, emit
from .orchestrator import AnalysisOrchestrator

logger = logging.getLogger("drive_audit_engine.processing")


class FileRequest(NamedTuple):
    file_id: str
    user_email: str
    types: Optional[Iterable[AnalysisType]] = None


class FileProcessor:
    def __init__(
        self,
        clients,
        cache: FileCache,
        config: EngineConfig,
        orchestrator: Optional[AnalysisOrchestrator] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.clients = clients
        self.cache = cache
        self.config = config
        self.orchestrator = orchestrator or AnalysisOrchestrator(clients, config)
        self._sleep = sleep
        self._stats = {"processed": 0, "from_cache": 0, "errors": 0}

    # ─── Single file ───────────────────────────────────────────────────────

    async def process_file(
        self,
        file_id: str,
        user_email: str,
        types: Optional[Iterable[AnalysisType]] = None,
        observer: Optional[Observer] = None,
    ) -> FileOutcome:
        started = time.monotonic()
        types = AnalysisType.parse_many(types or DEFAULT_ANALYSIS_TYPES)
        stage = "cache_check"

        try:
            emit(observer, Stage.CACHE_CHECK, user_email, file_id)
            cached_meta = await self.cache.get_metadata_record(file_id, user_email)
            cached_analysis = await self.cache.get_analysis_result(file_id, user_email, types)

            current_token = None
            if (cached_meta or cached_analysis) and self.config.processing.verify_freshness:
                client = await self.clients.get(user_email)
                current_token = await client.get_modified_time(file_id)

            if cached_analysis and not self.cache.is_stale(cached_analysis, current_token):
                analysis = cached_analysis.value
                emit(observer, Stage.CACHE_HIT, user_email, file_id)
                return self._finish(
                    FileOutcome(
                        file_id=file_id,
                        user_email=user_email,
                        analysis=analysis,
                        from_cache=True,
                        processing_time=time.monotonic() - started,
                    ),
                    observer,
                )

            stage = "metadata_fetch"
            if cached_meta and not self.cache.is_stale(cached_meta, current_token):
                record = cached_meta.value
            else:
                emit(observer, Stage.METADATA_FETCH, user_email, file_id)
                record = await self.fetch_file_metadata(file_id, user_email)
                await self.cache.set_metadata(file_id, user_email, record)

            stage = "analysis"
            emit(observer, Stage.ANALYSIS_START, user_email, file_id, types=[t.value for t in types])
            analysis = await self.orchestrator.analyse(record, types, user_email, observer)
            emit(
                observer, Stage.ANALYSIS_COMPLETE, user_email, file_id,
                risk=analysis.overall_risk.value, errors=len(analysis.errors),
            )

            stage = "cache_write"
            await self.cache.set_analysis(file_id, user_email, types, analysis, record.modified_time)

            return self._finish(
                FileOutcome(
                    file_id=file_id,
                    user_email=user_email,
                    analysis=analysis,
                    processing_time=time.monotonic() - started,
                ),
                observer,
            )
        except Exception as e:
            logger.error(f"Processing {file_id} for {user_email} failed at {stage}: {type(e).__name__}: {e}")
            emit(observer, Stage.ERROR, user_email, file_id, at=stage, error=str(e))
            return self._finish(
                FileOutcome.failed(file_id, user_email, str(e), time.monotonic() - started),
                observer,
            )

    def _finish(self, outcome: FileOutcome, observer: Optional[Observer]) -> FileOutcome:
        self._stats["processed"] += 1
        if outcome.from_cache:
            self._stats["from_cache"] += 1
        if not outcome.ok:
            self._stats["errors"] += 1
        else:
            emit(
                observer, Stage.FILE_COMPLETE, outcome.user_email, outcome.file_id,
                from_cache=outcome.from_cache, processing_time=round(outcome.processing_time, 4),
            )
        return outcome

    async def fetch_file_metadata(self, file_id: str, user_email: str) -> FileRecord:
        client = await self.clients.get(user_email)
        data = await client.get_file(file_id)
        return FileRecord.from_api(data)

    # ─── Many files ────────────────────────────────────────────────────────

    async def process_files(
        self,
        requests: Sequence[FileRequest],
        observer: Optional[Observer] = None,
    ) -> list[FileOutcome]:
        requests = [FileRequest(*r) for r in requests]

        async def work(request: FileRequest) -> FileOutcome:
            return await self.process_file(request.file_id, request.user_email, request.types, observer)

        def failed(request: FileRequest, error: BaseException) -> FileOutcome:
            return FileOutcome.failed(request.file_id, request.user_email, str(error))

        def window_started(index: int, total: int, chunk):
            emit(
                observer, Stage.BATCH_START, _window_user(chunk), None,
                batch=index, total_batches=total, size=len(chunk),
            )

        def window_done(index: int, total: int, chunk, outcomes: list):
            emit(
                observer, Stage.BATCH_COMPLETE, _window_user(chunk), None,
                batch=index, total_batches=total, errors=sum(1 for o in outcomes if not o.ok),
            )

        return await run_windowed(
            requests,
            work,
            failed,
            size=self.config.processing.batch_size,
            pacing=self.config.processing.pacing_delay,
            sleep=self._sleep,
            on_window=window_started,
            on_window_done=window_done,
        )

    # ─── Users ─────────────────────────────────────────────────────────────

    async def process_user_files(
        self,
        user_email: str,
        types: Optional[Iterable[AnalysisType]] = None,
        observer: Optional[Observer] = None,
    ) -> UserScanResult:
        emit(observer, Stage.USER_START, user_email)
        client = await self.clients.get(user_email)
        file_ids = [f["id"] async for f in client.list_user_files() if f.get("id")]
        logger.info(f"{user_email}: {len(file_ids)} Workspace files found")
        emit(observer, Stage.FILES_FOUND, user_email, count=len(file_ids))

        outcomes = await self.process_files(
            [FileRequest(file_id, user_email, types) for file_id in file_ids], observer
        )
        aggregate = self.aggregate_user_results(outcomes, user_email)
        await self.cache.set_user_stats(user_email, aggregate.to_dict())

        emit(observer, Stage.USER_COMPLETE, user_email, summary=aggregate.to_dict())
        return UserScanResult(user_email=user_email, outcomes=outcomes, aggregate=aggregate)

    async def process_users(
        self,
        user_emails: Sequence[str],
        types: Optional[Iterable[AnalysisType]] = None,
        observer: Optional[Observer] = None,
    ) -> list[UserScanResult]:
        async def work(user_email: str) -> UserScanResult:
            return await self.process_user_files(user_email, types, observer)

        def failed(user_email: str, error: BaseException) -> UserScanResult:
            emit(observer, Stage.ERROR, user_email, at="user", error=str(error))
            return UserScanResult(user_email=user_email, error=f"{type(error).__name__}: {error}")

        return await run_windowed(
            list(user_emails),
            work,
            failed,
            size=self.config.processing.user_batch_size,
            pacing=self.config.processing.pacing_delay,
            sleep=self._sleep,
        )

    @staticmethod
    def aggregate_user_results(outcomes: Iterable[FileOutcome], user_email: str) -> UserAggregate:
        return reduce(
            UserAggregate.merge,
            (UserAggregate.from_outcome(o) for o in outcomes),
            UserAggregate(user_email=user_email),
        )

    # ─── Maintenance ───────────────────────────────────────────────────────

    async def get_cache_health(self) -> dict:
        return await self.cache.health_check()

    async def clear_cache(self, file_id: str, user_email: Optional[str] = None) -> int:
        return await self.cache.clear_file(file_id, scope=user_email)

    def get_stats(self) -> dict:
        return {**self._stats, "cache": self.cache.get_stats()}

    async def close(self):
        await self.cache.close()
        await self.clients.close()


def _window_user(requests: Sequence[FileRequest]) -> str:
    """The user a window belongs to, when it belongs to exactly one."""
    users = {r.user_email for r in requests}
    return users.pop() if len(users) == 1 else ""
