"""
Analysis orchestrator — fans one file out to the requested sub-analysers,
collects every outcome independently, and scores the combined result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Iterable, Optional

from .. import analyzers as _analyzers
from ..config import EngineConfig
from ..models import AnalysisError, AnalysisResult, AnalysisType, FileRecord, email_domain
from ..scoring.engine import file_risk
from .events import Observer, Stage, emit, type_stage

if TYPE_CHECKING:
    from ..analyzers import AnalysisContext, BaseAnalyzer

logger = logging.getLogger("drive_audit_engine.processing.orchestrator")

ORCHESTRATION_ERROR = "orchestration"

# AnalysisConfig switch per analysis type
ANALYSIS_SWITCHES = {
    AnalysisType.LINKS: "enable_link_analysis",
    AnalysisType.SHARING: "enable_sharing_analysis",
    AnalysisType.MIGRATION: "enable_migration_analysis",
    AnalysisType.LOCATION: "enable_location_analysis",
}


class AnalysisOrchestrator:
    """
    Runs sub-analysers concurrently and never raises: a failing analyser is
    recorded as an error for its type, and a failure to set up the run is
    recorded as a single orchestration error.
    """

    def __init__(self, clients, config: EngineConfig):
        self.clients = clients
        self.config = config
        self.analyzers: dict[AnalysisType, BaseAnalyzer] = {}
        for analyzer_cls in _analyzers.ALL_ANALYZERS:
            analyzer = analyzer_cls()
            self.analyzers[analyzer.analysis_type] = analyzer
        missing = set(AnalysisType) - set(self.analyzers)
        if missing:
            raise TypeError(f"No analyser registered for {sorted(m.value for m in missing)}")

    def is_enabled(self, analysis_type: AnalysisType) -> bool:
        return getattr(self.config.analysis, ANALYSIS_SWITCHES[analysis_type])

    def primary_domain_for(self, user_email: str) -> str:
        return self.config.primary_domain or email_domain(user_email)

    async def analyse(
        self,
        record: FileRecord,
        requested_types: Iterable[AnalysisType],
        user_email: str,
        observer: Optional[Observer] = None,
    ) -> AnalysisResult:
        types = AnalysisType.parse_many(requested_types)
        result = AnalysisResult(
            file_id=record.id,
            file_name=record.name,
            mime_type=record.mime_type,
            user_email=user_email,
            requested_types=types,
            file_metadata=record,
        )
        primary_domain = self.primary_domain_for(user_email)

        try:
            client = await self.clients.get(user_email)
        except Exception as e:
            logger.exception(f"Could not prepare analysis of {record.id} for {user_email}")
            result.errors = [AnalysisError(ORCHESTRATION_ERROR, f"{type(e).__name__}: {e}")]
            result.overall_risk = file_risk(result, primary_domain)
            emit(observer, Stage.ERROR, user_email, record.id, error=str(e), at=ORCHESTRATION_ERROR)
            return result

        context = _analyzers.AnalysisContext(
            user_email=user_email,
            client=client,
            primary_domain=primary_domain,
            max_folder_depth=self.config.analysis.max_folder_depth,
        )
        active = [t for t in types if self.is_enabled(t)]

        outcomes = await asyncio.gather(
            *(self._run(t, record, context, observer) for t in active),
            return_exceptions=True,
        )
        for analysis_type, outcome in zip(active, outcomes):
            if isinstance(outcome, Exception):
                result.errors.append(
                    AnalysisError(analysis_type.value, f"{type(outcome).__name__}: {outcome}")
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                setattr(result, analysis_type.value, outcome)

        result.overall_risk = file_risk(result, primary_domain)
        return result

    async def _run(
        self,
        analysis_type: AnalysisType,
        record: FileRecord,
        context: AnalysisContext,
        observer: Optional[Observer],
    ):
        emit(observer, type_stage(analysis_type, "start"), context.user_email, record.id)
        started = time.monotonic()
        try:
            outcome = await self.analyzers[analysis_type].analyze(record, context)
        except Exception as e:
            emit(
                observer, type_stage(analysis_type, "complete"), context.user_email, record.id,
                success=False, error=str(e),
            )
            raise
        emit(
            observer, type_stage(analysis_type, "complete"), context.user_email, record.id,
            success=True, elapsed=round(time.monotonic() - started, 4),
        )
        return outcome
