"""
Base analyzer class — Abstract interface for all per-file sub-analysers.
Defines the AnalysisContext handed to every analyser and the analyser contract.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from ..models import AnalysisType, FileRecord, email_domain

logger = logging.getLogger("drive_audit_engine.analyzers")


@dataclass
class AnalysisContext:
    """Everything an analyser needs besides the file itself."""
    user_email: str
    client: Any                          # WorkspaceClient acting as user_email
    primary_domain: str
    max_folder_depth: int = 100

    @property
    def user_domain(self) -> str:
        return email_domain(self.user_email)


class BaseAnalyzer(ABC):
    """
    Abstract base class for all analyzers.
    Analyzers are stateless: they receive a FileRecord plus context and
    return one typed sub-result. Failures propagate to the orchestrator,
    which records them against this analyser's type.
    """

    name: str = "base"
    analysis_type: AnalysisType
    description: str = "Base analyzer"

    async def analyze(self, record: FileRecord, context: AnalysisContext):
        """
        Execute analysis and return the sub-result.
        Subclasses implement _analyze() with specific logic.
        """
        started = time.monotonic()
        try:
            result = await self._analyze(record, context)
        except Exception as e:
            logger.warning(f"[{self.name}] Analysis failed for {record.id}: {type(e).__name__}: {e}")
            raise
        logger.debug(f"[{self.name}] {record.id} analysed in {time.monotonic() - started:.3f}s")
        return result

    @abstractmethod
    async def _analyze(self, record: FileRecord, context: AnalysisContext):
        """Implement analysis logic and return the typed result."""
        raise NotImplementedError

    @staticmethod
    def get_safe(data: dict, *keys, default=None):
        """Safely navigate nested dict keys."""
        current = data
        for key in keys:
            if isinstance(current, dict):
                current = current.get(key, default)
            else:
                return default
        return current
