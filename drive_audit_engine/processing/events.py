"""
Progress events pushed to an optional observer callable.
Observer failures are logged and swallowed; they never affect processing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..models import AnalysisType
from ..models.results import utc_now_iso

logger = logging.getLogger("drive_audit_engine.processing.events")


class Stage(str, Enum):
    USER_START = "user_start"
    FILES_FOUND = "files_found"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    METADATA_FETCH = "metadata_fetch"
    ANALYSIS_START = "analysis_start"
    ANALYSIS_COMPLETE = "analysis_complete"
    BATCH_START = "batch_start"
    FILE_COMPLETE = "file_complete"
    BATCH_COMPLETE = "batch_complete"
    USER_COMPLETE = "user_complete"
    DRIVE_ANALYSIS_START = "drive_analysis_start"
    SHARED_DRIVE_ANALYSIS_START = "shared_drive_analysis_start"
    SHARED_DRIVE_ANALYSIS_COMPLETE = "shared_drive_analysis_complete"
    EXTERNAL_SHARE_DETECTED = "external_share_detected"
    DRIVE_ANALYSIS_COMPLETE = "drive_analysis_complete"
    CALENDAR_ANALYSIS_START = "calendar_analysis_start"
    CALENDAR_ANALYSIS_COMPLETE = "calendar_analysis_complete"
    ERROR = "error"


def type_stage(analysis_type: AnalysisType, phase: str) -> str:
    """Per-type stage name, e.g. ``sharing_analysis_start``."""
    return f"{analysis_type.value}_analysis_{phase}"


@dataclass
class ProgressEvent:
    stage: str
    user_email: str = ""
    file_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "user_email": self.user_email,
            "file_id": self.file_id,
            "data": self.data,
            "timestamp": self.timestamp,
        }


Observer = Callable[[ProgressEvent], Any]


def emit(
    observer: Optional[Observer],
    stage,
    user_email: str = "",
    file_id: Optional[str] = None,
    **data,
):
    if observer is None:
        return
    stage_name = stage.value if isinstance(stage, Stage) else str(stage)
    event = ProgressEvent(stage=stage_name, user_email=user_email, file_id=file_id, data=data)
    try:
        observer(event)
    except Exception as e:
        logger.warning(f"Progress observer failed on {stage_name}: {type(e).__name__}: {e}")
