"""Data models shared by the cache, analysers, processor and drive walker."""

from .files import ContentType, FileRecord, Owner, Permission, email_domain
from .results import (
    DEFAULT_ANALYSIS_TYPES,
    AnalysisError,
    AnalysisResult,
    AnalysisType,
    CacheEntry,
    FileCategory,
    FileOutcome,
    LinkAnalysis,
    LocationAnalysis,
    MigrationAnalysis,
    MigrationIssue,
    RiskTier,
    ShareInfo,
    SharingAnalysis,
)
from .aggregates import (
    DriveAggregate,
    DriveNode,
    FileClassification,
    UserAggregate,
    UserDriveReport,
    UserScanResult,
)
from .calendars import CalendarInfo, EventFinding, UserCalendarReport

__all__ = [
    "ContentType",
    "FileRecord",
    "Owner",
    "Permission",
    "email_domain",
    "DEFAULT_ANALYSIS_TYPES",
    "AnalysisError",
    "AnalysisResult",
    "AnalysisType",
    "CacheEntry",
    "FileCategory",
    "FileOutcome",
    "LinkAnalysis",
    "LocationAnalysis",
    "MigrationAnalysis",
    "MigrationIssue",
    "RiskTier",
    "ShareInfo",
    "SharingAnalysis",
    "DriveAggregate",
    "DriveNode",
    "FileClassification",
    "UserAggregate",
    "UserDriveReport",
    "UserScanResult",
    "CalendarInfo",
    "EventFinding",
    "UserCalendarReport",
]
