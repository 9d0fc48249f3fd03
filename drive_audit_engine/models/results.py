"""
Analysis result models — per-type sub-results and the combined AnalysisResult.
Every model round-trips through to_dict()/from_dict() so it can be cached.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .files import FileRecord


class AnalysisType(str, Enum):
    LINKS = "links"
    SHARING = "sharing"
    MIGRATION = "migration"
    LOCATION = "location"

    @classmethod
    def parse_many(cls, values) -> list["AnalysisType"]:
        """Normalise any iterable of names/members to canonical order."""
        wanted = {cls(v) for v in values}
        return [t for t in cls if t in wanted]


DEFAULT_ANALYSIS_TYPES = [AnalysisType.LINKS, AnalysisType.SHARING, AnalysisType.MIGRATION]


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FileCategory(str, Enum):
    NORMAL = "normal"
    ORPHANED = "orphaned"
    CROSS_TENANT_SHARE = "cross-tenant-share"
    FILE_IN_CROSS_TENANT_FOLDER = "file-in-cross-tenant-folder"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Links ──────────────────────────────────────────────────────────────────

@dataclass
class LinkAnalysis:
    links: list[str] = field(default_factory=list)
    functions: list[str] = field(default_factory=list)
    incompatible_functions: list[str] = field(default_factory=list)

    @property
    def has_incompatible_functions(self) -> bool:
        return bool(self.incompatible_functions)

    def to_dict(self) -> dict:
        return {
            "links": list(self.links),
            "functions": list(self.functions),
            "incompatible_functions": list(self.incompatible_functions),
            "has_incompatible_functions": self.has_incompatible_functions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LinkAnalysis":
        return cls(
            links=list(data.get("links", [])),
            functions=list(data.get("functions", [])),
            incompatible_functions=list(data.get("incompatible_functions", [])),
        )


# ─── Sharing ────────────────────────────────────────────────────────────────

@dataclass
class ShareInfo:
    email: str
    role: str
    type: str
    domain: str = ""

    def to_dict(self) -> dict:
        return {"email": self.email, "role": self.role, "type": self.type, "domain": self.domain}

    @classmethod
    def from_dict(cls, data: dict) -> "ShareInfo":
        return cls(
            email=data.get("email", ""),
            role=data.get("role", ""),
            type=data.get("type", ""),
            domain=data.get("domain", ""),
        )


@dataclass
class SharingAnalysis:
    sharing_type: str = "private"              # private, domain-wide, public
    shared_with: list[ShareInfo] = field(default_factory=list)
    external_shares: list[ShareInfo] = field(default_factory=list)
    public_link: bool = False
    domain_sharing: bool = False
    permission_count: int = 0
    shared: bool = False
    risk_level: RiskTier = RiskTier.LOW

    @property
    def is_public(self) -> bool:
        return self.public_link

    @property
    def has_external_sharing(self) -> bool:
        return bool(self.external_shares)

    @property
    def cross_tenant_emails(self) -> list[str]:
        return [s.email for s in self.external_shares]

    def to_dict(self) -> dict:
        return {
            "sharing_type": self.sharing_type,
            "shared_with": [s.to_dict() for s in self.shared_with],
            "external_shares": [s.to_dict() for s in self.external_shares],
            "public_link": self.public_link,
            "domain_sharing": self.domain_sharing,
            "permission_count": self.permission_count,
            "shared": self.shared,
            "risk_level": self.risk_level.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SharingAnalysis":
        return cls(
            sharing_type=data.get("sharing_type", "private"),
            shared_with=[ShareInfo.from_dict(s) for s in data.get("shared_with", [])],
            external_shares=[ShareInfo.from_dict(s) for s in data.get("external_shares", [])],
            public_link=data.get("public_link", False),
            domain_sharing=data.get("domain_sharing", False),
            permission_count=data.get("permission_count", 0),
            shared=data.get("shared", False),
            risk_level=RiskTier(data.get("risk_level", "low")),
        )


# ─── Migration ──────────────────────────────────────────────────────────────

@dataclass
class MigrationIssue:
    type: str
    severity: str
    description: str

    def to_dict(self) -> dict:
        return {"type": self.type, "severity": self.severity, "description": self.description}

    @classmethod
    def from_dict(cls, data: dict) -> "MigrationIssue":
        return cls(type=data["type"], severity=data["severity"], description=data.get("description", ""))


@dataclass
class MigrationAnalysis:
    compatibility: dict[str, Any] = field(default_factory=dict)
    issues: list[MigrationIssue] = field(default_factory=list)
    complexity: RiskTier = RiskTier.LOW
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "compatibility": dict(self.compatibility),
            "issues": [i.to_dict() for i in self.issues],
            "complexity": self.complexity.value,
            "recommendations": list(self.recommendations),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MigrationAnalysis":
        return cls(
            compatibility=dict(data.get("compatibility", {})),
            issues=[MigrationIssue.from_dict(i) for i in data.get("issues", [])],
            complexity=RiskTier(data.get("complexity", "low")),
            recommendations=list(data.get("recommendations", [])),
        )


# ─── Location ───────────────────────────────────────────────────────────────

@dataclass
class LocationAnalysis:
    location_type: str = "personal-drive"      # personal-drive, shared-drive, shared-drive-inaccessible
    category: FileCategory = FileCategory.NORMAL
    owner_email: str = ""
    shared_drive_id: Optional[str] = None
    shared_drive_name: Optional[str] = None
    folder_path: list[str] = field(default_factory=list)
    path_complete: bool = True
    migration_complexity: RiskTier = RiskTier.LOW

    @property
    def is_orphaned(self) -> bool:
        return self.category == FileCategory.ORPHANED

    @property
    def is_in_root(self) -> bool:
        parentless = (FileCategory.ORPHANED, FileCategory.CROSS_TENANT_SHARE)
        return not self.folder_path and self.path_complete and self.category not in parentless

    @property
    def path_depth(self) -> int:
        return len(self.folder_path)

    def to_dict(self) -> dict:
        return {
            "location_type": self.location_type,
            "category": self.category.value,
            "owner_email": self.owner_email,
            "shared_drive_id": self.shared_drive_id,
            "shared_drive_name": self.shared_drive_name,
            "folder_path": list(self.folder_path),
            "path_complete": self.path_complete,
            "is_orphaned": self.is_orphaned,
            "is_in_root": self.is_in_root,
            "migration_complexity": self.migration_complexity.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationAnalysis":
        return cls(
            location_type=data.get("location_type", "personal-drive"),
            category=FileCategory(data.get("category", "normal")),
            owner_email=data.get("owner_email", ""),
            shared_drive_id=data.get("shared_drive_id"),
            shared_drive_name=data.get("shared_drive_name"),
            folder_path=list(data.get("folder_path", [])),
            path_complete=data.get("path_complete", True),
            migration_complexity=RiskTier(data.get("migration_complexity", "low")),
        )


# ─── Combined result ────────────────────────────────────────────────────────

@dataclass
class AnalysisError:
    type: str                                  # analysis type value or "orchestration"
    message: str

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisError":
        return cls(type=data["type"], message=data.get("message", ""))


@dataclass
class AnalysisResult:
    """
    The combined output of one orchestrated analysis.
    For each requested and enabled type there is exactly one of a sub-result
    or an AnalysisError with that type.
    """
    file_id: str
    file_name: str = ""
    mime_type: str = ""
    user_email: str = ""
    requested_types: list[AnalysisType] = field(default_factory=list)
    links: Optional[LinkAnalysis] = None
    sharing: Optional[SharingAnalysis] = None
    migration: Optional[MigrationAnalysis] = None
    location: Optional[LocationAnalysis] = None
    overall_risk: RiskTier = RiskTier.LOW
    errors: list[AnalysisError] = field(default_factory=list)
    file_metadata: Optional[FileRecord] = None
    analysed_at: str = field(default_factory=utc_now_iso)

    def sub_result(self, analysis_type: AnalysisType):
        return getattr(self, analysis_type.value)

    def error_for(self, analysis_type: AnalysisType) -> Optional[AnalysisError]:
        for err in self.errors:
            if err.type == analysis_type.value:
                return err
        return None

    def to_dict(self) -> dict:
        return {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "user_email": self.user_email,
            "requested_types": [t.value for t in self.requested_types],
            "links": self.links.to_dict() if self.links else None,
            "sharing": self.sharing.to_dict() if self.sharing else None,
            "migration": self.migration.to_dict() if self.migration else None,
            "location": self.location.to_dict() if self.location else None,
            "overall_risk": self.overall_risk.value,
            "errors": [e.to_dict() for e in self.errors],
            "file_metadata": self.file_metadata.to_dict() if self.file_metadata else None,
            "analysed_at": self.analysed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        def _opt(key, model):
            value = data.get(key)
            return model.from_dict(value) if value else None

        return cls(
            file_id=data["file_id"],
            file_name=data.get("file_name", ""),
            mime_type=data.get("mime_type", ""),
            user_email=data.get("user_email", ""),
            requested_types=[AnalysisType(t) for t in data.get("requested_types", [])],
            links=_opt("links", LinkAnalysis),
            sharing=_opt("sharing", SharingAnalysis),
            migration=_opt("migration", MigrationAnalysis),
            location=_opt("location", LocationAnalysis),
            overall_risk=RiskTier(data.get("overall_risk", "low")),
            errors=[AnalysisError.from_dict(e) for e in data.get("errors", [])],
            file_metadata=_opt("file_metadata", FileRecord),
            analysed_at=data.get("analysed_at", ""),
        )


# ─── Cache entry and pipeline outcome ───────────────────────────────────────

@dataclass
class CacheEntry:
    """A cached value plus the freshness token and TTL it was written with."""
    value: Any
    freshness_token: Optional[str] = None
    written_at: float = field(default_factory=time.time)
    ttl: int = 0

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "freshness_token": self.freshness_token,
            "written_at": self.written_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            value=data.get("value"),
            freshness_token=data.get("freshness_token"),
            written_at=data.get("written_at", 0.0),
            ttl=data.get("ttl", 0),
        )


@dataclass
class FileOutcome:
    """Terminal state of one file going through the processor."""
    file_id: str
    user_email: str
    status: str = "done"                       # done, error
    analysis: Optional[AnalysisResult] = None
    error: Optional[str] = None
    from_cache: bool = False
    processing_time: float = 0.0
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.status == "done"

    @classmethod
    def failed(cls, file_id: str, user_email: str, error: str, processing_time: float = 0.0) -> "FileOutcome":
        return cls(
            file_id=file_id,
            user_email=user_email,
            status="error",
            error=error,
            from_cache=False,
            processing_time=processing_time,
        )

    def to_dict(self) -> dict:
        return {
            "file_id": self.file_id,
            "user_email": self.user_email,
            "status": self.status,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "error": self.error,
            "from_cache": self.from_cache,
            "processing_time": round(self.processing_time, 4),
            "timestamp": self.timestamp,
        }
