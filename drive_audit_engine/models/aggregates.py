"""
Aggregate models — per-user file totals and per-drive walk results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .files import ContentType, Owner
from .results import FileCategory, FileOutcome, RiskTier


@dataclass
class UserAggregate:
    """
    Per-user totals folded from FileOutcomes.
    merge() is associative and commutative, so outcomes may be folded in any order.
    """
    user_email: str
    total_files: int = 0
    files_by_type: dict[str, int] = field(default_factory=dict)
    external_shares: int = 0
    public_files: int = 0
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0
    files_with_links: int = 0
    errors: int = 0
    cache_hits: int = 0

    @classmethod
    def from_outcome(cls, outcome: FileOutcome) -> "UserAggregate":
        agg = cls(user_email=outcome.user_email, total_files=1)
        if not outcome.ok or outcome.analysis is None:
            agg.errors = 1
            return agg

        analysis = outcome.analysis
        content_type = ContentType.from_mime_type(analysis.mime_type).value
        agg.files_by_type = {content_type: 1}
        if outcome.from_cache:
            agg.cache_hits = 1
        if analysis.sharing:
            agg.external_shares = len(analysis.sharing.external_shares)
            agg.public_files = 1 if analysis.sharing.is_public else 0
        if analysis.links and analysis.links.links:
            agg.files_with_links = 1
        if analysis.overall_risk == RiskTier.HIGH:
            agg.high_risk = 1
        elif analysis.overall_risk == RiskTier.MEDIUM:
            agg.medium_risk = 1
        else:
            agg.low_risk = 1
        return agg

    def merge(self, other: "UserAggregate") -> "UserAggregate":
        by_type = dict(self.files_by_type)
        for key, count in other.files_by_type.items():
            by_type[key] = by_type.get(key, 0) + count
        return UserAggregate(
            user_email=self.user_email or other.user_email,
            total_files=self.total_files + other.total_files,
            files_by_type=by_type,
            external_shares=self.external_shares + other.external_shares,
            public_files=self.public_files + other.public_files,
            high_risk=self.high_risk + other.high_risk,
            medium_risk=self.medium_risk + other.medium_risk,
            low_risk=self.low_risk + other.low_risk,
            files_with_links=self.files_with_links + other.files_with_links,
            errors=self.errors + other.errors,
            cache_hits=self.cache_hits + other.cache_hits,
        )

    __add__ = merge

    def to_dict(self) -> dict:
        return {
            "user_email": self.user_email,
            "total_files": self.total_files,
            "files_by_type": dict(sorted(self.files_by_type.items())),
            "external_shares": self.external_shares,
            "public_files": self.public_files,
            "risk_distribution": {
                "high": self.high_risk,
                "medium": self.medium_risk,
                "low": self.low_risk,
            },
            "files_with_links": self.files_with_links,
            "errors": self.errors,
            "cache_hits": self.cache_hits,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserAggregate":
        risk = data.get("risk_distribution", {})
        return cls(
            user_email=data.get("user_email", ""),
            total_files=data.get("total_files", 0),
            files_by_type=dict(data.get("files_by_type", {})),
            external_shares=data.get("external_shares", 0),
            public_files=data.get("public_files", 0),
            high_risk=risk.get("high", 0),
            medium_risk=risk.get("medium", 0),
            low_risk=risk.get("low", 0),
            files_with_links=data.get("files_with_links", 0),
            errors=data.get("errors", 0),
            cache_hits=data.get("cache_hits", 0),
        )


@dataclass
class UserScanResult:
    user_email: str
    outcomes: list[FileOutcome] = field(default_factory=list)
    aggregate: Optional[UserAggregate] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user_email": self.user_email,
            "aggregate": self.aggregate.to_dict() if self.aggregate else None,
            "error": self.error,
            "files": [o.to_dict() for o in self.outcomes],
        }


# ─── Drive graph ────────────────────────────────────────────────────────────

@dataclass
class DriveNode:
    """A folder (or file) seen during a drive walk."""
    id: str
    name: str = ""
    owner_domains: list[str] = field(default_factory=list)
    parents: list[str] = field(default_factory=list)
    accessible: bool = True

    @classmethod
    def from_api(cls, data: dict) -> "DriveNode":
        owners = [Owner.from_api(o) for o in data.get("owners") or []]
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            owner_domains=[o.domain for o in owners if o.domain],
            parents=list(data.get("parents") or []),
        )

    def is_foreign_to(self, domain: str) -> bool:
        return any(d != domain for d in self.owner_domains)


@dataclass
class FileClassification:
    file_id: str
    name: str
    mime_type: str
    category: FileCategory
    reason: str
    owners: list[str] = field(default_factory=list)
    created_time: Optional[str] = None
    modified_time: Optional[str] = None
    size: int = 0
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "file_id": self.file_id,
            "name": self.name,
            "mime_type": self.mime_type,
            "category": self.category.value,
            "reason": self.reason,
            "owners": list(self.owners),
            "created_time": self.created_time,
            "modified_time": self.modified_time,
            "size": self.size,
            "folder_id": self.folder_id,
            "folder_name": self.folder_name,
        }


@dataclass
class DriveAggregate:
    """Sharing exposure of one drive: the user's My Drive or a shared drive."""
    kind: str                                  # my-drive, shared-drive
    drive_id: str = ""
    name: str = ""
    total_files: int = 0
    shared_files: int = 0
    public_files: int = 0
    external_shares: int = 0
    external_members: list[str] = field(default_factory=list)
    external_users: set[str] = field(default_factory=set)
    member_count: int = 0
    share_details: list[dict[str, Any]] = field(default_factory=list)
    restrictions: dict[str, Any] = field(default_factory=dict)
    storage_used: int = 0
    last_activity: Optional[str] = None
    has_link_sharing: bool = False
    risk_level: RiskTier = RiskTier.LOW
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "drive_id": self.drive_id,
            "name": self.name,
            "total_files": self.total_files,
            "shared_files": self.shared_files,
            "public_files": self.public_files,
            "external_shares": self.external_shares,
            "external_members": list(self.external_members),
            "external_users": sorted(self.external_users),
            "member_count": self.member_count,
            "share_details": list(self.share_details),
            "restrictions": dict(self.restrictions),
            "storage_used": self.storage_used,
            "last_activity": self.last_activity,
            "has_link_sharing": self.has_link_sharing,
            "risk_level": self.risk_level.value,
            "error": self.error,
        }


@dataclass
class UserDriveReport:
    user_email: str
    my_drive: Optional[DriveAggregate] = None
    shared_drives: list[DriveAggregate] = field(default_factory=list)
    orphaned_files: list[FileClassification] = field(default_factory=list)
    cross_tenant_shares: list[FileClassification] = field(default_factory=list)
    external_users: set[str] = field(default_factory=set)
    risk_level: RiskTier = RiskTier.LOW
    errors: list[str] = field(default_factory=list)

    def summary(self) -> dict:
        return {
            "total_shared_drives": len(self.shared_drives),
            "total_orphaned_files": len(self.orphaned_files),
            "total_cross_tenant_shares": len(self.cross_tenant_shares),
            "total_external_users": len(self.external_users),
            "risk_level": self.risk_level.value,
        }

    def to_dict(self) -> dict:
        return {
            "user_email": self.user_email,
            "summary": self.summary(),
            "my_drive": self.my_drive.to_dict() if self.my_drive else None,
            "shared_drives": [d.to_dict() for d in self.shared_drives],
            "orphaned_files": [f.to_dict() for f in self.orphaned_files],
            "cross_tenant_shares": [f.to_dict() for f in self.cross_tenant_shares],
            "external_users": sorted(self.external_users),
            "errors": list(self.errors),
        }
