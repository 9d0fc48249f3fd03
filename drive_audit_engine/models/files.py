"""
File data models — FileRecord, owners, and permissions as fetched from Drive.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..config import MIME_DOCUMENT, MIME_FOLDER, MIME_PRESENTATION, MIME_SPREADSHEET


class ContentType(str, Enum):
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    FOLDER = "folder"
    OTHER = "other"

    @classmethod
    def from_mime_type(cls, mime_type: Optional[str]) -> "ContentType":
        return _MIME_TO_CONTENT_TYPE.get(mime_type or "", cls.OTHER)


_MIME_TO_CONTENT_TYPE = {
    MIME_DOCUMENT: ContentType.DOCUMENT,
    MIME_SPREADSHEET: ContentType.SPREADSHEET,
    MIME_PRESENTATION: ContentType.PRESENTATION,
    MIME_FOLDER: ContentType.FOLDER,
}


def email_domain(email: Optional[str]) -> str:
    """Lower-cased domain part of an email address, or empty string."""
    if not email or "@" not in email:
        return ""
    return email.rsplit("@", 1)[1].lower()


@dataclass
class Owner:
    email: str = ""
    display_name: str = ""
    domain: str = ""

    def __post_init__(self):
        if not self.domain:
            self.domain = email_domain(self.email)
        else:
            self.domain = self.domain.lower()

    @classmethod
    def from_api(cls, data: dict) -> "Owner":
        return cls(
            email=data.get("emailAddress", data.get("email", "")) or "",
            display_name=data.get("displayName", "") or "",
            domain=data.get("domain", "") or "",
        )

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "display_name": self.display_name,
            "domain": self.domain,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Owner":
        return cls(
            email=data.get("email", ""),
            display_name=data.get("display_name", ""),
            domain=data.get("domain", ""),
        )


@dataclass(frozen=True)
class Permission:
    """A single grant on a file. Type is one of user, group, domain, anyone."""
    id: str
    type: str
    role: str = "reader"
    email: Optional[str] = None
    domain: Optional[str] = None
    display_name: str = ""

    @property
    def email_domain(self) -> str:
        return email_domain(self.email)

    @classmethod
    def from_api(cls, data: dict) -> "Permission":
        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            role=data.get("role", "reader"),
            email=data.get("emailAddress"),
            domain=data.get("domain"),
            display_name=data.get("displayName", "") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "role": self.role,
            "email": self.email,
            "domain": self.domain,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Permission":
        return cls(
            id=data.get("id", ""),
            type=data.get("type", ""),
            role=data.get("role", "reader"),
            email=data.get("email"),
            domain=data.get("domain"),
            display_name=data.get("display_name", ""),
        )


@dataclass
class FileRecord:
    """
    A snapshot of one Drive file's metadata.

    modified_time is the freshness token: any cached value derived from this
    record is only valid while the token still matches the live file.
    """
    id: str
    name: str = ""
    mime_type: str = ""
    owners: list[Owner] = field(default_factory=list)
    parents: list[str] = field(default_factory=list)
    modified_time: Optional[str] = None
    created_time: Optional[str] = None
    size: int = 0
    shared: bool = False
    permissions: list[Permission] = field(default_factory=list)
    drive_id: Optional[str] = None
    web_view_link: str = ""
    spaces: list[str] = field(default_factory=list)
    fetched_at: float = field(default_factory=time.time)

    @property
    def content_type(self) -> ContentType:
        return ContentType.from_mime_type(self.mime_type)

    @property
    def owner_domains(self) -> list[str]:
        return [o.domain for o in self.owners if o.domain]

    @property
    def primary_owner(self) -> Optional[Owner]:
        return self.owners[0] if self.owners else None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "FileRecord":
        size = data.get("size") or 0
        try:
            size = int(size)
        except (TypeError, ValueError):
            size = 0
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            owners=[Owner.from_api(o) for o in data.get("owners") or []],
            parents=list(data.get("parents") or []),
            modified_time=data.get("modifiedTime"),
            created_time=data.get("createdTime"),
            size=size,
            shared=bool(data.get("shared", False)),
            permissions=[Permission.from_api(p) for p in data.get("permissions") or []],
            drive_id=data.get("driveId"),
            web_view_link=data.get("webViewLink", "") or "",
            spaces=list(data.get("spaces") or []),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "content_type": self.content_type.value,
            "owners": [o.to_dict() for o in self.owners],
            "parents": list(self.parents),
            "modified_time": self.modified_time,
            "created_time": self.created_time,
            "size": self.size,
            "shared": self.shared,
            "permissions": [p.to_dict() for p in self.permissions],
            "drive_id": self.drive_id,
            "web_view_link": self.web_view_link,
            "spaces": list(self.spaces),
            "fetched_at": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FileRecord":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mime_type", ""),
            owners=[Owner.from_dict(o) for o in data.get("owners", [])],
            parents=list(data.get("parents", [])),
            modified_time=data.get("modified_time"),
            created_time=data.get("created_time"),
            size=data.get("size", 0),
            shared=data.get("shared", False),
            permissions=[Permission.from_dict(p) for p in data.get("permissions", [])],
            drive_id=data.get("drive_id"),
            web_view_link=data.get("web_view_link", ""),
            spaces=list(data.get("spaces", [])),
            fetched_at=data.get("fetched_at", time.time()),
        )
