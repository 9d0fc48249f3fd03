"""
Drive graph walker — per-user sharing exposure of My Drive and every shared
drive the user can see, plus orphan and cross-tenant classification of files.

Failures inside one drive are recorded on that drive's aggregate and the
walk moves on; failures before any drive is reached go on the report.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx

from ..api.resilience import ExternalAPIError
from ..config import EngineConfig
from ..models import (
    DriveAggregate,
    FileCategory,
    FileClassification,
    FileRecord,
    Permission,
    UserDriveReport,
    email_domain,
)
from ..processing.batching import run_windowed
from ..processing.events import Observer, Stage, emit
from ..scoring.engine import my_drive_risk, overall_drive_risk, shared_drive_risk
from .graph import DriveGraph, classify_parentless

logger = logging.getLogger("drive_audit_engine.drives")

DRIVE_FILE_FIELDS = "nextPageToken, files(id,name,mimeType,shared,webViewLink,modifiedTime)"
CLASSIFY_FILE_FIELDS = (
    "nextPageToken, files(id,name,mimeType,owners,parents,createdTime,modifiedTime,size,driveId)"
)
# Folders included; the root folder of My Drive is never listed
CLASSIFY_QUERY = "trashed=false"

PARENTLESS_REASONS = {
    FileCategory.ORPHANED: "File has no parent folder",
    FileCategory.CROSS_TENANT_SHARE: "File has no parent folder and is owned outside the domain",
}


class DriveGraphWalker:
    def __init__(
        self,
        clients,
        config: EngineConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.clients = clients
        self.config = config
        self._sleep = sleep

    def primary_domain_for(self, user_email: str) -> str:
        return (self.config.primary_domain or email_domain(user_email)).lower()

    # ─── Entry points ──────────────────────────────────────────────────────

    async def walk_users(
        self, user_emails: Sequence[str], observer: Optional[Observer] = None
    ) -> list[UserDriveReport]:
        def failed(user_email: str, error: BaseException) -> UserDriveReport:
            return UserDriveReport(user_email=user_email, errors=[f"{type(error).__name__}: {error}"])

        return await run_windowed(
            list(user_emails),
            lambda user_email: self.analyse_user_drives(user_email, observer),
            failed,
            size=self.config.processing.user_batch_size,
            pacing=self.config.processing.pacing_delay,
            sleep=self._sleep,
        )

    async def analyse_user_drives(
        self, user_email: str, observer: Optional[Observer] = None
    ) -> UserDriveReport:
        report = UserDriveReport(user_email=user_email)
        emit(
            observer, Stage.DRIVE_ANALYSIS_START, user_email,
            include_shared_drives=self.config.drives.include_shared_drives,
        )

        try:
            client = await self.clients.get(user_email)
        except Exception as e:
            logger.error(f"Drive walk for {user_email} could not start: {type(e).__name__}: {e}")
            report.errors.append(f"{type(e).__name__}: {e}")
            emit(observer, Stage.ERROR, user_email, at="drive_walk", error=str(e))
            return report

        report.my_drive = await self.analyse_my_drive(client, user_email, observer)

        if self.config.drives.include_shared_drives:
            try:
                report.shared_drives = await self.analyse_shared_drives(client, user_email, observer)
            except (ExternalAPIError, httpx.HTTPError) as e:
                logger.warning(f"Could not list shared drives for {user_email}: {e}")
                report.errors.append(f"Shared drive listing failed: {e}")

        if self.config.drives.classify_files:
            for item in await self.classify_files(client, user_email, report.errors):
                if item.category == FileCategory.ORPHANED:
                    report.orphaned_files.append(item)
                else:
                    report.cross_tenant_shares.append(item)

        for drive in [report.my_drive, *report.shared_drives]:
            if drive is not None:
                report.external_users |= drive.external_users
        report.risk_level = overall_drive_risk(report)

        emit(observer, Stage.DRIVE_ANALYSIS_COMPLETE, user_email, summary=report.summary())
        return report

    # ─── My Drive ──────────────────────────────────────────────────────────

    async def analyse_my_drive(
        self, client, user_email: str, observer: Optional[Observer] = None
    ) -> DriveAggregate:
        drive = DriveAggregate(kind="my-drive", name="My Drive")
        try:
            about = await client.about(fields="storageQuota,user")
            usage = (about.get("storageQuota") or {}).get("usageInDrive")
            drive.storage_used = int(usage) if usage else 0

            shared = []
            async for data in client.list_files(
                "trashed=false and 'me' in owners", fields=DRIVE_FILE_FIELDS, corpora="user"
            ):
                self._count_file(drive, data)
                if data.get("shared"):
                    shared.append(data)

            await self._scan_shared_files(client, drive, shared, user_email, observer)
        except Exception as e:
            logger.exception(f"My Drive analysis failed for {user_email}")
            drive.error = f"{type(e).__name__}: {e}"

        drive.risk_level = my_drive_risk(drive)
        return drive

    # ─── Shared drives ─────────────────────────────────────────────────────

    async def analyse_shared_drives(
        self, client, user_email: str, observer: Optional[Observer] = None
    ) -> list[DriveAggregate]:
        listed = [d async for d in client.list_drives()]
        drives = []
        for info in listed:
            emit(
                observer, Stage.SHARED_DRIVE_ANALYSIS_START, user_email,
                drive_id=info.get("id"), drive_name=info.get("name"),
            )
            drive = await self._analyse_shared_drive(client, user_email, info, observer)
            emit(
                observer, Stage.SHARED_DRIVE_ANALYSIS_COMPLETE, user_email,
                drive_id=drive.drive_id,
                drive_name=drive.name,
                total_files=drive.total_files,
                external_shares=drive.external_shares,
                external_members=len(drive.external_members),
                risk_level=drive.risk_level.value,
            )
            drives.append(drive)
        return drives

    async def _analyse_shared_drive(
        self, client, user_email: str, info: dict, observer: Optional[Observer]
    ) -> DriveAggregate:
        drive = DriveAggregate(
            kind="shared-drive",
            drive_id=info.get("id", ""),
            name=info.get("name", ""),
            restrictions=dict(info.get("restrictions") or {}),
        )
        primary_domain = self.primary_domain_for(user_email)
        try:
            if self.config.drives.include_members:
                async for data in client.list_permissions(drive.drive_id):
                    member = Permission.from_api(data)
                    drive.member_count += 1
                    if member.email and member.email_domain != primary_domain:
                        drive.external_members.append(member.email)
                        drive.external_users.add(member.email)

            shared = []
            async for data in client.list_files(
                "trashed=false", fields=DRIVE_FILE_FIELDS, corpora="drive", drive_id=drive.drive_id
            ):
                self._count_file(drive, data)
                if data.get("shared"):
                    shared.append(data)

            await self._scan_shared_files(client, drive, shared, user_email, observer)
        except Exception as e:
            logger.exception(f"Shared drive {drive.name} ({drive.drive_id}) analysis failed")
            drive.error = f"{type(e).__name__}: {e}"

        drive.risk_level = shared_drive_risk(drive)
        return drive

    # ─── Permission scanning ───────────────────────────────────────────────

    @staticmethod
    def _count_file(drive: DriveAggregate, data: dict):
        drive.total_files += 1
        if data.get("shared"):
            drive.shared_files += 1
        modified = data.get("modifiedTime")
        if modified and (drive.last_activity is None or modified > drive.last_activity):
            drive.last_activity = modified

    async def _scan_shared_files(
        self,
        client,
        drive: DriveAggregate,
        files: list[dict],
        user_email: str,
        observer: Optional[Observer],
    ):
        async def permissions_of(data: dict) -> Optional[list[Permission]]:
            try:
                return [Permission.from_api(p) async for p in client.list_permissions(data["id"])]
            except (ExternalAPIError, httpx.HTTPError) as e:
                logger.warning(f"Could not read permissions for {data.get('id')}: {e}")
                return None

        scanned = await run_windowed(
            files,
            permissions_of,
            lambda data, error: None,
            size=self.config.processing.batch_size,
            pacing=self.config.processing.pacing_delay,
            sleep=self._sleep,
        )
        primary_domain = self.primary_domain_for(user_email)
        for data, permissions in zip(files, scanned):
            if permissions is not None:
                self._fold_permissions(drive, data, permissions, primary_domain, user_email, observer)

    @staticmethod
    def _fold_permissions(
        drive: DriveAggregate,
        data: dict,
        permissions: list[Permission],
        primary_domain: str,
        user_email: str,
        observer: Optional[Observer],
    ):
        if any(p.type == "anyone" for p in permissions):
            drive.public_files += 1
            drive.has_link_sharing = True

        for permission in permissions:
            if permission.type == "anyone" or not permission.email:
                continue
            domain = permission.email_domain
            if not domain or domain == primary_domain:
                continue
            drive.external_shares += 1
            drive.external_users.add(permission.email)
            detail = {
                "document_id": data.get("id"),
                "document_name": data.get("name"),
                "document_type": data.get("mimeType"),
                "drive_kind": drive.kind,
                "drive_id": drive.drive_id,
                "drive_name": drive.name,
                "external_user": permission.email,
                "external_domain": domain,
                "role": permission.role,
                "permission_type": permission.type,
            }
            drive.share_details.append(detail)
            emit(observer, Stage.EXTERNAL_SHARE_DETECTED, user_email, data.get("id"), **detail)

    # ─── Orphan / cross-tenant classification ──────────────────────────────

    async def classify_files(
        self, client, user_email: str, errors: Optional[list[str]] = None
    ) -> list[FileClassification]:
        """
        Every non-normal item, folders included, visible to the user. Folders
        are listed once to seed the graph; anything else is resolved on demand.

        A failed folder listing only costs extra lookups. A listing that fails
        part way keeps what was classified so far and appends the failure to
        errors.
        """
        graph = DriveGraph(client, email_domain(user_email))
        try:
            graph.seed([f async for f in client.list_folders()])
        except (ExternalAPIError, httpx.HTTPError) as e:
            logger.warning(f"Folder listing failed for {user_email}, resolving parents on demand: {e}")

        classified = []
        try:
            async for data in client.list_files(CLASSIFY_QUERY, fields=CLASSIFY_FILE_FIELDS):
                item = await self.classify_file(graph, FileRecord.from_api(data))
                if item is not None:
                    classified.append(item)
        except (ExternalAPIError, httpx.HTTPError) as e:
            logger.warning(
                f"File classification for {user_email} stopped after {len(classified)} findings: {e}"
            )
            if errors is not None:
                errors.append(f"File classification incomplete: {e}")

        logger.info(
            f"{user_email}: {len(classified)} orphaned or cross-tenant files, "
            f"{graph.lookups} on-demand folder lookups"
        )
        return classified

    @staticmethod
    async def classify_file(graph: DriveGraph, record: FileRecord) -> Optional[FileClassification]:
        item = FileClassification(
            file_id=record.id,
            name=record.name,
            mime_type=record.mime_type,
            category=FileCategory.NORMAL,
            reason="",
            owners=[o.email for o in record.owners if o.email],
            created_time=record.created_time,
            modified_time=record.modified_time,
            size=record.size or 0,
        )

        if record.parents:
            folder = await graph.foreign_ancestor(record.parents)
            if folder is None:
                return None
            item.category = FileCategory.FILE_IN_CROSS_TENANT_FOLDER
            item.reason = f"Inside a folder owned by {', '.join(sorted(set(folder.owner_domains)))}"
            item.folder_id = folder.id
            item.folder_name = folder.name
            return item

        item.category = classify_parentless(record.owner_domains, graph.user_domain)
        item.reason = PARENTLESS_REASONS[item.category]
        return item
