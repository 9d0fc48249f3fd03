"""
Async Google Workspace REST client (Drive v3, Docs, Sheets, Slides, Admin
Directory, Calendar v3).
Every request is checked by the SafetyGuardian and executed through the CallGateway.
Listings are streamed page by page as async generators.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Optional
from urllib.parse import quote

import httpx

from ..config import (
    ADMIN_API_URL,
    CALENDAR_API_URL,
    DEFAULT_PAGE_SIZE,
    DOCS_API_URL,
    DRIVE_API_URL,
    EVENT_PAGE_SIZE,
    FILE_METADATA_FIELDS,
    MAX_CONCURRENT_REQUESTS,
    MAX_PAGES_PER_QUERY,
    MIME_FOLDER,
    SHEETS_API_URL,
    SLIDES_API_URL,
    WORKSPACE_MIME_TYPES,
)
from ..safety.guardian import SafetyGuardian
from .resilience import CallGateway, ExternalAPIError

logger = logging.getLogger("drive_audit_engine.client")

FILE_LIST_FIELDS = (
    "nextPageToken, files(id,name,mimeType,owners,permissions,modifiedTime,"
    "createdTime,size,parents,webViewLink,shared,driveId)"
)
FOLDER_LIST_FIELDS = "nextPageToken, files(id,name,owners,parents)"
PERMISSION_FIELDS = "nextPageToken, permissions(id,type,role,emailAddress,domain,displayName)"
DRIVE_FIELDS = "id,name,createdTime,restrictions,capabilities"
CALENDAR_LIST_FIELDS = "nextPageToken, items(id,summary,primary,accessRole)"
EVENT_FIELDS = (
    "nextPageToken, items(id,summary,start,end,recurrence,attendees,hangoutLink,"
    "visibility,organizer,creator)"
)


def workspace_files_query() -> str:
    """files.list query for non-trashed Docs, Sheets and Slides."""
    mimes = " or ".join(f"mimeType='{m}'" for m in WORKSPACE_MIME_TYPES)
    return f"trashed=false and ({mimes})"


def _error_from_response(response: httpx.Response, url: str) -> ExternalAPIError:
    message = response.reason_phrase or "Request failed"
    reason = ""
    try:
        body = response.json() if response.content else {}
    except ValueError:
        body = {}
        message = response.text[:200] or message
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        message = error.get("message", message)
        details = error.get("errors") or []
        if details and isinstance(details[0], dict):
            reason = details[0].get("reason", "")
    elif isinstance(error, str):
        message = body.get("error_description", error)
    return ExternalAPIError(response.status_code, message, url, reason)


class WorkspaceClient:
    """
    Authenticated client acting as one impersonated user.
    Features:
      - Safety-validated requests (read-only, googleapis.com only)
      - Retry/backoff via the shared CallGateway
      - Concurrent request semaphore
      - nextPageToken pagination as streaming generators
    """

    def __init__(
        self,
        access_token: str,
        gateway: CallGateway,
        guardian: SafetyGuardian,
        user_email: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.gateway = gateway
        self.guardian = guardian
        self.user_email = user_email
        self._transport = transport
        self._semaphore = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)
        self._request_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, connect=30.0),
            limits=httpx.Limits(
                max_connections=MAX_CONCURRENT_REQUESTS * 2,
                max_keepalive_connections=MAX_CONCURRENT_REQUESTS,
            ),
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    # ─── Core request path ─────────────────────────────────────────────────

    async def get(self, url: str, params: Optional[dict] = None, name: str = "") -> dict:
        """Single GET through guardian and gateway."""
        self.guardian.validate_request("GET", url)

        async def attempt() -> dict:
            return await self._execute(url, params)

        return await self.gateway.call(attempt, name=name or url)

    async def _execute(self, url: str, params: Optional[dict]) -> dict:
        if not self._client:
            raise RuntimeError("WorkspaceClient not initialized. Use 'async with' context.")

        async with self._semaphore:
            response = await self._client.get(url, params=params)
        self._request_count += 1

        if response.status_code == 204:
            return {}
        if response.status_code == 200:
            return response.json() if response.content else {}
        raise _error_from_response(response, url)

    async def paginate(
        self,
        url: str,
        items_key: str,
        params: Optional[dict] = None,
        name: str = "",
    ) -> AsyncGenerator[dict, None]:
        """Stream items across nextPageToken pages."""
        params = dict(params or {})
        pages = 0

        while pages < MAX_PAGES_PER_QUERY:
            data = await self.get(url, params=params, name=name)
            for item in data.get(items_key, []):
                yield item
            pages += 1
            token = data.get("nextPageToken")
            if not token:
                return
            params["pageToken"] = token

        logger.warning(
            f"Pagination safety cap reached ({MAX_PAGES_PER_QUERY} pages) for {url}"
        )

    # ─── Drive v3 ──────────────────────────────────────────────────────────

    async def get_file(self, file_id: str, fields: str = FILE_METADATA_FIELDS) -> dict:
        return await self.get(
            f"{DRIVE_API_URL}/files/{file_id}",
            params={"fields": fields, "supportsAllDrives": "true"},
            name="drive.files.get",
        )

    async def get_modified_time(self, file_id: str) -> Optional[str]:
        """Freshness check: only id and modifiedTime."""
        data = await self.get_file(file_id, fields="id,modifiedTime")
        return data.get("modifiedTime")

    def list_files(
        self,
        query: str,
        fields: str = FILE_LIST_FIELDS,
        corpora: str = "allDrives",
        drive_id: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> AsyncGenerator[dict, None]:
        params: dict[str, Any] = {
            "q": query,
            "fields": fields,
            "pageSize": page_size,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
            "corpora": corpora,
        }
        if drive_id:
            params["driveId"] = drive_id
        return self.paginate(f"{DRIVE_API_URL}/files", "files", params, name="drive.files.list")

    def list_user_files(self) -> AsyncGenerator[dict, None]:
        """Non-trashed Docs, Sheets and Slides visible to the user."""
        return self.list_files(workspace_files_query())

    def list_folders(self) -> AsyncGenerator[dict, None]:
        return self.list_files(
            f"mimeType='{MIME_FOLDER}' and trashed=false",
            fields=FOLDER_LIST_FIELDS,
        )

    def list_permissions(self, file_id: str) -> AsyncGenerator[dict, None]:
        return self.paginate(
            f"{DRIVE_API_URL}/files/{file_id}/permissions",
            "permissions",
            {"fields": PERMISSION_FIELDS, "supportsAllDrives": "true", "pageSize": 100},
            name="drive.permissions.list",
        )

    async def get_drive(self, drive_id: str, fields: str = DRIVE_FIELDS) -> dict:
        return await self.get(
            f"{DRIVE_API_URL}/drives/{drive_id}",
            params={"fields": fields},
            name="drive.drives.get",
        )

    def list_drives(self) -> AsyncGenerator[dict, None]:
        return self.paginate(
            f"{DRIVE_API_URL}/drives",
            "drives",
            {"fields": f"nextPageToken, drives({DRIVE_FIELDS})", "pageSize": 100},
            name="drive.drives.list",
        )

    async def about(self, fields: str = "user,storageQuota") -> dict:
        return await self.get(f"{DRIVE_API_URL}/about", params={"fields": fields}, name="drive.about.get")

    # ─── Editors ───────────────────────────────────────────────────────────

    async def get_document(self, document_id: str, fields: Optional[str] = None) -> dict:
        return await self.get(
            f"{DOCS_API_URL}/documents/{document_id}",
            params={"fields": fields} if fields else None,
            name="docs.documents.get",
        )

    async def get_spreadsheet(self, spreadsheet_id: str, fields: Optional[str] = None) -> dict:
        params = {"fields": fields} if fields else {"includeGridData": "true"}
        return await self.get(
            f"{SHEETS_API_URL}/spreadsheets/{spreadsheet_id}",
            params=params,
            name="sheets.spreadsheets.get",
        )

    async def get_presentation(self, presentation_id: str, fields: Optional[str] = None) -> dict:
        return await self.get(
            f"{SLIDES_API_URL}/presentations/{presentation_id}",
            params={"fields": fields} if fields else None,
            name="slides.presentations.get",
        )

    # ─── Admin Directory ───────────────────────────────────────────────────

    def list_users(self, domain: Optional[str] = None) -> AsyncGenerator[dict, None]:
        params: dict[str, Any] = {"maxResults": 500, "orderBy": "email"}
        if domain:
            params["domain"] = domain
        else:
            params["customer"] = "my_customer"
        return self.paginate(f"{ADMIN_API_URL}/users", "users", params, name="admin.users.list")

    # ─── Calendar v3 ───────────────────────────────────────────────────────

    def list_calendars(self) -> AsyncGenerator[dict, None]:
        """Calendars on the user's calendar list, owned or subscribed."""
        return self.paginate(
            f"{CALENDAR_API_URL}/users/me/calendarList",
            "items",
            {"fields": CALENDAR_LIST_FIELDS, "maxResults": 250},
            name="calendar.calendarList.list",
        )

    def list_events(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
        page_size: int = EVENT_PAGE_SIZE,
    ) -> AsyncGenerator[dict, None]:
        # Recurring series come back once, not expanded into instances
        params: dict[str, Any] = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "false",
            "maxResults": page_size,
            "fields": EVENT_FIELDS,
        }
        return self.paginate(
            f"{CALENDAR_API_URL}/calendars/{quote(calendar_id, safe='')}/events",
            "items",
            params,
            name="calendar.events.list",
        )

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "user": self.user_email,
            "total_requests": self._request_count,
        }
