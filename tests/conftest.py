"""
Shared fixtures: an in-memory Workspace tenant, per-user fake clients that
answer the same calls as WorkspaceClient, a controllable clock, and a
FileCache wired to in-process backends.
"""

import pytest

from drive_audit_engine.api.client import workspace_files_query
from drive_audit_engine.api.resilience import ExternalAPIError
from drive_audit_engine.cache.file_cache import FileCache
from drive_audit_engine.cache.store import MemoryBackend
from drive_audit_engine.config import (
    MIME_DOCUMENT,
    MIME_FOLDER,
    WORKSPACE_MIME_TYPES,
    CacheConfig,
    EngineConfig,
)
from drive_audit_engine.processing import FileProcessor

DOMAIN = "acme.com"
ALICE = "alice@acme.com"
BOB = "bob@acme.com"


# ---------------------------------------------------------------------------
# Fake tenant
# ---------------------------------------------------------------------------

class FakeWorkspace:
    """Files, folders, permissions and shared drives keyed by id."""

    def __init__(self):
        self.files: dict[str, dict] = {}
        self.permissions: dict[str, list[dict]] = {}
        self.drives: dict[str, dict] = {}
        self.documents: dict[str, dict] = {}
        self.spreadsheets: dict[str, dict] = {}
        self.presentations: dict[str, dict] = {}
        self.users: list[dict] = []
        self.calendars: list[dict] = []
        self.events: dict[str, list[dict]] = {}
        self.storage_used = 0
        self.failing: dict = {}
        # query -> (items yielded before the listing raises, error)
        self.fail_after: dict[str, tuple[int, Exception]] = {}
        # Drive never returns a user's root folder from files.list
        self.root_ids: set[str] = set()

    def add_file(
        self,
        file_id,
        name=None,
        mime_type=MIME_DOCUMENT,
        owner=ALICE,
        parents=None,
        modified="2024-01-01T00:00:00Z",
        drive_id=None,
        shared=False,
        permissions=None,
    ) -> dict:
        data = {
            "id": file_id,
            "name": name or file_id,
            "mimeType": mime_type,
            "owners": [{"emailAddress": owner, "displayName": owner.split("@")[0]}] if owner else [],
            "parents": list(parents or []),
            "modifiedTime": modified,
            "createdTime": "2023-01-01T00:00:00Z",
            "size": "1024",
            "shared": shared,
        }
        if drive_id:
            data["driveId"] = drive_id
        self.files[file_id] = data
        if permissions is not None:
            self.permissions[file_id] = list(permissions)
        return data

    def add_folder(self, folder_id, name=None, owner=ALICE, parents=None, drive_id=None, root=False) -> dict:
        if root:
            self.root_ids.add(folder_id)
        return self.add_file(
            folder_id, name=name, mime_type=MIME_FOLDER, owner=owner, parents=parents, drive_id=drive_id
        )

    def touch(self, file_id, modified):
        self.files[file_id]["modifiedTime"] = modified

    def check(self, key):
        if key in self.failing:
            raise self.failing[key]


def user_permission(email, role="reader", perm_id=None) -> dict:
    return {"id": perm_id or email, "type": "user", "role": role, "emailAddress": email}


def anyone_permission(role="reader") -> dict:
    return {"id": "anyoneWithLink", "type": "anyone", "role": role}


def domain_permission(domain=DOMAIN, role="reader") -> dict:
    return {"id": f"domain-{domain}", "type": "domain", "role": role, "domain": domain}


def not_found(file_id) -> ExternalAPIError:
    return ExternalAPIError(404, f"File not found: {file_id}", reason="notFound")


class FakeClient:
    """Answers the WorkspaceClient calls the engine makes, from a FakeWorkspace."""

    def __init__(self, workspace: FakeWorkspace, user_email: str):
        self.workspace = workspace
        self.user_email = user_email
        self.calls: list[tuple] = []

    def count(self, name) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def get_file(self, file_id, fields=None) -> dict:
        self.calls.append(("get_file", file_id))
        self.workspace.check(file_id)
        data = self.workspace.files.get(file_id)
        if data is None:
            raise not_found(file_id)
        return dict(data)

    async def get_modified_time(self, file_id):
        self.calls.append(("get_modified_time", file_id))
        self.workspace.check(file_id)
        data = self.workspace.files.get(file_id)
        if data is None:
            raise not_found(file_id)
        return data.get("modifiedTime")

    def _matches(self, data, query, corpora, drive_id) -> bool:
        mime = data.get("mimeType", "")
        if data["id"] in self.workspace.root_ids:
            return False
        if corpora == "drive" and data.get("driveId") != drive_id:
            return False
        if "'me' in owners" in query:
            owners = [o.get("emailAddress") for o in data.get("owners", [])]
            if self.user_email not in owners:
                return False
        if f"mimeType='{MIME_FOLDER}'" in query:
            return mime == MIME_FOLDER
        if f"mimeType != '{MIME_FOLDER}'" in query:
            return mime != MIME_FOLDER
        if MIME_DOCUMENT in query:
            return mime in WORKSPACE_MIME_TYPES
        return True

    async def list_files(self, query, fields=None, corpora="allDrives", drive_id=None, page_size=1000):
        self.calls.append(("list_files", query))
        self.workspace.check(("list_files", corpora, drive_id))
        limit, error = self.workspace.fail_after.get(query, (None, None))
        yielded = 0
        for data in list(self.workspace.files.values()):
            if not self._matches(data, query, corpora, drive_id):
                continue
            if yielded == limit:
                raise error
            yielded += 1
            yield dict(data)

    def list_user_files(self):
        return self.list_files(workspace_files_query())

    async def list_folders(self):
        self.workspace.check("list_folders")
        async for data in self.list_files(f"mimeType='{MIME_FOLDER}' and trashed=false"):
            yield data

    async def list_calendars(self):
        self.calls.append(("list_calendars",))
        self.workspace.check("list_calendars")
        for data in self.workspace.calendars:
            yield dict(data)

    async def list_events(self, calendar_id, time_min, time_max, page_size=2500):
        self.calls.append(("list_events", calendar_id, time_min, time_max))
        self.workspace.check(("events", calendar_id))
        for data in self.workspace.events.get(calendar_id, []):
            yield dict(data)

    async def list_permissions(self, file_id):
        self.calls.append(("list_permissions", file_id))
        self.workspace.check(("permissions", file_id))
        for permission in self.workspace.permissions.get(file_id, []):
            yield dict(permission)

    async def get_drive(self, drive_id, fields=None) -> dict:
        self.calls.append(("get_drive", drive_id))
        self.workspace.check(("drive", drive_id))
        drive = self.workspace.drives.get(drive_id)
        if drive is None:
            raise ExternalAPIError(404, f"Shared drive not found: {drive_id}", reason="notFound")
        return dict(drive)

    async def list_drives(self):
        self.calls.append(("list_drives",))
        self.workspace.check("list_drives")
        for drive in list(self.workspace.drives.values()):
            yield dict(drive)

    async def about(self, fields="user,storageQuota") -> dict:
        self.calls.append(("about",))
        self.workspace.check("about")
        return {
            "user": {"emailAddress": self.user_email},
            "storageQuota": {"usageInDrive": str(self.workspace.storage_used)},
        }

    async def get_document(self, document_id, fields=None) -> dict:
        self.calls.append(("get_document", document_id))
        self.workspace.check(("content", document_id))
        return self.workspace.documents.get(document_id, {})

    async def get_spreadsheet(self, spreadsheet_id, fields=None) -> dict:
        self.calls.append(("get_spreadsheet", spreadsheet_id))
        self.workspace.check(("content", spreadsheet_id))
        return self.workspace.spreadsheets.get(spreadsheet_id, {})

    async def get_presentation(self, presentation_id, fields=None) -> dict:
        self.calls.append(("get_presentation", presentation_id))
        self.workspace.check(("content", presentation_id))
        return self.workspace.presentations.get(presentation_id, {})

    async def list_users(self, domain=None):
        for user in self.workspace.users:
            yield dict(user)


class FakeClients:
    """Stands in for ClientCache: one FakeClient per user."""

    def __init__(self, workspace: FakeWorkspace):
        self.workspace = workspace
        self.clients: dict[str, FakeClient] = {}
        self.failing_users: dict[str, Exception] = {}
        self.closed = False

    async def get(self, user_email) -> FakeClient:
        if user_email in self.failing_users:
            raise self.failing_users[user_email]
        if user_email not in self.clients:
            self.clients[user_email] = FakeClient(self.workspace, user_email)
        return self.clients[user_email]

    async def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds):
        self.now += seconds


class BrokenBackend(MemoryBackend):
    """Every operation fails."""

    name = "broken"

    async def get(self, key):
        raise ConnectionError("backend down")

    async def set(self, key, value, ttl):
        raise ConnectionError("backend down")

    async def delete(self, key):
        raise ConnectionError("backend down")

    async def delete_prefix(self, prefix):
        raise ConnectionError("backend down")

    async def ping(self):
        raise ConnectionError("backend down")


class Recorder:
    """Observer that keeps every event it is given."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def stages(self, file_id=None) -> list[str]:
        return [e.stage for e in self.events if file_id is None or e.file_id == file_id]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def workspace():
    return FakeWorkspace()


@pytest.fixture
def clients(workspace):
    return FakeClients(workspace)


@pytest.fixture
def alice(clients):
    return clients.clients.setdefault(ALICE, FakeClient(clients.workspace, ALICE))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    config = EngineConfig(primary_domain=DOMAIN)
    config.processing.pacing_delay = 0.0
    config.output.base_dir = str(tmp_path / "out")
    return config


@pytest.fixture
def cache(clock):
    return FileCache(hot=MemoryBackend(clock=clock), config=CacheConfig(), clock=clock)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(delay):
        sleeps.append(delay)
    return sleep


@pytest.fixture
def processor(clients, cache, config, fake_sleep):
    return FileProcessor(clients, cache, config, sleep=fake_sleep)


@pytest.fixture
def recorder():
    return Recorder()
