"""
Configuration module for the Drive Audit Engine.
Defines all tunable parameters, API endpoints, and operational settings.
"""

from __future__ import annotations

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone


class ConfigError(Exception):
    """Raised when the engine configuration is incomplete or invalid."""
    pass


# ─── Google API Settings ────────────────────────────────────────────────────

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DOCS_API_URL = "https://docs.googleapis.com/v1"
SHEETS_API_URL = "https://sheets.googleapis.com/v4"
SLIDES_API_URL = "https://slides.googleapis.com/v1"
ADMIN_API_URL = "https://admin.googleapis.com/admin/directory/v1"
CALENDAR_API_URL = "https://www.googleapis.com/calendar/v3"

# Read-only scopes granted to the service account via domain-wide delegation
SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/documents.readonly",
    "https://www.googleapis.com/auth/presentations.readonly",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
    "https://www.googleapis.com/auth/calendar.readonly",
]

# Rate limiting / retry
MAX_CONCURRENT_REQUESTS = 8       # Parallel HTTP requests per client
MAX_RETRIES = 3                   # Retries after the first attempt
BASE_DELAY_SECONDS = 1.0          # First retry delay
MAX_DELAY_SECONDS = 10.0          # Cap on exponential backoff
JITTER_SECONDS = 1.0              # Uniform jitter added to each delay

# Pagination
DEFAULT_PAGE_SIZE = 1000          # files.list maximum
MAX_PAGES_PER_QUERY = 10000       # Safety cap on pagination loops

# Cache lifetimes (seconds)
METADATA_TTL = 3600
ANALYSIS_TTL = 7200
USER_STATS_TTL = 1800

# Batch scheduling
BATCH_SIZE = 50                   # Files dispatched concurrently per window
BATCH_PACING_SECONDS = 0.1        # Pause between windows
USER_BATCH_SIZE = 5               # Users dispatched concurrently per window

# Calendar scan window
CALENDAR_LOOKAHEAD_DAYS = 730     # Events starting up to two years ahead
EVENT_PAGE_SIZE = 2500            # events.list maximum

# Fields requested for every file metadata lookup
FILE_METADATA_FIELDS = (
    "id,name,mimeType,owners,permissions,modifiedTime,createdTime,size,"
    "parents,webViewLink,shared,driveId,spaces"
)


# ─── MIME Types ─────────────────────────────────────────────────────────────

MIME_DOCUMENT = "application/vnd.google-apps.document"
MIME_SPREADSHEET = "application/vnd.google-apps.spreadsheet"
MIME_PRESENTATION = "application/vnd.google-apps.presentation"
MIME_FOLDER = "application/vnd.google-apps.folder"

WORKSPACE_MIME_TYPES = [MIME_DOCUMENT, MIME_SPREADSHEET, MIME_PRESENTATION]

FILE_TYPE_DISPLAY_NAMES = {
    MIME_DOCUMENT: "Google Doc",
    MIME_SPREADSHEET: "Google Sheet",
    MIME_PRESENTATION: "Google Slide",
    MIME_FOLDER: "Folder",
}


# ─── Authentication ─────────────────────────────────────────────────────────

@dataclass
class AuthConfig:
    """Service account with domain-wide delegation."""
    credentials_path: str = ""     # Service account JSON key
    admin_user: str = ""           # Super admin impersonated for directory calls
    scopes: list[str] = field(default_factory=lambda: list(SCOPES))
    validate_access: bool = True   # Probe about.get when a client is first built


# ─── Retry Settings ─────────────────────────────────────────────────────────

@dataclass
class RetryConfig:
    """Backoff parameters for the call gateway."""
    max_retries: int = MAX_RETRIES
    base_delay: float = BASE_DELAY_SECONDS
    max_delay: float = MAX_DELAY_SECONDS
    jitter: float = JITTER_SECONDS


# ─── Cache Settings ─────────────────────────────────────────────────────────

@dataclass
class CacheConfig:
    """Hot (Redis) and durable (SQLite) cache tiers."""
    enabled: bool = True
    redis_url: str = ""            # Empty = in-process hot tier
    sqlite_path: str = ""          # Empty = no durable tier
    key_prefix: str = "drive_audit"
    metadata_ttl: int = METADATA_TTL
    analysis_ttl: int = ANALYSIS_TTL
    user_stats_ttl: int = USER_STATS_TTL


# ─── Analysis Settings ──────────────────────────────────────────────────────

@dataclass
class AnalysisConfig:
    """Feature switches for the sub-analysers."""
    enable_link_analysis: bool = True
    enable_sharing_analysis: bool = True
    enable_migration_analysis: bool = True
    enable_location_analysis: bool = True
    max_folder_depth: int = 100    # Ancestor walk cap for folder paths


# ─── Processing Settings ────────────────────────────────────────────────────

@dataclass
class ProcessingConfig:
    """Window scheduling for files and users."""
    batch_size: int = BATCH_SIZE
    pacing_delay: float = BATCH_PACING_SECONDS
    user_batch_size: int = USER_BATCH_SIZE
    verify_freshness: bool = True  # Probe modifiedTime before trusting cache


# ─── Drive Walk Settings ────────────────────────────────────────────────────

@dataclass
class DriveWalkConfig:
    """Controls for the my-drive / shared-drive walk."""
    enabled: bool = True
    include_shared_drives: bool = True
    include_members: bool = True   # List shared drive members
    classify_files: bool = True    # Orphan / cross-tenant classification


# ─── Calendar Settings ──────────────────────────────────────────────────────

@dataclass
class CalendarConfig:
    """Controls for the per-user calendar scan."""
    enabled: bool = True
    lookahead_days: int = CALENDAR_LOOKAHEAD_DAYS


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output directory and format settings."""
    base_dir: str = ""
    timestamp: str = ""
    formats: list[str] = field(default_factory=lambda: [
        "json", "csv", "markdown"
    ])
    event_log: str = ""            # JSONL progress log path, empty = off

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        if not self.base_dir:
            self.base_dir = os.path.join(
                os.getcwd(),
                f"drive_audit_{self.timestamp}"
            )

    @property
    def scan_dir(self) -> Path:
        return Path(self.base_dir)

    @property
    def json_dir(self) -> Path:
        return self.scan_dir / "json"

    @property
    def csv_dir(self) -> Path:
        return self.scan_dir / "csv"

    @property
    def reports_dir(self) -> Path:
        return self.scan_dir / "reports"

    def create_directories(self):
        for d in [self.json_dir, self.csv_dir, self.reports_dir]:
            d.mkdir(parents=True, exist_ok=True)


# ─── Master Configuration ───────────────────────────────────────────────────

_SECTIONS = ("retry", "cache", "analysis", "processing", "drives", "calendars", "output")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Top-level configuration for the entire engine."""
    primary_domain: str = ""
    auth: AuthConfig = field(default_factory=AuthConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    drives: DriveWalkConfig = field(default_factory=DriveWalkConfig)
    calendars: CalendarConfig = field(default_factory=CalendarConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        config.primary_domain = data.get("primary_domain", "")
        if "auth" in data:
            for k, v in data["auth"].items():
                if hasattr(config.auth, k):
                    setattr(config.auth, k, v)
        for section in _SECTIONS:
            if section not in data:
                continue
            target = getattr(config, section)
            for k, v in data[section].items():
                if hasattr(target, k):
                    setattr(target, k, v)
        config.verbose = data.get("verbose", False)
        return config

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "EngineConfig":
        """Build configuration from environment variables."""
        env = os.environ if environ is None else environ
        config = cls()
        config.apply_env(env)
        return config

    def apply_env(self, env) -> "EngineConfig":
        """Overlay any environment variables that are set."""
        if env.get("ADMIN_USER"):
            self.auth.admin_user = env["ADMIN_USER"]
        if env.get("GOOGLE_APPLICATION_CREDENTIALS"):
            self.auth.credentials_path = env["GOOGLE_APPLICATION_CREDENTIALS"]
        if env.get("PRIMARY_DOMAIN"):
            self.primary_domain = env["PRIMARY_DOMAIN"]
        if env.get("ENABLE_CACHING"):
            self.cache.enabled = _env_bool(env["ENABLE_CACHING"])
        if env.get("REDIS_URL"):
            self.cache.redis_url = env["REDIS_URL"]
        if env.get("CACHE_DB_PATH"):
            self.cache.sqlite_path = env["CACHE_DB_PATH"]
        try:
            if env.get("METADATA_TTL"):
                self.cache.metadata_ttl = int(env["METADATA_TTL"])
            if env.get("ANALYSIS_TTL"):
                self.cache.analysis_ttl = int(env["ANALYSIS_TTL"])
            if env.get("BATCH_SIZE"):
                self.processing.batch_size = int(env["BATCH_SIZE"])
        except ValueError as e:
            raise ConfigError(f"Invalid numeric environment value: {e}") from e
        return self

    def validate(self):
        """Raise ConfigError when a required setting is missing."""
        missing = []
        if not self.auth.admin_user:
            missing.append("ADMIN_USER")
        if not self.auth.credentials_path:
            missing.append("GOOGLE_APPLICATION_CREDENTIALS")
        if not self.primary_domain:
            missing.append("PRIMARY_DOMAIN")
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        if self.processing.batch_size < 1:
            raise ConfigError("batch_size must be at least 1")
