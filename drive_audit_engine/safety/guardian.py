"""
Safety Guardian — Enforces strict read-only access to Google APIs.
Every outbound request is checked for method and destination before it is sent.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlparse

logger = logging.getLogger("drive_audit_engine.safety")

# ─── Allowed traffic ────────────────────────────────────────────────────────

READ_METHODS = {"GET", "HEAD", "OPTIONS"}

ALLOWED_HOSTS = [
    re.compile(r"(^|\.)googleapis\.com$"),
]

# Mutating sub-resources that must never be reached, whatever the method
BLOCKED_PATH_PATTERNS = [
    re.compile(r"/files/[^/]+/copy$", re.IGNORECASE),
    re.compile(r"/files/[^/]+/watch$", re.IGNORECASE),
    re.compile(r"/files/trash$", re.IGNORECASE),
    re.compile(r"/files/generateIds$", re.IGNORECASE),
    re.compile(r"/drives/[^/]+/(hide|unhide)$", re.IGNORECASE),
    re.compile(r":batchUpdate$", re.IGNORECASE),
    re.compile(r"/users/[^/]+/makeAdmin$", re.IGNORECASE),
    re.compile(r"/events/(import|quickAdd|watch)$", re.IGNORECASE),
    re.compile(r"/events/[^/]+/move$", re.IGNORECASE),
    re.compile(r"/calendars/[^/]+/clear$", re.IGNORECASE),
    re.compile(r"/calendarList/watch$", re.IGNORECASE),
]


class SafetyViolation(Exception):
    """Raised when a write or off-host request is attempted."""
    pass


class SafetyGuardian:
    """
    Validates every outbound HTTP request to ensure read-only operation.
    Maintains an audit log of all safety checks and violations.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0
        self.started_at: str = datetime.now(timezone.utc).isoformat()

    def validate_request(self, method: str, url: str) -> bool:
        """
        Validate that a request is read-only and addressed to a Google API.
        Returns True if safe, raises SafetyViolation if not.
        """
        self.checks_performed += 1
        method_upper = method.upper()
        parsed = urlparse(url)

        if not any(p.search(parsed.hostname or "") for p in ALLOWED_HOSTS):
            self._record_violation(method_upper, url, "Host outside Google APIs")
            raise SafetyViolation(f"SAFETY VIOLATION: Host not allowed: {method_upper} {url}")

        for pattern in BLOCKED_PATH_PATTERNS:
            if pattern.search(parsed.path):
                self._record_violation(method_upper, url, "Blocked write-pattern URL")
                raise SafetyViolation(
                    f"SAFETY VIOLATION: Write-pattern URL detected: {method_upper} {url}"
                )

        if method_upper not in READ_METHODS:
            self._record_violation(method_upper, url, "Write HTTP method blocked")
            raise SafetyViolation(
                f"SAFETY VIOLATION: Write method blocked: {method_upper} {url}"
            )

        return True

    def _record_violation(self, method: str, url: str, reason: str):
        violation = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method,
            "url": url,
            "reason": reason,
        }
        self.violations.append(violation)
        logger.critical(f"SAFETY VIOLATION: {reason} - {method} {url}")

    def get_audit_record(self) -> dict:
        """Return the full safety audit record."""
        return {
            "safety_guardian": {
                "mode": "READ-ONLY",
                "started_at": self.started_at,
                "checks_performed": self.checks_performed,
                "violations_detected": len(self.violations),
                "violations": self.violations,
                "status": "CLEAN" if not self.violations else "VIOLATIONS_DETECTED",
            }
        }

    @staticmethod
    def print_banner():
        """Print the read-only notice."""
        print("=" * 75)
        print("  READ-ONLY DRIVE AUDIT -- NO FILES, PERMISSIONS OR DRIVES WILL BE CHANGED")
        print("  * Only GET requests to *.googleapis.com are permitted")
        print("  * Every request is validated before execution")
        print("=" * 75)
