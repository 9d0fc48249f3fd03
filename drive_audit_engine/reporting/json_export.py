"""
JSON exporter — Produces the full raw JSON output of the audit.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..models import UserCalendarReport, UserDriveReport, UserScanResult
from .executive_summary import build_overview


def export_json(
    user_results: list[UserScanResult],
    drive_reports: Optional[list[UserDriveReport]],
    output_dir: Path,
    scan_id: str,
    stats: Optional[dict] = None,
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> Path:
    """
    Write full audit results to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    drive_reports = drive_reports or []
    calendar_reports = calendar_reports or []

    payload = {
        "metadata": {
            "engine": "Drive Audit Engine",
            "version": "1.0.0",
            "scan_id": scan_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
        },
        "overview": build_overview(user_results, drive_reports, calendar_reports),
        "users": [r.to_dict() for r in user_results],
        "drives": [r.to_dict() for r in drive_reports],
        "calendars": [r.to_dict() for r in calendar_reports],
        "stats": stats or {},
    }

    filename = f"drive_audit_{scan_id}.json"
    filepath = output_dir / filename

    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
