"""
CSV exporter — Produces flat CSV tables of files, users, external shares,
classified files and notable calendar events.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Optional

from ..models import FileOutcome, UserCalendarReport, UserDriveReport, UserScanResult

FILE_FIELDS = [
    "user_email", "file_id", "file_name", "mime_type", "status", "from_cache",
    "overall_risk", "sharing_type", "sharing_risk", "external_shares",
    "public_link", "links", "incompatible_functions", "migration_complexity",
    "location_type", "category", "folder_path", "errors", "processing_time",
]

USER_FIELDS = [
    "user_email", "total_files", "external_shares", "public_files",
    "high_risk", "medium_risk", "low_risk", "files_with_links",
    "errors", "cache_hits", "scan_error",
]

SHARE_FIELDS = [
    "user_email", "drive_kind", "drive_id", "drive_name", "document_id",
    "document_name", "document_type", "external_user", "external_domain",
    "role", "permission_type",
]

CLASSIFICATION_FIELDS = [
    "user_email", "file_id", "name", "mime_type", "category", "reason",
    "owners", "folder_id", "folder_name", "created_time", "modified_time", "size",
]

EVENT_FIELDS = [
    "user_email", "calendar_id", "event_id", "summary", "start", "end", "future",
    "recurring", "recurrence_rule", "external_domains", "cross_tenant", "attendee_count",
    "has_meet", "meeting_rooms", "visibility", "organizer", "complexity",
]


def file_row(outcome: FileOutcome) -> dict:
    row = {
        "user_email": outcome.user_email,
        "file_id": outcome.file_id,
        "status": outcome.status,
        "from_cache": outcome.from_cache,
        "processing_time": round(outcome.processing_time, 4),
        "errors": outcome.error or "",
    }
    analysis = outcome.analysis
    if analysis is None:
        return row

    row.update({
        "file_name": analysis.file_name,
        "mime_type": analysis.mime_type,
        "overall_risk": analysis.overall_risk.value,
        "errors": "; ".join(f"{e.type}: {e.message}" for e in analysis.errors),
    })
    if analysis.sharing:
        row.update({
            "sharing_type": analysis.sharing.sharing_type,
            "sharing_risk": analysis.sharing.risk_level.value,
            "external_shares": "; ".join(analysis.sharing.cross_tenant_emails),
            "public_link": analysis.sharing.public_link,
        })
    if analysis.links:
        row["links"] = len(analysis.links.links)
        row["incompatible_functions"] = ", ".join(analysis.links.incompatible_functions)
    if analysis.migration:
        row["migration_complexity"] = analysis.migration.complexity.value
    if analysis.location:
        row.update({
            "location_type": analysis.location.location_type,
            "category": analysis.location.category.value,
            "folder_path": "/".join(analysis.location.folder_path),
        })
    return row


def export_csv(
    user_results: list[UserScanResult],
    drive_reports: Optional[list[UserDriveReport]],
    output_dir: Path,
    scan_id: str,
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> list[Path]:
    """
    Write CSV files for files, per-user totals, drive findings and calendar events.

    Returns:
        List of created CSV file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    drive_reports = drive_reports or []
    created = []

    # --- Files CSV ---
    files_path = output_dir / f"files_{scan_id}.csv"
    with open(files_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=FILE_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for result in user_results:
            for outcome in result.outcomes:
                writer.writerow(file_row(outcome))
    created.append(files_path)

    # --- Users CSV ---
    users_path = output_dir / f"users_{scan_id}.csv"
    with open(users_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=USER_FIELDS)
        writer.writeheader()
        for result in user_results:
            agg = result.aggregate
            row = {"user_email": result.user_email, "scan_error": result.error or ""}
            if agg is not None:
                row.update({
                    "total_files": agg.total_files,
                    "external_shares": agg.external_shares,
                    "public_files": agg.public_files,
                    "high_risk": agg.high_risk,
                    "medium_risk": agg.medium_risk,
                    "low_risk": agg.low_risk,
                    "files_with_links": agg.files_with_links,
                    "errors": agg.errors,
                    "cache_hits": agg.cache_hits,
                })
            writer.writerow(row)
    created.append(users_path)

    if calendar_reports:
        created.append(export_calendar_events(calendar_reports, output_dir, scan_id))

    if not drive_reports:
        return created

    # --- External shares CSV ---
    shares_path = output_dir / f"external_shares_{scan_id}.csv"
    with open(shares_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=SHARE_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for report in drive_reports:
            drives = [d for d in [report.my_drive, *report.shared_drives] if d is not None]
            for drive in drives:
                for detail in drive.share_details:
                    writer.writerow({"user_email": report.user_email, **detail})
    created.append(shares_path)

    # --- Classified files CSV ---
    classified_path = output_dir / f"classified_files_{scan_id}.csv"
    with open(classified_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=CLASSIFICATION_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for report in drive_reports:
            for item in [*report.orphaned_files, *report.cross_tenant_shares]:
                row = item.to_dict()
                row["owners"] = "; ".join(item.owners)
                writer.writerow({"user_email": report.user_email, **row})
    created.append(classified_path)

    return created


def export_calendar_events(calendar_reports: list[UserCalendarReport], output_dir: Path, scan_id: str) -> Path:
    events_path = output_dir / f"calendar_events_{scan_id}.csv"
    with open(events_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=EVENT_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for report in calendar_reports:
            for event in report.events:
                row = event.to_dict()
                row["external_domains"] = "; ".join(event.external_domains)
                row["meeting_rooms"] = "; ".join(event.meeting_rooms)
                writer.writerow({"user_email": report.user_email, **row})
    return events_path
