"""
Executive summary — one-page Markdown overview of the audit, rendered with jinja2.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import reduce
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..models import RiskTier, UserAggregate, UserCalendarReport, UserDriveReport, UserScanResult
from ..scoring.engine import calendar_recommendations

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "summary.md.j2"

TOP_USERS = 10


def build_overview(
    user_results: list[UserScanResult],
    drive_reports: Optional[list[UserDriveReport]] = None,
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> dict:
    """Organisation-wide totals folded from per-user aggregates, drive and calendar reports."""
    drive_reports = drive_reports or []
    aggregates = [r.aggregate for r in user_results if r.aggregate is not None]
    totals = reduce(UserAggregate.merge, aggregates, UserAggregate(user_email=""))

    external_users: set[str] = set()
    for report in drive_reports:
        external_users |= report.external_users

    drive_risk = {tier.value: 0 for tier in RiskTier}
    for report in drive_reports:
        drive_risk[report.risk_level.value] += 1

    riskiest = sorted(
        aggregates,
        key=lambda a: (a.high_risk, a.public_files, a.external_shares),
        reverse=True,
    )[:TOP_USERS]

    return {
        "users_scanned": len(user_results),
        "users_failed": sum(1 for r in user_results if r.error),
        "totals": totals.to_dict(),
        "riskiest_users": [a.to_dict() for a in riskiest if a.total_files],
        "drive_reports": len(drive_reports),
        "drive_risk": drive_risk,
        "external_users": sorted(external_users),
        "orphaned_files": sum(len(r.orphaned_files) for r in drive_reports),
        "cross_tenant_files": sum(len(r.cross_tenant_shares) for r in drive_reports),
        "shared_drives": sum(len(r.shared_drives) for r in drive_reports),
        "calendars": build_calendar_overview(calendar_reports or []),
    }


def build_calendar_overview(calendar_reports: list[UserCalendarReport]) -> dict:
    scanned = [r for r in calendar_reports if r.error is None]
    complexity = {tier.value: 0 for tier in RiskTier}
    external_domains: set[str] = set()
    for report in scanned:
        for tier, count in report.complexity_distribution().items():
            complexity[tier] += count
        external_domains |= report.external_domains

    recurring = sum(len(r.recurring_events) for r in scanned)
    return {
        "users": len(calendar_reports),
        "users_failed": len(calendar_reports) - len(scanned),
        "calendars": sum(len(r.calendars) for r in scanned),
        "future_events": sum(len(r.future_events) for r in scanned),
        "recurring_events": recurring,
        "external_meetings": sum(len(r.external_meetings) for r in scanned),
        "cross_tenant_meetings": sum(len(r.cross_tenant_meetings) for r in scanned),
        "complexity": complexity,
        "external_domains": sorted(external_domains),
        "recommendations": calendar_recommendations(
            recurring, len(external_domains), complexity[RiskTier.HIGH.value]
        ),
    }


def render_summary(
    user_results: list[UserScanResult],
    drive_reports: Optional[list[UserDriveReport]],
    scan_id: str,
    primary_domain: str = "",
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template(TEMPLATE_NAME)
    return template.render(
        scan_id=scan_id,
        primary_domain=primary_domain or "Unknown Domain",
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        overview=build_overview(user_results, drive_reports, calendar_reports),
        failed_users=[r for r in user_results if r.error],
    )


def export_executive_summary(
    user_results: list[UserScanResult],
    drive_reports: Optional[list[UserDriveReport]],
    output_dir: Path,
    scan_id: str,
    primary_domain: str = "",
    calendar_reports: Optional[list[UserCalendarReport]] = None,
) -> Path:
    """
    Generate a concise executive summary in Markdown.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"executive_summary_{scan_id}.md"

    content = render_summary(user_results, drive_reports, scan_id, primary_domain, calendar_reports)
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)

    return filepath
