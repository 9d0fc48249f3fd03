"""
Scoring Engine — Derives low/medium/high risk tiers from analysis results.

Scoring model:
  - Sharing risk and migration complexity are priority-ordered: first match wins.
  - File, drive and user risk are point systems: each condition adds points,
    and the total is mapped to a tier through a threshold table.
  - Every function here is pure and total: same inputs, same tier.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from ..models import FileCategory, MigrationIssue, RiskTier

if TYPE_CHECKING:
    from ..models import (
        AnalysisResult,
        DriveAggregate,
        EventFinding,
        LocationAnalysis,
        SharingAnalysis,
        UserDriveReport,
    )

# ---------------------------------------------------------------------------
# Point tables
# ---------------------------------------------------------------------------
FILE_POINTS = {
    "public": 3,
    "external_sharing": 2,
    "many_migration_issues": 1,
    "non_domain_links": 1,
    "many_links": 1,
    "orphaned": 2,
    "analysis_error": 1,
}

MIGRATION_COMPLEXITY_POINTS = {
    RiskTier.HIGH: 3,
    RiskTier.MEDIUM: 2,
    RiskTier.LOW: 1,
}

# (minimum points, tier), checked top-down
FILE_THRESHOLDS = [(6, RiskTier.HIGH), (3, RiskTier.MEDIUM)]
SHARED_DRIVE_THRESHOLDS = [(5, RiskTier.HIGH), (3, RiskTier.MEDIUM)]
MY_DRIVE_THRESHOLDS = [(4, RiskTier.HIGH), (2, RiskTier.MEDIUM)]
USER_THRESHOLDS = [(5, RiskTier.HIGH), (3, RiskTier.MEDIUM)]

MANY_LINKS = 20
MANY_ISSUES = 5
MANY_EXTERNAL_SHARES = 5
MANY_SHARES = 10
DEEP_PATH = 5

MANUAL_REVIEW_RECOMMENDATION = "Consider manual review and testing after migration"
FUNCTIONS_RECOMMENDATION = "Review formulas and functions for compatibility"

MANY_RECURRING_EVENTS = 50
MANY_EXTERNAL_DOMAINS = 10
MANY_HIGH_RISK_EVENTS = 100

RECURRING_EVENTS_RECOMMENDATION = "Consider migrating recurring events manually due to high volume"
EXTERNAL_DOMAINS_RECOMMENDATION = (
    "High number of external domains detected - coordinate with external partners"
)
HIGH_RISK_EVENTS_RECOMMENDATION = "Many high-risk events detected - consider phased migration approach"


def tier_for(points: int, thresholds: list[tuple[int, RiskTier]]) -> RiskTier:
    for minimum, tier in thresholds:
        if points >= minimum:
            return tier
    return RiskTier.LOW


# ---------------------------------------------------------------------------
# Per-analysis tiers
# ---------------------------------------------------------------------------

def sharing_risk(sharing: "SharingAnalysis") -> RiskTier:
    """Public link, then external count, then domain-wide, then raw share count."""
    external = len(sharing.external_shares)
    if sharing.public_link:
        return RiskTier.HIGH
    if external > MANY_EXTERNAL_SHARES:
        return RiskTier.HIGH
    if sharing.domain_sharing:
        return RiskTier.MEDIUM
    if external > 0:
        return RiskTier.MEDIUM
    if len(sharing.shared_with) > MANY_SHARES:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def migration_complexity(issues: list[MigrationIssue]) -> RiskTier:
    high = sum(1 for i in issues if i.severity == "high")
    medium = sum(1 for i in issues if i.severity == "medium")
    if high or medium > 3:
        return RiskTier.HIGH
    if medium or len(issues) > MANY_ISSUES:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def migration_recommendations(issues: list[MigrationIssue], complexity: RiskTier) -> list[str]:
    recommendations = []
    if complexity == RiskTier.HIGH:
        recommendations.append(MANUAL_REVIEW_RECOMMENDATION)
    if any("functions" in i.type for i in issues):
        recommendations.append(FUNCTIONS_RECOMMENDATION)
    return recommendations


def location_complexity(location: "LocationAnalysis") -> RiskTier:
    if location.location_type == "shared-drive":
        return RiskTier.HIGH
    if location.path_depth > DEEP_PATH:
        return RiskTier.MEDIUM
    if location.category == FileCategory.ORPHANED:
        return RiskTier.MEDIUM
    return RiskTier.LOW


# ---------------------------------------------------------------------------
# Overall file risk
# ---------------------------------------------------------------------------

def file_risk_points(result: "AnalysisResult", primary_domain: str) -> int:
    points = 0

    if result.sharing:
        if result.sharing.is_public:
            points += FILE_POINTS["public"]
        if result.sharing.has_external_sharing:
            points += FILE_POINTS["external_sharing"]

    if result.migration:
        points += MIGRATION_COMPLEXITY_POINTS.get(result.migration.complexity, 0)
        if len(result.migration.issues) > MANY_ISSUES:
            points += FILE_POINTS["many_migration_issues"]

    if result.links:
        links = result.links.links
        domain = primary_domain.lower()
        if any(domain not in link.lower() for link in links):
            points += FILE_POINTS["non_domain_links"]
        if len(links) > MANY_LINKS:
            points += FILE_POINTS["many_links"]

    if result.location and result.location.is_orphaned:
        points += FILE_POINTS["orphaned"]

    if result.errors:
        points += FILE_POINTS["analysis_error"]

    return points


def file_risk(result: "AnalysisResult", primary_domain: str) -> RiskTier:
    return tier_for(file_risk_points(result, primary_domain), FILE_THRESHOLDS)


# ---------------------------------------------------------------------------
# Drive and user risk
# ---------------------------------------------------------------------------

def shared_drive_risk(drive: "DriveAggregate") -> RiskTier:
    points = 0
    if drive.public_files > 0:
        points += 3
    if len(drive.external_members) > MANY_EXTERNAL_SHARES:
        points += 2
    elif drive.external_members:
        points += 1
    if drive.external_shares > 0:
        points += 1
    if not drive.restrictions.get("adminManagedRestrictions"):
        points += 1
    if not drive.restrictions.get("copyRequiresWriterPermission"):
        points += 1
    return tier_for(points, SHARED_DRIVE_THRESHOLDS)


def my_drive_risk(drive: "DriveAggregate") -> RiskTier:
    points = 0
    if drive.public_files > 0:
        points += 3
    if drive.external_shares > MANY_SHARES:
        points += 2
    elif drive.external_shares > 0:
        points += 1
    if drive.has_link_sharing:
        points += 1
    return tier_for(points, MY_DRIVE_THRESHOLDS)


def _count_points(count: int, steps: Iterable[tuple[int, int]]) -> int:
    """Points for the first (above, points) step the count exceeds."""
    for above, points in steps:
        if count > above:
            return points
    return 0


def overall_drive_risk(report: "UserDriveReport") -> RiskTier:
    points = _count_points(len(report.external_users), [(10, 3), (5, 2), (0, 1)])
    points += _count_points(len(report.orphaned_files), [(50, 2), (10, 1)])

    if report.my_drive and report.my_drive.public_files > 0:
        points += 2
    if any(d.public_files > 0 for d in report.shared_drives):
        points += 2
    if len(report.shared_drives) > 10:
        points += 1
    if report.my_drive and report.my_drive.has_link_sharing:
        points += 1
    return tier_for(points, USER_THRESHOLDS)


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------

def calendar_risk(access_role: str, primary: bool) -> RiskTier:
    if access_role in ("reader", "freeBusyReader"):
        return RiskTier.LOW
    if access_role in ("writer", "editor"):
        return RiskTier.MEDIUM
    if access_role == "owner" and primary:
        return RiskTier.HIGH
    return RiskTier.MEDIUM


def event_complexity(event: "EventFinding") -> RiskTier:
    """Rooms, public visibility or a recurring external series, then any one complication."""
    if event.meeting_rooms or event.visibility == "public":
        return RiskTier.HIGH
    if event.recurring and event.has_external_attendees:
        return RiskTier.HIGH
    if event.recurring or event.has_external_attendees or event.has_meet:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def calendar_recommendations(recurring_events: int, external_domains: int, high_risk_events: int) -> list[str]:
    recommendations = []
    if recurring_events > MANY_RECURRING_EVENTS:
        recommendations.append(RECURRING_EVENTS_RECOMMENDATION)
    if external_domains > MANY_EXTERNAL_DOMAINS:
        recommendations.append(EXTERNAL_DOMAINS_RECOMMENDATION)
    if high_risk_events > MANY_HIGH_RISK_EVENTS:
        recommendations.append(HIGH_RISK_EVENTS_RECOMMENDATION)
    return recommendations
