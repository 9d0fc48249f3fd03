"""Tests for the risk and complexity tables."""

import pytest

from drive_audit_engine.models import (
    AnalysisError,
    AnalysisResult,
    DriveAggregate,
    EventFinding,
    FileCategory,
    FileClassification,
    LinkAnalysis,
    LocationAnalysis,
    MigrationAnalysis,
    MigrationIssue,
    RiskTier,
    ShareInfo,
    SharingAnalysis,
    UserDriveReport,
)
from drive_audit_engine.scoring import (
    calendar_recommendations,
    calendar_risk,
    event_complexity,
    file_risk,
    file_risk_points,
    location_complexity,
    migration_complexity,
    migration_recommendations,
    my_drive_risk,
    overall_drive_risk,
    shared_drive_risk,
    sharing_risk,
    tier_for,
)
from drive_audit_engine.scoring.engine import FILE_THRESHOLDS


def issue(severity, kind="feature"):
    return MigrationIssue(type=kind, severity=severity, description="")


def external(n):
    return [ShareInfo(email=f"u{i}@partner.org", role="reader", type="user", domain="partner.org") for i in range(n)]


def classified(i):
    return FileClassification(
        file_id=f"f{i}", name="x", mime_type="", category=FileCategory.ORPHANED, reason=""
    )


# ---------------------------------------------------------------------------
# Ordered rules
# ---------------------------------------------------------------------------

class TestTierFor:
    @pytest.mark.parametrize("points,tier", [
        (0, RiskTier.LOW), (2, RiskTier.LOW), (3, RiskTier.MEDIUM),
        (5, RiskTier.MEDIUM), (6, RiskTier.HIGH), (11, RiskTier.HIGH),
    ])
    def test_file_thresholds(self, points, tier):
        assert tier_for(points, FILE_THRESHOLDS) == tier


class TestSharingRisk:
    def test_public_first(self):
        assert sharing_risk(SharingAnalysis(public_link=True)) == RiskTier.HIGH

    def test_many_external(self):
        assert sharing_risk(SharingAnalysis(external_shares=external(6))) == RiskTier.HIGH

    def test_domain_wide(self):
        assert sharing_risk(SharingAnalysis(domain_sharing=True)) == RiskTier.MEDIUM

    def test_few_external(self):
        assert sharing_risk(SharingAnalysis(external_shares=external(1))) == RiskTier.MEDIUM

    def test_many_internal_shares(self):
        internal = [ShareInfo(email=f"u{i}@acme.com", role="reader", type="user", domain="acme.com") for i in range(11)]
        assert sharing_risk(SharingAnalysis(shared_with=internal)) == RiskTier.MEDIUM

    def test_private(self):
        assert sharing_risk(SharingAnalysis()) == RiskTier.LOW


class TestMigrationComplexity:
    def test_any_high_issue(self):
        assert migration_complexity([issue("high")]) == RiskTier.HIGH

    def test_more_than_three_medium(self):
        assert migration_complexity([issue("medium")] * 4) == RiskTier.HIGH
        assert migration_complexity([issue("medium")] * 3) == RiskTier.MEDIUM

    def test_many_low(self):
        assert migration_complexity([issue("low")] * 6) == RiskTier.MEDIUM
        assert migration_complexity([issue("low")] * 5) == RiskTier.LOW

    def test_recommendations(self):
        assert migration_recommendations([issue("high", "google-sheets-functions")], RiskTier.HIGH) == [
            "Consider manual review and testing after migration",
            "Review formulas and functions for compatibility",
        ]
        assert migration_recommendations([issue("low")], RiskTier.LOW) == []


class TestLocationComplexity:
    def test_shared_drive_is_high(self):
        assert location_complexity(LocationAnalysis(location_type="shared-drive")) == RiskTier.HIGH

    def test_inaccessible_shared_drive_is_not_high(self):
        assert location_complexity(LocationAnalysis(location_type="shared-drive-inaccessible")) == RiskTier.LOW

    def test_deep_path(self):
        assert location_complexity(LocationAnalysis(folder_path=list("abcdef"))) == RiskTier.MEDIUM
        assert location_complexity(LocationAnalysis(folder_path=list("abcde"))) == RiskTier.LOW

    def test_orphaned(self):
        assert location_complexity(LocationAnalysis(category=FileCategory.ORPHANED)) == RiskTier.MEDIUM


# ---------------------------------------------------------------------------
# File risk
# ---------------------------------------------------------------------------

class TestFileRisk:
    def test_empty_result_is_low(self):
        assert file_risk(AnalysisResult(file_id="f"), "acme.com") == RiskTier.LOW

    def test_public_external_high_migration_is_high(self):
        result = AnalysisResult(
            file_id="f",
            sharing=SharingAnalysis(public_link=True, external_shares=external(1)),
            migration=MigrationAnalysis(complexity=RiskTier.HIGH),
        )
        assert file_risk_points(result, "acme.com") == 3 + 2 + 3
        assert file_risk(result, "acme.com") == RiskTier.HIGH

    def test_links_outside_domain(self):
        result = AnalysisResult(
            file_id="f",
            links=LinkAnalysis(links=["https://docs.google.com/document/d/x"] * 21),
        )
        assert file_risk_points(result, "acme.com") == 2

    def test_links_inside_domain_only(self):
        result = AnalysisResult(file_id="f", links=LinkAnalysis(links=["https://intranet.acme.com/page"]))
        assert file_risk_points(result, "acme.com") == 0

    def test_orphaned_and_errors(self):
        result = AnalysisResult(
            file_id="f",
            location=LocationAnalysis(category=FileCategory.ORPHANED),
            errors=[AnalysisError("links", "boom")],
        )
        assert file_risk_points(result, "acme.com") == 3
        assert file_risk(result, "acme.com") == RiskTier.MEDIUM

    def test_many_migration_issues(self):
        result = AnalysisResult(
            file_id="f",
            migration=MigrationAnalysis(issues=[issue("low")] * 6, complexity=RiskTier.MEDIUM),
        )
        assert file_risk_points(result, "acme.com") == 2 + 1


# ---------------------------------------------------------------------------
# Drive risk
# ---------------------------------------------------------------------------

class TestDriveRisk:
    def test_locked_down_shared_drive_is_low(self):
        drive = DriveAggregate(
            kind="shared-drive",
            restrictions={"adminManagedRestrictions": True, "copyRequiresWriterPermission": True},
        )
        assert shared_drive_risk(drive) == RiskTier.LOW

    def test_unrestricted_shared_drive_with_guests(self):
        guests = [f"g{i}@partner.org" for i in range(6)]
        drive = DriveAggregate(kind="shared-drive", external_members=guests, external_shares=1)
        assert shared_drive_risk(drive) == RiskTier.HIGH

    def test_unrestricted_empty_shared_drive_is_low(self):
        assert shared_drive_risk(DriveAggregate(kind="shared-drive")) == RiskTier.LOW

    def test_public_shared_drive(self):
        drive = DriveAggregate(kind="shared-drive", public_files=1)
        assert shared_drive_risk(drive) == RiskTier.HIGH

    def test_my_drive(self):
        assert my_drive_risk(DriveAggregate(kind="my-drive")) == RiskTier.LOW
        assert my_drive_risk(DriveAggregate(kind="my-drive", external_shares=3, has_link_sharing=True)) == RiskTier.MEDIUM
        assert my_drive_risk(DriveAggregate(kind="my-drive", public_files=1, has_link_sharing=True)) == RiskTier.HIGH

    def test_overall_quiet_user(self):
        assert overall_drive_risk(UserDriveReport(user_email="a@acme.com")) == RiskTier.LOW

    def test_overall_many_external_users(self):
        report = UserDriveReport(
            user_email="a@acme.com",
            external_users={f"u{i}@partner.org" for i in range(11)},
            my_drive=DriveAggregate(kind="my-drive", public_files=1),
        )
        assert overall_drive_risk(report) == RiskTier.HIGH

    def test_overall_many_orphans(self):
        report = UserDriveReport(
            user_email="a@acme.com",
            orphaned_files=[classified(i) for i in range(51)],
            external_users={"u@partner.org"},
        )
        assert overall_drive_risk(report) == RiskTier.MEDIUM


# ---------------------------------------------------------------------------
# Calendars
# ---------------------------------------------------------------------------

class TestCalendarRisk:
    @pytest.mark.parametrize("role,primary,expected", [
        ("freeBusyReader", False, RiskTier.LOW),
        ("reader", False, RiskTier.LOW),
        ("writer", False, RiskTier.MEDIUM),
        ("owner", True, RiskTier.HIGH),
        ("owner", False, RiskTier.MEDIUM),
    ])
    def test_roles(self, role, primary, expected):
        assert calendar_risk(role, primary) == expected

    def test_event_complexity(self):
        assert event_complexity(EventFinding("e", "c")) == RiskTier.LOW
        assert event_complexity(EventFinding("e", "c", has_meet=True)) == RiskTier.MEDIUM
        assert event_complexity(EventFinding("e", "c", recurring=True)) == RiskTier.MEDIUM
        assert event_complexity(EventFinding("e", "c", visibility="public")) == RiskTier.HIGH
        assert event_complexity(EventFinding("e", "c", meeting_rooms=["r@resource.calendar.google.com"])) == RiskTier.HIGH
        assert event_complexity(EventFinding("e", "c", recurring=True, external_domains=["partner.org"])) == RiskTier.HIGH

    def test_recommendations(self):
        assert calendar_recommendations(50, 10, 100) == []
        assert len(calendar_recommendations(51, 11, 101)) == 3
        assert calendar_recommendations(0, 11, 0)[0].startswith("High number of external domains")
