"""Tests for the drive graph and the drive walker."""

import pytest

from conftest import ALICE, BOB, FakeClient, anyone_permission, domain_permission, user_permission
from drive_audit_engine.api.resilience import ExternalAPIError
from drive_audit_engine.drives import DriveGraph, DriveGraphWalker
from drive_audit_engine.drives.walker import CLASSIFY_QUERY
from drive_audit_engine.models import FileCategory, FileRecord, RiskTier
from drive_audit_engine.processing import Stage


@pytest.fixture
def walker(clients, config, fake_sleep):
    return DriveGraphWalker(clients, config, sleep=fake_sleep)


def folder(folder_id, owner=ALICE, parents=None, name=None):
    return {
        "id": folder_id,
        "name": name or folder_id,
        "owners": [{"emailAddress": owner}],
        "parents": list(parents or []),
    }


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class TestDriveGraph:
    def test_seed_computes_cross_tenant_set(self, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("mine"), folder("theirs", owner="pat@partner.org"), {"name": "no id"}])
        assert set(graph.nodes) == {"mine", "theirs"}
        assert graph.cross_tenant_ids == {"theirs"}

    async def test_direct_parent_needs_no_lookup(self, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("theirs", owner="pat@partner.org")])
        found = await graph.foreign_ancestor(["theirs"])
        assert found.id == "theirs"
        assert alice.calls == []

    async def test_unseeded_ancestor_resolved_once(self, workspace, alice):
        workspace.add_folder("top", owner="pat@partner.org")
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("a", parents=["top"]), folder("b", parents=["top"])])

        assert (await graph.foreign_ancestor(["a"])).id == "top"
        assert (await graph.foreign_ancestor(["b"])).id == "top"
        assert graph.lookups == 1
        assert alice.count("get_file") == 1

    async def test_clean_chain_is_memoised(self, workspace, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("root"), folder("mid", parents=["root"])])
        assert await graph.foreign_ancestor(["mid"]) is None
        assert graph._memo == {"mid": None, "root": None}
        assert await graph.foreign_ancestor(["mid"]) is None

    async def test_only_the_winning_chain_is_marked(self, workspace, alice):
        # x has two parents: a clean branch "clean" and a branch reaching "theirs"
        graph = DriveGraph(alice, "acme.com")
        graph.seed([
            folder("x", parents=["clean", "via"]),
            folder("clean"),
            folder("via", parents=["theirs"]),
            folder("theirs", owner="pat@partner.org"),
        ])
        assert (await graph.foreign_ancestor(["x"])).id == "theirs"
        assert graph._memo.get("clean") is None
        assert graph._memo["via"] == "theirs"
        assert graph._memo["x"] == "theirs"

    async def test_cycle_terminates(self, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("a", parents=["b"]), folder("b", parents=["c"]), folder("c", parents=["a"])])
        assert await graph.foreign_ancestor(["a"]) is None

    async def test_self_parent_terminates(self, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("a", parents=["a"])])
        assert await graph.foreign_ancestor(["a"]) is None
        path, complete = await graph.folder_path("a")
        assert path == ["a"]
        assert not complete

    async def test_inaccessible_folder_is_a_dead_end(self, workspace, alice):
        workspace.failing["locked"] = ExternalAPIError(403, "insufficient permissions")
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("a", parents=["locked"])])

        assert await graph.foreign_ancestor(["a"]) is None
        assert graph.nodes["locked"].accessible is False
        assert await graph.foreign_ancestor(["a"]) is None
        assert graph.lookups == 1

    async def test_deep_chain_is_iterative(self, alice):
        depth = 5000
        folders = [folder(f"n{i}", parents=[f"n{i + 1}"]) for i in range(depth)]
        folders.append(folder(f"n{depth}", owner="pat@partner.org"))
        graph = DriveGraph(alice, "acme.com")
        graph.seed(folders)
        assert (await graph.foreign_ancestor(["n0"])).id == f"n{depth}"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassification:
    async def test_classify_files(self, workspace, alice, walker):
        workspace.add_folder("root", name="My Drive", root=True)
        workspace.add_folder("partner", name="Partner Files", owner="pat@partner.org")
        workspace.add_folder("sub", parents=["partner"])
        workspace.add_file("normal", parents=["root"])
        workspace.add_file("nested", parents=["sub"])
        workspace.add_file("orphan", parents=[])
        workspace.add_file("foreign", parents=[], owner="pat@partner.org")

        items = {i.file_id: i for i in await walker.classify_files(alice, ALICE)}
        assert set(items) == {"nested", "orphan", "foreign", "partner", "sub"}
        assert items["orphan"].category == FileCategory.ORPHANED
        assert items["foreign"].category == FileCategory.CROSS_TENANT_SHARE
        assert items["nested"].category == FileCategory.FILE_IN_CROSS_TENANT_FOLDER
        assert items["nested"].folder_id == "partner"
        assert items["nested"].folder_name == "Partner Files"
        assert "partner.org" in items["nested"].reason
        assert items["foreign"].owners == ["pat@partner.org"]
        assert items["partner"].category == FileCategory.CROSS_TENANT_SHARE
        assert items["sub"].category == FileCategory.FILE_IN_CROSS_TENANT_FOLDER

    async def test_folder_listing_failure_falls_back_to_lookups(self, workspace, alice, walker):
        workspace.add_folder("partner", owner="pat@partner.org")
        workspace.add_file("nested", parents=["partner"])
        workspace.failing["list_folders"] = ExternalAPIError(500, "backend")

        errors = []
        items = {i.file_id: i for i in await walker.classify_files(alice, ALICE, errors)}
        assert items["nested"].category == FileCategory.FILE_IN_CROSS_TENANT_FOLDER
        assert alice.count("get_file") == 1
        assert errors == []

    async def test_listing_failure_keeps_earlier_findings(self, workspace, alice, walker):
        workspace.add_file("orphan1", parents=[])
        workspace.add_file("orphan2", parents=[])
        workspace.add_file("orphan3", parents=[])
        workspace.fail_after[CLASSIFY_QUERY] = (2, ExternalAPIError(503, "backend unavailable"))

        errors = []
        items = await walker.classify_files(alice, ALICE, errors)
        assert [i.file_id for i in items] == ["orphan1", "orphan2"]
        assert len(errors) == 1
        assert errors[0].startswith("File classification incomplete")
        assert "backend unavailable" in errors[0]

    async def test_classify_file_normal(self, alice):
        graph = DriveGraph(alice, "acme.com")
        graph.seed([folder("root")])
        record = FileRecord.from_api({"id": "f", "parents": ["root"], "owners": [{"emailAddress": ALICE}]})
        assert await DriveGraphWalker.classify_file(graph, record) is None


# ---------------------------------------------------------------------------
# Drive walk
# ---------------------------------------------------------------------------

class TestMyDrive:
    async def test_counts_and_exposure(self, workspace, alice, walker, recorder):
        workspace.storage_used = 2048
        workspace.add_file("pub", shared=True, modified="2024-03-01T00:00:00Z",
                           permissions=[user_permission(ALICE, "owner"), anyone_permission()])
        workspace.add_file("ext", shared=True, modified="2024-05-01T00:00:00Z",
                           permissions=[user_permission(ALICE, "owner"), user_permission("eve@partner.org", "writer")])
        workspace.add_file("dom", shared=True, permissions=[domain_permission()])
        workspace.add_file("private")
        workspace.add_file("bobs", owner=BOB, shared=True, permissions=[anyone_permission()])

        drive = await walker.analyse_my_drive(alice, ALICE, recorder)
        assert drive.total_files == 4
        assert drive.shared_files == 3
        assert drive.public_files == 1
        assert drive.has_link_sharing
        assert drive.external_shares == 1
        assert drive.external_users == {"eve@partner.org"}
        assert drive.storage_used == 2048
        assert drive.last_activity == "2024-05-01T00:00:00Z"
        assert drive.share_details[0]["document_id"] == "ext"
        assert drive.share_details[0]["role"] == "writer"
        assert drive.risk_level == RiskTier.HIGH
        assert alice.count("list_permissions") == 3
        assert Stage.EXTERNAL_SHARE_DETECTED.value in recorder.stages("ext")

    async def test_permission_failure_skips_file(self, workspace, alice, walker):
        workspace.add_file("a", shared=True, permissions=[anyone_permission()])
        workspace.add_file("b", shared=True, permissions=[anyone_permission()])
        workspace.failing[("permissions", "a")] = ExternalAPIError(403, "forbidden")

        drive = await walker.analyse_my_drive(alice, ALICE)
        assert drive.public_files == 1
        assert drive.error is None

    async def test_listing_failure_is_recorded_on_drive(self, workspace, alice, walker):
        workspace.failing["about"] = ExternalAPIError(500, "backend")
        drive = await walker.analyse_my_drive(alice, ALICE)
        assert "backend" in drive.error
        assert drive.risk_level == RiskTier.LOW


class TestSharedDrives:
    async def test_members_and_files(self, workspace, alice, walker, recorder):
        workspace.drives["d1"] = {"id": "d1", "name": "Finance", "restrictions": {"adminManagedRestrictions": True}}
        workspace.permissions["d1"] = [
            user_permission(ALICE, "organizer"),
            user_permission("auditor@partner.org", "reader"),
        ]
        workspace.add_file("s1", drive_id="d1", shared=True,
                           permissions=[user_permission("client@partner.org")])
        workspace.add_file("s2", drive_id="d1")
        workspace.add_file("elsewhere")

        drives = await walker.analyse_shared_drives(alice, ALICE, recorder)
        assert len(drives) == 1
        drive = drives[0]
        assert drive.name == "Finance"
        assert drive.total_files == 2
        assert drive.member_count == 2
        assert drive.external_members == ["auditor@partner.org"]
        assert drive.external_users == {"auditor@partner.org", "client@partner.org"}
        assert drive.external_shares == 1
        # one guest 1 + external share 1 + copy unrestricted 1
        assert drive.risk_level == RiskTier.MEDIUM
        assert recorder.stages()[0] == Stage.SHARED_DRIVE_ANALYSIS_START.value
        assert recorder.stages()[-1] == Stage.SHARED_DRIVE_ANALYSIS_COMPLETE.value

    async def test_members_skipped_when_disabled(self, workspace, alice, config, walker):
        config.drives.include_members = False
        workspace.drives["d1"] = {"id": "d1", "name": "Finance"}
        workspace.permissions["d1"] = [user_permission("auditor@partner.org")]
        drive = (await walker.analyse_shared_drives(alice, ALICE))[0]
        assert drive.member_count == 0
        assert drive.external_members == []

    async def test_one_failing_drive_does_not_stop_the_others(self, workspace, alice, walker):
        workspace.drives["bad"] = {"id": "bad", "name": "Locked"}
        workspace.drives["good"] = {"id": "good", "name": "Open"}
        workspace.failing[("list_files", "drive", "bad")] = ExternalAPIError(403, "forbidden")
        workspace.add_file("g1", drive_id="good")

        drives = {d.drive_id: d for d in await walker.analyse_shared_drives(alice, ALICE)}
        assert "forbidden" in drives["bad"].error
        assert drives["good"].error is None
        assert drives["good"].total_files == 1


class TestUserDrives:
    async def test_full_report(self, workspace, walker, recorder):
        workspace.drives["d1"] = {"id": "d1", "name": "Finance"}
        workspace.permissions["d1"] = [user_permission("auditor@partner.org")]
        workspace.add_folder("root", name="My Drive", root=True)
        workspace.add_file("ext", parents=["root"], shared=True, permissions=[user_permission("eve@partner.org")])
        workspace.add_file("orphan", parents=[])

        report = await walker.analyse_user_drives(ALICE, recorder)
        assert report.my_drive is not None
        assert len(report.shared_drives) == 1
        assert [f.file_id for f in report.orphaned_files] == ["orphan"]
        assert report.cross_tenant_shares == []
        assert report.external_users == {"eve@partner.org", "auditor@partner.org"}
        assert report.errors == []
        assert report.summary()["total_external_users"] == 2
        assert recorder.stages()[0] == Stage.DRIVE_ANALYSIS_START.value
        assert recorder.stages()[-1] == Stage.DRIVE_ANALYSIS_COMPLETE.value

    async def test_shared_drive_listing_failure_goes_on_report(self, workspace, walker):
        workspace.failing["list_drives"] = ExternalAPIError(403, "Shared drives disabled")
        report = await walker.analyse_user_drives(ALICE)
        assert report.shared_drives == []
        assert any("Shared drives disabled" in e for e in report.errors)
        assert report.my_drive.error is None

    async def test_partial_classification_goes_on_report(self, workspace, walker):
        workspace.add_file("orphan", parents=[])
        workspace.add_file("later", parents=[])
        workspace.fail_after[CLASSIFY_QUERY] = (1, ExternalAPIError(503, "backend unavailable"))

        report = await walker.analyse_user_drives(ALICE)
        assert [f.file_id for f in report.orphaned_files] == ["orphan"]
        assert any("backend unavailable" in e for e in report.errors)

    async def test_switches(self, workspace, alice, config, walker):
        config.drives.include_shared_drives = False
        config.drives.classify_files = False
        workspace.add_file("orphan", parents=[])
        report = await walker.analyse_user_drives(ALICE)
        assert report.orphaned_files == []
        assert alice.count("list_drives") == 0

    async def test_walk_users_keeps_order_and_failures(self, clients, walker):
        clients.failing_users[BOB] = ExternalAPIError(401, "Invalid Credentials")
        reports = await walker.walk_users([BOB, ALICE])
        assert [r.user_email for r in reports] == [BOB, ALICE]
        assert "Invalid Credentials" in reports[0].errors[0]
        assert reports[0].my_drive is None
        assert reports[1].my_drive is not None

    async def test_each_user_gets_own_client(self, workspace, clients, walker):
        workspace.add_file("x")
        await walker.walk_users([ALICE, BOB])
        assert isinstance(clients.clients[BOB], FakeClient)
        assert clients.clients[BOB].count("about") == 1
