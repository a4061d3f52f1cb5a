"""
Visibility resolver tests — union merge, batching and live scopes.
"""

import pytest

from sitetrack.services import project_service, visibility_service
from sitetrack.services.realtime import PROJECTS, REPORTS, USERS, feed
from sitetrack.services.visibility_service import (
    VisibilityScope,
    chunk_ids,
    merge_project_snapshots,
    resolve_visible_sets,
    visible_projects,
    visible_reports,
    visible_users,
)


class TestMerge:
    def test_union_dedupes_by_id(self):
        a = {"id": "a", "name": "Alpha"}
        b = {"id": "b", "name": "Beta"}
        merged = merge_project_snapshots({"managed": [a, b], "supervised": [b]})
        assert [p["id"] for p in merged] == ["a", "b"]

    def test_idempotent_and_order_independent(self):
        a = {"id": "a", "name": "alpha"}
        b = {"id": "b", "name": "Beta"}
        c = {"id": "c", "name": "Beta"}
        first = merge_project_snapshots({"managed": [c, a], "supervised": [b]})
        again = merge_project_snapshots({"managed": [c, a], "supervised": [b]})
        swapped = merge_project_snapshots({"supervised": [b], "managed": [a, c]})
        assert first == again == swapped
        # name case-folded, ties by id
        assert [p["id"] for p in first] == ["a", "b", "c"]

    def test_empty_sources(self):
        assert merge_project_snapshots({}) == []
        assert merge_project_snapshots({"managed": [], "supervised": None}) == []


class TestChunking:
    def test_chunks_of_thirty(self):
        ids = [f"p{i}" for i in range(65)]
        chunks = chunk_ids(ids)
        assert [len(c) for c in chunks] == [30, 30, 5]
        assert [i for c in chunks for i in c] == ids

    def test_dedupes_ids(self):
        assert chunk_ids(["a", "a", "b"], size=30) == [["a", "b"]]

    def test_empty(self):
        assert chunk_ids([]) == []

    def test_single_query_over_limit_rejected(self):
        with pytest.raises(ValueError):
            visibility_service.query_reports([f"p{i}" for i in range(31)])


class TestResolve:
    def test_union_property_pm_on_a_ls_on_b(self, make_project, pm):
        a = make_project("Alpha", managers=["pm1"])
        b = make_project("Beta", supervisors=["pm1"])
        make_project("Gamma", managers=["someone-else"])

        visible = visible_projects(pm)
        assert [p["id"] for p in visible] == [a.id, b.id]

    def test_field_role_sees_only_assigned(self, make_project, ls):
        make_project("Alpha", managers=["pm1"])
        b = make_project("Beta", supervisors=["ls1"])
        assert [p["id"] for p in visible_projects(ls)] == [b.id]

    def test_department_head_sees_all(self, make_project, dept_head):
        make_project("Alpha")
        make_project("Beta")
        assert len(visible_projects(dept_head)) == 2

    def test_pending_user_sees_nothing_but_self(self, make_project, pending_user):
        make_project("Alpha", managers=["new1"])
        sets = resolve_visible_sets(pending_user)
        assert sets.projects == []
        assert sets.reports == []
        assert [u["id"] for u in sets.users] == ["new1"]

    def test_users_full_list_only_for_admin(self, admin, pm, ls):
        assert {u["id"] for u in visible_users(admin)} == {"admin1", "pm1", "ls1"}
        assert [u["id"] for u in visible_users(pm)] == ["pm1"]
        assert visible_users(None) == []

    def test_reports_across_more_than_thirty_projects(self, make_project, make_report, admin, pm, monkeypatch):
        projects = [make_project(f"Site {i:02d}", managers=["pm1"]) for i in range(35)]
        make_report(pm, projects[0].id, date="01/03/2025")
        make_report(pm, projects[34].id, date="02/03/2025")

        batches = []
        real_query = visibility_service.query_reports

        def spy(ids):
            batches.append(len(ids))
            return real_query(ids)

        monkeypatch.setattr(visibility_service, "query_reports", spy)
        reports = visible_reports(admin)

        assert batches == [30, 5]
        assert {r["projectId"] for r in reports} == {projects[0].id, projects[34].id}
        assert reports[0]["date"] == "02/03/2025"


class TestVisibilityScope:
    def test_open_emits_once_with_current_sets(self, make_project, pm):
        a = make_project("Alpha", managers=["pm1"])
        emitted = []
        scope = VisibilityScope(pm.to_dict(), emitted.append).open()
        assert len(emitted) == 1
        assert emitted[0].project_ids == [a.id]
        # managed + supervised + one report batch
        assert scope.subscription_count() == 3
        scope.close()

    def test_new_report_pushed(self, make_project, make_report, pm):
        a = make_project("Alpha", managers=["pm1"])
        emitted = []
        scope = VisibilityScope(pm.to_dict(), emitted.append).open()
        make_report(pm, a.id)
        assert [r["tasks"] for r in scope.sets.reports] == ["Poured foundation"]
        assert emitted[-1].reports[0]["projectId"] == a.id
        scope.close()

    def test_reassignment_resubscribes_reports(self, make_project, admin, pm):
        a = make_project("Alpha", managers=["pm1"])
        b = make_project("Beta")
        emitted = []
        scope = VisibilityScope(pm.to_dict(), emitted.append).open()
        assert feed.active_count(REPORTS) == 1
        first_report_sub = scope._report_subs[0]

        project_service.update_project(admin, b.id, {"projectManagerIds": ["pm1"]})

        assert scope.sets.project_ids == [a.id, b.id]
        assert not first_report_sub.active
        assert feed.active_count(REPORTS) == 1
        scope.close()

    def test_close_revokes_everything(self, make_project, admin):
        make_project("Alpha")
        emitted = []
        scope = VisibilityScope(admin.to_dict(), emitted.append).open()
        assert feed.active_count(USERS) == 1
        assert feed.active_count(PROJECTS) == 1
        scope.close()
        assert feed.active_count() == 0

        make_project("Beta")
        assert len(emitted) == 1
        assert scope.closed

    def test_pending_scope_has_no_project_subscriptions(self, pending_user):
        emitted = []
        scope = VisibilityScope(pending_user.to_dict(), emitted.append).open()
        assert scope.subscription_count() == 0
        assert emitted[0].projects == []
        assert [u["id"] for u in emitted[0].users] == ["new1"]
