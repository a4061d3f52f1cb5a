"""
Report service tests — submission rights, reviews and two-step delete.
"""

import pytest

from sitetrack.core.exceptions import (
    ConflictError,
    NotFoundError,
    PartialMutationError,
    PermissionDeniedError,
    ValidationError,
)
from sitetrack.models import db
from sitetrack.models.project import Project, ProjectReview
from sitetrack.models.report import DailyReport
from sitetrack.services import report_service


@pytest.fixture()
def project(make_project, pm, ls):
    return make_project("Alpha", managers=["pm1"], supervisors=["ls1"])


class TestAddReport:
    def test_assigned_manager_and_supervisor_may_submit(self, project, make_report, pm, ls):
        r1 = make_report(pm, project.id)
        r2 = make_report(ls, project.id, date="11/03/2025")
        assert r1.submitted_by == "Pat Manager"
        assert r2.submitted_by == "Lee Supervisor"
        assert DailyReport.query.filter_by(project_id=project.id).count() == 2

    def test_unassigned_manager_cannot_see_project(self, project, make_user):
        other = make_user("pm2", "Other Manager", "ProjectManager")
        with pytest.raises(NotFoundError):
            report_service.add_report(other, project.id, {"date": "10/03/2025", "tasks": "x"})

    def test_admin_sees_but_cannot_submit(self, project, admin):
        with pytest.raises(PermissionDeniedError):
            report_service.add_report(admin, project.id, {"date": "10/03/2025", "tasks": "x"})

    def test_validation(self, project, pm):
        with pytest.raises(ValidationError):
            report_service.add_report(pm, project.id, {"date": "2025-03-10", "tasks": "x"})
        with pytest.raises(ValidationError):
            report_service.add_report(pm, project.id, {"date": "10/03/2025", "tasks": "   "})


class TestListReports:
    def test_newest_first_with_reviews(self, project, make_report, pm):
        old = make_report(pm, project.id, date="01/03/2025")
        new = make_report(pm, project.id, date="05/03/2025")
        report_service.add_review(pm, old.id, "Approved")

        listed = report_service.list_project_reports(pm, project.id)
        assert [r["id"] for r in listed] == [new.id, old.id]
        assert listed[0]["managerReview"] is None
        assert listed[1]["managerReview"]["comment"] == "Approved"
        assert listed[1]["managerReview"]["reviewedByName"] == "Pat Manager"


class TestUpdateReport:
    def test_admin_only(self, project, make_report, admin, pm):
        report = make_report(pm, project.id)
        with pytest.raises(PermissionDeniedError):
            report_service.update_report(pm, report.id, {"tasks": "Edited"})

        report_service.update_report(admin, report.id, {"tasks": "Edited", "date": "12/03/2025"})
        refreshed = db.session.get(DailyReport, report.id)
        assert refreshed.tasks == "Edited"
        assert refreshed.date == "12/03/2025"
        assert refreshed.submitted_by == "Pat Manager"


class TestReviews:
    def test_only_assigned_manager(self, project, make_report, pm, ls, admin):
        report = make_report(ls, project.id)
        for actor in (ls, admin):
            with pytest.raises(PermissionDeniedError):
                report_service.add_review(actor, report.id, "Looks fine")

    def test_second_review_conflicts(self, project, make_report, pm):
        report = make_report(pm, project.id)
        report_service.add_review(pm, report.id, "Approved")
        with pytest.raises(ConflictError):
            report_service.add_review(pm, report.id, "Changed my mind")
        review = ProjectReview.query.filter_by(report_id=report.id).one()
        assert review.comment == "Approved"

    def test_empty_comment_rejected(self, project, make_report, pm):
        report = make_report(pm, project.id)
        with pytest.raises(ValidationError):
            report_service.add_review(pm, report.id, "  ")

    def test_review_lands_in_project_map(self, project, make_report, pm):
        report = make_report(pm, project.id)
        report_service.add_review(pm, report.id, "Approved")
        reviews = db.session.get(Project, project.id).to_dict()["reviews"]
        assert list(reviews) == [report.id]
        assert reviews[report.id]["reviewedById"] == "pm1"


class TestHiddenReports:
    @pytest.fixture()
    def outsider(self, make_user):
        return make_user("pm2", "Other Manager", "ProjectManager")

    def test_review_on_unassigned_project_is_not_found(self, project, make_report, pm, outsider):
        report = make_report(pm, project.id)
        with pytest.raises(NotFoundError):
            report_service.add_review(outsider, report.id, "Approved")
        assert ProjectReview.query.filter_by(report_id=report.id).count() == 0

    def test_edit_and_delete_look_missing(self, project, make_report, pm, outsider):
        report = make_report(pm, project.id)
        with pytest.raises(NotFoundError):
            report_service.update_report(outsider, report.id, {"tasks": "Edited"})
        with pytest.raises(NotFoundError):
            report_service.delete_report(outsider, report.id)
        assert db.session.get(DailyReport, report.id).tasks == "Poured foundation"

    def test_assigned_but_unauthorised_is_forbidden(self, project, make_report, pm, ls):
        report = make_report(pm, project.id)
        with pytest.raises(PermissionDeniedError):
            report_service.update_report(ls, report.id, {"tasks": "Edited"})
        with pytest.raises(PermissionDeniedError):
            report_service.add_review(ls, report.id, "Approved")


class TestDeleteReport:
    def test_removes_review_then_report(self, project, make_report, admin, pm):
        report = make_report(pm, project.id)
        report_id, project_id = report.id, project.id
        report_service.add_review(pm, report_id, "Approved")

        result = report_service.delete_report(admin, report_id)

        assert result == {"deleted_report": report_id, "review_removed": True}
        assert db.session.get(DailyReport, report_id) is None
        assert db.session.get(Project, project_id).to_dict()["reviews"] == {}

    def test_without_review(self, project, make_report, admin, pm):
        report = make_report(pm, project.id)
        assert report_service.delete_report(admin, report.id)["review_removed"] is False

    def test_non_admin_denied(self, project, make_report, pm):
        report = make_report(pm, project.id)
        with pytest.raises(PermissionDeniedError):
            report_service.delete_report(pm, report.id)

    def test_failure_after_review_removed_keeps_report(self, project, make_report, admin, pm, monkeypatch):
        report = make_report(pm, project.id)
        report_id = report.id
        report_service.add_review(pm, report_id, "Approved")

        real_commit = db.session.commit
        calls = {"n": 0}

        def flaky_commit():
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("store unavailable")
            return real_commit()

        monkeypatch.setattr(db.session, "commit", flaky_commit)
        with pytest.raises(PartialMutationError) as exc:
            report_service.delete_report(admin, report_id)
        monkeypatch.undo()

        assert exc.value.completed == ["remove_review"]
        assert exc.value.failed_step == "delete_report"
        # Orphaned report is tolerated; a dangling review is not.
        assert db.session.get(DailyReport, report_id) is not None
        assert ProjectReview.query.filter_by(report_id=report_id).count() == 0
