"""
Report Service — daily reports and the manager reviews attached to them.

A review is not stored on the report: it is one entry of the parent
project's review map, keyed by report id. Deleting a report therefore
touches two records and runs as two ordered steps:

  1. remove the review entry from the project (commit)
  2. delete the report itself (commit)

A failure between the steps leaves the review gone and the report in
place, never a review pointing at a deleted report.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from sitetrack.core.exceptions import (
    ConflictError,
    NotFoundError,
    PartialMutationError,
    PermissionDeniedError,
    ValidationError,
)
from sitetrack.models import db
from sitetrack.models.auth import User
from sitetrack.models.project import Project, ProjectReview
from sitetrack.models.report import DailyReport
from sitetrack.services import permission_service as perms
from sitetrack.services.aggregate_service import build_project_reports
from sitetrack.services.project_service import get_visible_project
from sitetrack.services.realtime import PROJECTS, REPORTS, notify_change
from sitetrack.services.visibility_service import chunk_ids, query_reports
from sitetrack.utils.helpers import get_or_raise, parse_dmy

logger = logging.getLogger(__name__)


def _clean_images(value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError("images must be a list of encoded images", details={"images": "expected list"})
    return list(value)


def _clean_date(value) -> str:
    if parse_dmy(value) is None:
        raise ValidationError("date must be a valid DD/MM/YYYY date", details={"date": "invalid"})
    return str(value).strip()


def _clean_tasks(value) -> str:
    tasks = str(value or "").strip()
    if not tasks:
        raise ValidationError("tasks cannot be empty", details={"tasks": "required"})
    return tasks


def _get_visible_report(actor: User, report_id: str) -> tuple[DailyReport, Project | None]:
    """Load a report whose project the actor may see; hidden reports look missing."""
    report = get_or_raise(DailyReport, report_id, "Report")
    project = db.session.get(Project, report.project_id)
    if not perms.can_view_project(actor, project):
        raise NotFoundError(resource="Report", resource_id=report_id)
    return report, project


# ═══════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════
def list_project_reports(actor: User, project_id: str) -> list[dict]:
    """Reports of one visible project, joined with reviews, newest first."""
    project = get_visible_project(actor, project_id)
    reports: list[dict] = []
    for batch in chunk_ids([project.id]):
        reports.extend(query_reports(batch))
    return build_project_reports(project, reports)


# ═══════════════════════════════════════════════════════════════
# Create / update
# ═══════════════════════════════════════════════════════════════
def add_report(actor: User, project_id: str, data: dict) -> DailyReport:
    """Submit a daily report. Only assigned managers and supervisors may."""
    project = get_visible_project(actor, project_id)
    if not perms.can_add_report(actor, project):
        raise PermissionDeniedError(
            "Only assigned project managers or lead supervisors can add reports.",
            action="report.create",
        )

    report = DailyReport(
        project_id=project.id,
        date=_clean_date(data.get("date")),
        tasks=_clean_tasks(data.get("tasks")),
        images=_clean_images(data.get("images")),
        submitted_by=actor.name,
        submitted_by_id=actor.id,
    )
    db.session.add(report)
    db.session.commit()
    logger.info(
        "Report %s added to project %s by %s", report.id, project.id, actor.id,
        extra={"project_id": project.id, "report_id": report.id, "event_type": "report.created"},
    )
    notify_change(REPORTS)
    return report


def update_report(actor: User, report_id: str, data: dict) -> DailyReport:
    """Partial update of date, tasks and images."""
    report, project = _get_visible_report(actor, report_id)
    if not perms.can_edit_report(actor, project):
        raise PermissionDeniedError("Only Admin can edit reports.", action="report.update")

    changed = [k for k in ("date", "tasks", "images") if k in data]
    if not changed:
        raise ValidationError("No updatable fields supplied")
    if "date" in data:
        report.date = _clean_date(data["date"])
    if "tasks" in data:
        report.tasks = _clean_tasks(data["tasks"])
    if "images" in data:
        report.images = _clean_images(data["images"])

    db.session.commit()
    logger.info(
        "Report %s updated by %s (fields: %s)", report.id, actor.id, ", ".join(changed),
        extra={"report_id": report.id, "event_type": "report.updated"},
    )
    notify_change(REPORTS)
    return report


# ═══════════════════════════════════════════════════════════════
# Delete (review first, then report)
# ═══════════════════════════════════════════════════════════════
def delete_report(actor: User, report_id: str) -> dict:
    report, project = _get_visible_report(actor, report_id)
    project_id = report.project_id
    if not perms.can_delete_report(actor, project):
        raise PermissionDeniedError("Only Admin can delete reports.", action="report.delete")

    completed: list[str] = []
    step = "remove_review"
    try:
        removed = ProjectReview.query.filter_by(project_id=project_id, report_id=report_id).delete()
        db.session.commit()
        completed.append(step)
        if removed:
            notify_change(PROJECTS)

        step = "delete_report"
        DailyReport.query.filter_by(id=report_id).delete()
        db.session.commit()
        completed.append(step)
    except Exception as exc:
        db.session.rollback()
        logger.error(
            "Delete of report %s failed at %s: %s", report_id, step, exc,
            exc_info=True,
            extra={"project_id": project_id, "report_id": report_id, "event_type": "report.delete_failed"},
        )
        raise PartialMutationError("delete_report", completed, step) from exc

    logger.info(
        "Report %s deleted by %s", report_id, actor.id,
        extra={"project_id": project_id, "report_id": report_id, "event_type": "report.deleted"},
    )
    notify_change(REPORTS)
    return {"deleted_report": report_id, "review_removed": bool(removed)}


# ═══════════════════════════════════════════════════════════════
# Reviews
# ═══════════════════════════════════════════════════════════════
def add_review(actor: User, report_id: str, comment) -> ProjectReview:
    """Write the single review entry for a report. Reviews are immutable."""
    report, project = _get_visible_report(actor, report_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=report.project_id)
    if not perms.can_review_report(actor, project):
        raise PermissionDeniedError(
            "Only an assigned project manager can review reports.", action="report.review",
        )

    text = str(comment or "").strip()
    if not text:
        raise ValidationError("comment cannot be empty", details={"comment": "required"})
    if report_id in project.review_map:
        raise ConflictError(resource="Review", field="reportId", value=report_id)

    review = ProjectReview(
        project_id=project.id,
        report_id=report_id,
        comment=text,
        reviewed_by_id=actor.id,
        reviewed_by_name=actor.name,
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning(
            "Concurrent review on report %s rejected", report_id,
            extra={"report_id": report_id, "event_type": "report.review_conflict"},
        )
        raise ConflictError(resource="Review", field="reportId", value=report_id) from exc

    logger.info(
        "Report %s reviewed by %s", report_id, actor.id,
        extra={"project_id": project.id, "report_id": report_id, "event_type": "report.reviewed"},
    )
    notify_change(PROJECTS)
    return review
