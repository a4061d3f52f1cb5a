"""Project CRUD service: role checks, merge updates and cascading delete."""

from __future__ import annotations

import logging

from sitetrack.core.exceptions import (
    NotFoundError,
    PartialMutationError,
    PermissionDeniedError,
    ValidationError,
)
from sitetrack.models import db
from sitetrack.models.auth import User
from sitetrack.models.project import (
    PERSONNEL_FIELDS,
    SCALAR_FIELDS,
    SUB_RECORD_FIELDS,
    Project,
    ProjectAssignment,
    ProjectReview,
)
from sitetrack.models.report import DailyReport
from sitetrack.services import permission_service as perms
from sitetrack.services.realtime import PROJECTS, REPORTS, notify_change
from sitetrack.utils.helpers import get_or_raise, parse_dmy

logger = logging.getLogger(__name__)

DATE_FIELDS = ("constructionStartDate", "plannedAcceptanceDate")


def get_visible_project(actor: User, project_id: str) -> Project:
    """Load a project the actor may see; hidden projects look missing."""
    project = get_or_raise(Project, project_id, "Project")
    if not perms.can_view_project(actor, project):
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


# ── Field normalisation ───────────────────────────────────────────────────


def _clean_dates(data: dict) -> dict:
    errors = {}
    for wire in DATE_FIELDS:
        if wire in data and parse_dmy(data[wire]) is None:
            errors[wire] = "must be a valid DD/MM/YYYY date"
    if errors:
        raise ValidationError("Invalid project dates", details=errors)
    return {wire: data[wire].strip() for wire in DATE_FIELDS if wire in data}


def _clean_sub_record(wire: str, value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{wire} must be an object", details={wire: "expected object"})
    return {str(k): ("" if v is None else str(v)) for k, v in value.items()}


def _clean_personnel(wire: str, value) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{wire} must be a list of user ids", details={wire: "expected list"})
    return list(dict.fromkeys(v.strip() for v in value if v.strip()))


def _warn_unknown_personnel(project_id: str, user_ids: list[str]) -> None:
    # Assignment is permissive: unknown ids are stored, only reported.
    if not user_ids:
        return
    known = {u.id for u in User.query.filter(User.id.in_(user_ids)).all()}
    unknown = [uid for uid in user_ids if uid not in known]
    if unknown:
        logger.warning(
            "Project %s assigned unknown user ids: %s", project_id, ", ".join(unknown),
            extra={"project_id": project_id, "event_type": "project.unknown_personnel"},
        )


def _set_personnel(project: Project, assignment: str, user_ids: list[str]) -> None:
    # Existing rows are reused so the unique slot constraint never sees a
    # delete+insert of the same (project, user, assignment) in one flush.
    existing = {a.user_id: a for a in project.assignments if a.assignment == assignment}
    others = [a for a in project.assignments if a.assignment != assignment]
    project.assignments = others + [
        existing.get(uid) or ProjectAssignment(user_id=uid, assignment=assignment)
        for uid in user_ids
    ]


# ── Create / update ───────────────────────────────────────────────────────


def create_project(actor: User, data: dict) -> Project:
    """Create a project with an empty review map."""
    if not perms.can_add_project(actor):
        raise PermissionDeniedError("You are not allowed to create projects.", action="project.create")

    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    missing = [w for w in DATE_FIELDS if not data.get(w)]
    if missing:
        raise ValidationError("Project dates are required", details={w: "required" for w in missing})
    dates = _clean_dates(data)

    project = Project(
        name=name,
        construction_start_date=dates["constructionStartDate"],
        planned_acceptance_date=dates["plannedAcceptanceDate"],
        schedule_sheet_url=(data.get("scheduleSheetUrl") or None),
        schedule_sheet_edit_url=(data.get("scheduleSheetEditUrl") or None),
    )
    for wire, attr in SUB_RECORD_FIELDS.items():
        setattr(project, attr, _clean_sub_record(wire, data.get(wire)))

    personnel = {wire: _clean_personnel(wire, data.get(wire)) for wire in PERSONNEL_FIELDS}
    project.assignments = [
        ProjectAssignment(user_id=uid, assignment=PERSONNEL_FIELDS[wire])
        for wire, ids in personnel.items()
        for uid in ids
    ]

    db.session.add(project)
    db.session.commit()
    _warn_unknown_personnel(project.id, [uid for ids in personnel.values() for uid in ids])
    logger.info(
        "Project %s created by %s", project.id, actor.id,
        extra={"project_id": project.id, "event_type": "project.created"},
    )
    notify_change(PROJECTS)
    return project


def update_project(actor: User, project_id: str, data: dict) -> Project:
    """Merge-update: only supplied fields are written; id is never changed."""
    project = get_visible_project(actor, project_id)

    core_keys = [k for k in data if k in SCALAR_FIELDS or k in SUB_RECORD_FIELDS]
    personnel_keys = [k for k in data if k in PERSONNEL_FIELDS]
    if not core_keys and not personnel_keys:
        raise ValidationError("No updatable fields supplied")

    if core_keys and not perms.can_edit_project(actor, project):
        raise PermissionDeniedError("You are not allowed to edit this project.", action="project.update")
    if personnel_keys and not perms.can_edit_personnel(actor):
        raise PermissionDeniedError(
            "Only Admin or Department Head can reassign personnel.", action="project.personnel",
        )

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        project.name = name
    for wire, value in _clean_dates(data).items():
        setattr(project, SCALAR_FIELDS[wire], value)
    for wire in ("scheduleSheetUrl", "scheduleSheetEditUrl"):
        if wire in data:
            setattr(project, SCALAR_FIELDS[wire], data.get(wire) or None)

    for wire, attr in SUB_RECORD_FIELDS.items():
        if wire in data:
            merged = dict(getattr(project, attr) or {})
            merged.update(_clean_sub_record(wire, data[wire]))
            setattr(project, attr, merged)

    assigned: list[str] = []
    for wire in personnel_keys:
        ids = _clean_personnel(wire, data[wire])
        _set_personnel(project, PERSONNEL_FIELDS[wire], ids)
        assigned.extend(ids)

    db.session.commit()
    _warn_unknown_personnel(project.id, assigned)
    logger.info(
        "Project %s updated by %s (fields: %s)", project.id, actor.id,
        ", ".join(core_keys + personnel_keys),
        extra={"project_id": project.id, "event_type": "project.updated"},
    )
    notify_change(PROJECTS)
    return project


# ── Cascading delete ──────────────────────────────────────────────────────


def delete_project(actor: User, project_id: str) -> dict:
    """Delete every report of the project, then the project itself.

    Each report (with its review entry) is removed in its own commit. If a
    step fails the remaining steps are skipped, completed steps stay, and
    PartialMutationError is raised. Reports left behind by an interrupted
    run are a tolerated eventual-consistency outcome.
    """
    if not perms.can_delete_project(actor):
        raise PermissionDeniedError("Only Admin can delete projects.", action="project.delete")
    project = get_or_raise(Project, project_id, "Project")

    completed: list[str] = []
    step = "query_reports"
    try:
        report_ids = [
            r.id for r in DailyReport.query.filter_by(project_id=project_id).all()
        ]
        completed.append(step)

        for report_id in report_ids:
            step = f"delete_report:{report_id}"
            ProjectReview.query.filter_by(project_id=project_id, report_id=report_id).delete()
            DailyReport.query.filter_by(id=report_id).delete()
            db.session.commit()
            completed.append(step)

        step = "delete_project"
        db.session.delete(project)
        db.session.commit()
        completed.append(step)
    except Exception as exc:
        db.session.rollback()
        logger.error(
            "Cascading delete of project %s failed at %s: %s", project_id, step, exc,
            exc_info=True,
            extra={"project_id": project_id, "event_type": "project.delete_failed"},
        )
        raise PartialMutationError("delete_project", completed, step) from exc
    finally:
        notify_change(REPORTS, PROJECTS)

    logger.info(
        "Project %s deleted by %s with %d reports", project_id, actor.id, len(report_ids),
        extra={"project_id": project_id, "event_type": "project.deleted"},
    )
    return {"deleted_project": project_id, "deleted_reports": report_ids}
