"""Project domain model: personnel assignments and the embedded review map."""

import uuid
from datetime import datetime, timezone

from sitetrack.models import db

ASSIGNMENT_MANAGER = "manager"
ASSIGNMENT_SUPERVISOR = "supervisor"

# Wire name -> column name for the JSON sub-records owned by a project.
APPROVAL_FIELDS = {
    "capitalPlanApproval": "capital_plan_approval",
    "technicalPlanApproval": "technical_plan_approval",
    "budgetApproval": "budget_approval",
}
CONTACT_FIELDS = {
    "designUnit": "design_unit",
    "constructionUnit": "construction_unit",
    "supervisionUnit": "supervision_unit",
    "projectManagementUnit": "project_management_unit",
    "supervisorA": "supervisor_a",
}
SCALAR_FIELDS = {
    "name": "name",
    "constructionStartDate": "construction_start_date",
    "plannedAcceptanceDate": "planned_acceptance_date",
    "scheduleSheetUrl": "schedule_sheet_url",
    "scheduleSheetEditUrl": "schedule_sheet_edit_url",
}
SUB_RECORD_FIELDS = {**APPROVAL_FIELDS, **CONTACT_FIELDS}
PERSONNEL_FIELDS = {
    "projectManagerIds": ASSIGNMENT_MANAGER,
    "leadSupervisorIds": ASSIGNMENT_SUPERVISOR,
}


def _new_id() -> str:
    return uuid.uuid4().hex


class Project(db.Model):
    """A construction project tracked on the dashboard."""

    __tablename__ = "projects"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(300), nullable=False)
    construction_start_date = db.Column(db.String(10), nullable=False, comment="DD/MM/YYYY")
    planned_acceptance_date = db.Column(db.String(10), nullable=False, comment="DD/MM/YYYY")

    # ── Approval records: {decisionNumber, date} ──
    capital_plan_approval = db.Column(db.JSON, nullable=False, default=dict)
    technical_plan_approval = db.Column(db.JSON, nullable=False, default=dict)
    budget_approval = db.Column(db.JSON, nullable=False, default=dict)

    # ── Contact units: free-text name/phone fields ──
    design_unit = db.Column(db.JSON, nullable=False, default=dict)
    construction_unit = db.Column(db.JSON, nullable=False, default=dict)
    supervision_unit = db.Column(db.JSON, nullable=False, default=dict)
    project_management_unit = db.Column(db.JSON, nullable=False, default=dict)
    supervisor_a = db.Column(db.JSON, nullable=False, default=dict)

    schedule_sheet_url = db.Column(db.String(1000), nullable=True)
    schedule_sheet_edit_url = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assignments = db.relationship(
        "ProjectAssignment", back_populates="project", lazy="selectin",
        order_by="ProjectAssignment.id",
        cascade="all, delete-orphan",
    )
    reviews = db.relationship(
        "ProjectReview", back_populates="project", lazy="selectin",
        cascade="all, delete-orphan",
    )

    def _assigned(self, assignment: str) -> list[str]:
        return [a.user_id for a in self.assignments if a.assignment == assignment]

    @property
    def project_manager_ids(self) -> list[str]:
        return self._assigned(ASSIGNMENT_MANAGER)

    @property
    def lead_supervisor_ids(self) -> list[str]:
        return self._assigned(ASSIGNMENT_SUPERVISOR)

    @property
    def review_map(self) -> dict[str, dict]:
        """reportId -> review payload."""
        return {r.report_id: r.to_dict() for r in self.reviews}

    def to_dict(self) -> dict:
        d = {"id": self.id}
        for wire, attr in SCALAR_FIELDS.items():
            d[wire] = getattr(self, attr)
        for wire, attr in SUB_RECORD_FIELDS.items():
            d[wire] = dict(getattr(self, attr) or {})
        d["projectManagerIds"] = self.project_manager_ids
        d["leadSupervisorIds"] = self.lead_supervisor_ids
        d["reviews"] = self.review_map
        return d

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class ProjectAssignment(db.Model):
    """Personnel slot on a project. user_id is intentionally not a foreign key."""

    __tablename__ = "project_assignments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(64),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False, index=True)
    assignment = db.Column(db.String(20), nullable=False, comment="manager | supervisor")

    project = db.relationship("Project", back_populates="assignments")

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", "assignment", name="uq_assignment_slot"),
        db.Index("ix_assignment_user_kind", "user_id", "assignment"),
    )


class ProjectReview(db.Model):
    """One entry of a project's review map, keyed by report id."""

    __tablename__ = "project_reviews"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.String(64),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    report_id = db.Column(db.String(64), nullable=False)
    comment = db.Column(db.Text, nullable=False)
    reviewed_by_id = db.Column(db.String(64), nullable=False)
    # Captured at write time; never looked up from users.
    reviewed_by_name = db.Column(db.String(200), nullable=False)
    reviewed_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="reviews")

    __table_args__ = (
        db.UniqueConstraint("project_id", "report_id", name="uq_review_project_report"),
    )

    def to_dict(self) -> dict:
        return {
            "comment": self.comment,
            "reviewedById": self.reviewed_by_id,
            "reviewedByName": self.reviewed_by_name,
            "reviewedAt": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }
