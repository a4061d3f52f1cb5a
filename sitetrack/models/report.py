"""Daily field report model."""

import uuid
from datetime import datetime, timezone

from sitetrack.models import db


def _new_id() -> str:
    return uuid.uuid4().hex


class DailyReport(db.Model):
    """Daily report for a project. project_id is kept consistent by services."""

    __tablename__ = "daily_reports"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    project_id = db.Column(db.String(64), nullable=False, index=True)
    date = db.Column(db.String(10), nullable=False, comment="DD/MM/YYYY")
    tasks = db.Column(db.Text, nullable=False)
    images = db.Column(db.JSON, nullable=False, default=list)
    submitted_by = db.Column(db.String(200), nullable=False)
    submitted_by_id = db.Column(db.String(64), nullable=True)
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

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "date": self.date,
            "tasks": self.tasks,
            "images": list(self.images or []),
            "submittedBy": self.submitted_by,
        }

    def __repr__(self) -> str:
        return f"<DailyReport {self.id}: {self.project_id} {self.date}>"
