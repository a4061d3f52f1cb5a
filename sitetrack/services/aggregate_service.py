"""
Aggregate Service — derived project state for dashboard views.

Progress:
  percentage = round-half-up(elapsed / total * 100), clamped to [0, 100],
  forced to 0 before the start date. Unparsable dates or start >= end give
  the distinct ``invalid_dates`` status instead of raising.

Reports:
  A report's review lives on the parent project's review map, so report
  views are built by joining the two by report id and sorting by the parsed
  DD/MM/YYYY date, most recent first.
"""

import math
from dataclasses import asdict, dataclass
from datetime import date

from sitetrack.utils.helpers import parse_dmy

STATUS_INVALID = "invalid_dates"
STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DUE_TODAY = "due_today"
STATUS_OVERDUE = "overdue"


@dataclass(frozen=True)
class ProgressInfo:
    percentage: int
    status: str
    days: int | None
    status_text: str

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "percentage": d["percentage"],
            "status": d["status"],
            "days": d["days"],
            "statusText": d["status_text"],
        }


def _project_field(project, wire: str, attr: str):
    if isinstance(project, dict):
        return project.get(wire)
    return getattr(project, attr)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_progress(project, today: date | None = None) -> ProgressInfo:
    """Progress percentage and schedule status for one project."""
    today = today or date.today()
    start = parse_dmy(_project_field(project, "constructionStartDate", "construction_start_date"))
    end = parse_dmy(_project_field(project, "plannedAcceptanceDate", "planned_acceptance_date"))

    if start is None or end is None or start >= end:
        return ProgressInfo(0, STATUS_INVALID, None, "Invalid date data")

    total = (end - start).days
    elapsed = (today - start).days
    percentage = max(0, min(100, _round_half_up(elapsed / total * 100)))

    if today < start:
        return ProgressInfo(0, STATUS_NOT_STARTED, (start - today).days, "Not started")

    remaining = (end - today).days
    if remaining < 0:
        overdue = -remaining
        return ProgressInfo(percentage, STATUS_OVERDUE, overdue, f"Overdue by {overdue} days")
    if remaining == 0:
        return ProgressInfo(percentage, STATUS_DUE_TODAY, 0, "Deadline today")
    return ProgressInfo(percentage, STATUS_IN_PROGRESS, remaining, f"{remaining} days remaining")


def _review_map(project) -> dict:
    if isinstance(project, dict):
        return project.get("reviews") or {}
    return project.review_map


def _report_dict(report) -> dict:
    return dict(report) if isinstance(report, dict) else report.to_dict()


def attach_reviews(project, reports) -> list[dict]:
    """Copy reports and set ``managerReview`` from the project's review map."""
    reviews = _review_map(project)
    joined = []
    for report in reports:
        d = _report_dict(report)
        review = reviews.get(d["id"])
        d["managerReview"] = dict(review) if review else None
        joined.append(d)
    return joined


def sort_reports(reports: list[dict]) -> list[dict]:
    """Newest first by parsed date; unparsable dates last; stable for ties."""
    def key(report):
        parsed = parse_dmy(report.get("date"))
        # sorted() is stable, so equal keys keep input order
        return (parsed is None, -(parsed.toordinal()) if parsed else 0)

    return sorted(reports, key=key)


def build_project_reports(project, reports) -> list[dict]:
    """Reports belonging to ``project``, joined with reviews and sorted."""
    project_id = project["id"] if isinstance(project, dict) else project.id
    own = [r for r in reports if _report_dict(r).get("projectId") == project_id]
    return sort_reports(attach_reviews(project, own))


def project_card(project, today: date | None = None) -> dict:
    """Project payload enriched with progress, as shown on the dashboard grid."""
    d = project if isinstance(project, dict) else project.to_dict()
    return {**d, "progress": compute_progress(d, today).to_dict()}
