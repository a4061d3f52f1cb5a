"""
Visibility Service — which projects, reports and users a signed-in user sees.

Rules:
  - pending (role NULL) or absent user: no projects, no reports; users = self
  - Admin / DepartmentHead: every project
  - ProjectManager / LeadSupervisor: union of "projects where I am a manager"
    and "projects where I am a supervisor", merged by id
  - reports: those whose projectId is in the visible project set, fetched in
    ``projectId IN (...)`` batches of at most STORE_IN_QUERY_LIMIT ids; every
    batch is queried and merged, nothing is truncated
  - users: the full directory for Admin, otherwise only self

Project lists are ordered by name (case-insensitive), ties broken by id.

Two entry points share the same queries:
  - ``resolve_visible_sets(user)`` for one-shot request/response reads
  - ``VisibilityScope`` for live subscriptions on the change feed
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from flask import current_app

from sitetrack.models import db
from sitetrack.models.auth import Role, User
from sitetrack.models.project import ASSIGNMENT_MANAGER, ASSIGNMENT_SUPERVISOR, Project, ProjectAssignment
from sitetrack.models.report import DailyReport
from sitetrack.services import permission_service as perms
from sitetrack.services.aggregate_service import sort_reports
from sitetrack.services.realtime import PROJECTS, REPORTS, USERS, feed as default_feed

logger = logging.getLogger(__name__)

DEFAULT_IN_QUERY_LIMIT = 30

SOURCE_ALL = "all"
SOURCE_MANAGED = "managed"
SOURCE_SUPERVISED = "supervised"


@dataclass
class VisibleSets:
    users: list[dict] = field(default_factory=list)
    projects: list[dict] = field(default_factory=list)
    reports: list[dict] = field(default_factory=list)

    @property
    def project_ids(self) -> list[str]:
        return [p["id"] for p in self.projects]

    def to_dict(self) -> dict:
        return {"users": self.users, "projects": self.projects, "reports": self.reports}


# ── Batching ──────────────────────────────────────────────────────────────


def in_query_limit() -> int:
    try:
        return int(current_app.config.get("STORE_IN_QUERY_LIMIT", DEFAULT_IN_QUERY_LIMIT))
    except RuntimeError:
        return DEFAULT_IN_QUERY_LIMIT


def chunk_ids(ids, size: int | None = None) -> list[list[str]]:
    """Split ids (deduplicated, order kept) into batches of at most ``size``."""
    size = size or in_query_limit()
    if size < 1:
        raise ValueError("batch size must be positive")
    unique = list(dict.fromkeys(ids))
    return [unique[i:i + size] for i in range(0, len(unique), size)]


# ── Queries (each returns a snapshot of plain dicts) ──────────────────────


def query_all_projects() -> list[dict]:
    return [p.to_dict() for p in Project.query.all()]


def query_assigned_projects(user_id: str, assignment: str) -> list[dict]:
    rows = (
        Project.query
        .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
        .filter(ProjectAssignment.user_id == user_id, ProjectAssignment.assignment == assignment)
        .all()
    )
    return [p.to_dict() for p in rows]


def query_reports(project_ids: list[str]) -> list[dict]:
    """One ``projectId IN (...)`` batch. Callers chunk first."""
    if not project_ids:
        return []
    if len(project_ids) > in_query_limit():
        raise ValueError(f"IN query accepts at most {in_query_limit()} ids, got {len(project_ids)}")
    rows = DailyReport.query.filter(DailyReport.project_id.in_(project_ids)).all()
    return [r.to_dict() for r in rows]


def query_all_users() -> list[dict]:
    return [u.to_dict() for u in User.query.order_by(User.name.asc()).all()]


def query_profile(user_id: str) -> dict | None:
    user = db.session.get(User, user_id)
    return user.to_dict() if user else None


# ── Pure merge step ───────────────────────────────────────────────────────


def _project_sort_key(project: dict):
    return ((project.get("name") or "").casefold(), project.get("id") or "")


def merge_project_snapshots(snapshots: dict[str, list[dict]]) -> list[dict]:
    """Union project snapshots by id and order them.

    Idempotent and independent of which source delivered first; a project
    present in several sources appears once (latest source iteration wins,
    all sources read the same store).
    """
    by_id: dict[str, dict] = {}
    for source in sorted(snapshots):
        for project in snapshots[source] or []:
            by_id[project["id"]] = project
    return sorted(by_id.values(), key=_project_sort_key)


def project_sources(user) -> dict[str, Callable[[], list[dict]]]:
    """Independent project queries whose union is the user's visible set."""
    if user is None:
        return {}
    role = Role.parse(user.get("role") if isinstance(user, dict) else user.role)
    uid = user.get("id") if isinstance(user, dict) else user.id
    if role is None:
        return {}
    if perms.sees_all_projects(user):
        return {SOURCE_ALL: query_all_projects}
    if role in perms.FIELD_ROLES:
        return {
            SOURCE_MANAGED: lambda: query_assigned_projects(uid, ASSIGNMENT_MANAGER),
            SOURCE_SUPERVISED: lambda: query_assigned_projects(uid, ASSIGNMENT_SUPERVISOR),
        }
    return {}


# ── One-shot resolution ───────────────────────────────────────────────────


def visible_projects(user) -> list[dict]:
    return merge_project_snapshots({name: load() for name, load in project_sources(user).items()})


def visible_reports(user, project_ids: list[str] | None = None) -> list[dict]:
    if project_ids is None:
        project_ids = [p["id"] for p in visible_projects(user)]
    reports: dict[str, dict] = {}
    for batch in chunk_ids(project_ids):
        for report in query_reports(batch):
            reports[report["id"]] = report
    return sort_reports(list(reports.values()))


def visible_users(user) -> list[dict]:
    if user is None:
        return []
    if perms.can_fetch_all_users(user):
        return query_all_users()
    return [user.to_dict() if isinstance(user, User) else dict(user)]


def resolve_visible_sets(user) -> VisibleSets:
    """Users, projects and reports for ``user`` in one pass."""
    if user is None:
        return VisibleSets()
    users = visible_users(user)
    if isinstance(user, User) and user.is_pending:
        return VisibleSets(users=users)
    projects = visible_projects(user)
    reports = visible_reports(user, [p["id"] for p in projects])
    return VisibleSets(users=users, projects=projects, reports=reports)


# ── Live resolution ───────────────────────────────────────────────────────


class VisibilityScope:
    """Live visible sets for one user, kept current through the change feed.

    Every query is its own subscription. Whenever the merged project id list
    changes, all report subscriptions are cancelled before the new batches
    are subscribed. ``close()`` revokes every subscription; a closed scope
    never emits again.
    """

    def __init__(self, user: dict, on_change: Callable[[VisibleSets], None], *,
                 on_error: Callable[[Exception], None] | None = None, feed=None):
        self.user = dict(user)
        self._on_change = on_change
        self._on_error = on_error
        self._feed = feed or default_feed
        self._lock = threading.RLock()
        self._closed = False
        self._opening = False

        self._project_subs: dict[str, object] = {}
        self._report_subs: list = []
        self._users_sub = None

        self._project_snapshots: dict[str, list[dict]] = {}
        self._report_snapshots: dict[int, list[dict]] = {}
        self._report_ids: list[str] | None = None
        self._users: list[dict] = [dict(user)]
        self._projects: list[dict] = []

    # -- lifecycle --

    def open(self) -> "VisibilityScope":
        with self._lock:
            self._opening = True
            try:
                if perms.can_fetch_all_users(self.user):
                    self._users_sub = self._feed.subscribe(
                        USERS, query_all_users, self._on_users,
                        on_error=self._handle_error, name=f"users:{self.user['id']}",
                    )
                for source, loader in project_sources(self.user).items():
                    self._project_subs[source] = self._feed.subscribe(
                        PROJECTS, loader, self._project_callback(source),
                        on_error=self._handle_error, name=f"projects:{source}:{self.user['id']}",
                    )
                if not self._project_subs:
                    self._resubscribe_reports([])
            finally:
                self._opening = False
            self._emit()
        return self

    def close(self) -> None:
        with self._lock:
            self._closed = True
            for sub in self._all_subscriptions():
                sub.cancel()
            self._project_subs.clear()
            self._report_subs = []
            self._users_sub = None

    @property
    def closed(self) -> bool:
        return self._closed

    def subscription_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._all_subscriptions() if s.active)

    def _all_subscriptions(self) -> list:
        subs = list(self._project_subs.values()) + list(self._report_subs)
        if self._users_sub is not None:
            subs.append(self._users_sub)
        return subs

    # -- state --

    @property
    def sets(self) -> VisibleSets:
        with self._lock:
            reports: dict[str, dict] = {}
            for idx in sorted(self._report_snapshots):
                for report in self._report_snapshots[idx]:
                    reports[report["id"]] = report
            return VisibleSets(
                users=list(self._users),
                projects=list(self._projects),
                reports=sort_reports(list(reports.values())),
            )

    # -- callbacks --

    def _project_callback(self, source: str):
        def _deliver(snapshot: list[dict]) -> None:
            with self._lock:
                if self._closed:
                    return
                self._project_snapshots[source] = snapshot
                self._projects = merge_project_snapshots(self._project_snapshots)
                ids = [p["id"] for p in self._projects]
                if ids != self._report_ids:
                    suspended, self._opening = self._opening, True
                    try:
                        self._resubscribe_reports(ids)
                    finally:
                        self._opening = suspended
            self._emit()
        return _deliver

    def _resubscribe_reports(self, project_ids: list[str]) -> None:
        for sub in self._report_subs:
            sub.cancel()
        self._report_subs = []
        self._report_snapshots = {}
        self._report_ids = list(project_ids)
        for idx, batch in enumerate(chunk_ids(project_ids)):
            self._report_subs.append(self._feed.subscribe(
                REPORTS,
                lambda batch=batch: query_reports(batch),
                self._report_callback(idx),
                on_error=self._handle_error,
                name=f"reports:{idx}:{self.user['id']}",
            ))

    def _report_callback(self, idx: int):
        def _deliver(snapshot: list[dict]) -> None:
            with self._lock:
                if self._closed:
                    return
                self._report_snapshots[idx] = snapshot
            self._emit()
        return _deliver

    def _on_users(self, snapshot: list[dict]) -> None:
        with self._lock:
            if self._closed:
                return
            self._users = snapshot
        self._emit()

    def _handle_error(self, exc: Exception) -> None:
        logger.warning("Visibility subscription error for user %s: %s", self.user.get("id"), exc)
        if self._on_error is not None:
            self._on_error(exc)

    def _emit(self) -> None:
        with self._lock:
            if self._opening or self._closed:
                return
            sets = self.sets
        self._on_change(sets)
