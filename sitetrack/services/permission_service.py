"""
Permission Service — role × assignment policy for the dashboard.

Evaluation is deterministic and deny-by-default:
  - no user, pending user (role NULL) or unknown role → False
  - "assigned" means the user's id is in the project's manager or
    supervisor list, matching the role being checked
  - predicates never raise and never touch the database

Policy (role: allowed actions):
  Admin           manage users, create/edit/delete projects, reassign
                  personnel, edit/delete reports, delete other users
  DepartmentHead  create projects, reassign personnel
  ProjectManager  edit assigned projects, add reports to and review
                  reports of assigned projects
  LeadSupervisor  add reports to assigned projects

Editing and deleting an existing report is Admin-only; creating one is
limited to assigned managers and supervisors.
"""

from sitetrack.models.auth import Role

PROJECT_CREATOR_ROLES = frozenset({Role.ADMIN, Role.DEPARTMENT_HEAD})
PERSONNEL_EDITOR_ROLES = frozenset({Role.ADMIN, Role.DEPARTMENT_HEAD})
ALL_PROJECTS_ROLES = frozenset({Role.ADMIN, Role.DEPARTMENT_HEAD})
FIELD_ROLES = frozenset({Role.PROJECT_MANAGER, Role.LEAD_SUPERVISOR})


def _role(user) -> Role | None:
    if user is None:
        return None
    if isinstance(user, dict):
        return Role.parse(user.get("role"))
    return Role.parse(getattr(user, "role", None))


def _user_id(user) -> str | None:
    if user is None:
        return None
    if isinstance(user, dict):
        return user.get("id")
    return getattr(user, "id", None)


def _manager_ids(project) -> list[str]:
    if project is None:
        return []
    if isinstance(project, dict):
        return project.get("projectManagerIds") or []
    return project.project_manager_ids


def _supervisor_ids(project) -> list[str]:
    if project is None:
        return []
    if isinstance(project, dict):
        return project.get("leadSupervisorIds") or []
    return project.lead_supervisor_ids


def _is_admin(user) -> bool:
    return _role(user) is Role.ADMIN


def is_assigned_manager(user, project) -> bool:
    uid = _user_id(user)
    return (
        _role(user) is Role.PROJECT_MANAGER
        and uid is not None
        and uid in _manager_ids(project)
    )


def is_assigned_supervisor(user, project) -> bool:
    uid = _user_id(user)
    return (
        _role(user) is Role.LEAD_SUPERVISOR
        and uid is not None
        and uid in _supervisor_ids(project)
    )


# ── Users ─────────────────────────────────────────────────────────────────


def can_manage_users(user) -> bool:
    """View, edit and delete any user profile."""
    return _is_admin(user)


def can_fetch_all_users(user) -> bool:
    return _is_admin(user)


def can_approve_users(user) -> bool:
    return _is_admin(user)


def can_delete_user(user, target_id: str | None = None) -> bool:
    """Admin may delete users, but never their own profile."""
    if not _is_admin(user):
        return False
    return target_id is None or target_id != _user_id(user)


# ── Projects ──────────────────────────────────────────────────────────────


def sees_all_projects(user) -> bool:
    return _role(user) in ALL_PROJECTS_ROLES


def is_assigned(user, project) -> bool:
    """Field roles see a project when listed in either personnel list."""
    uid = _user_id(user)
    if _role(user) not in FIELD_ROLES or uid is None:
        return False
    return uid in _manager_ids(project) or uid in _supervisor_ids(project)


def can_view_project(user, project) -> bool:
    return sees_all_projects(user) or is_assigned(user, project)


def can_add_project(user) -> bool:
    return _role(user) in PROJECT_CREATOR_ROLES


def can_edit_project(user, project) -> bool:
    """Edit core (non-personnel) fields."""
    return _is_admin(user) or is_assigned_manager(user, project)


def can_edit_personnel(user) -> bool:
    return _role(user) in PERSONNEL_EDITOR_ROLES


def can_delete_project(user) -> bool:
    return _is_admin(user)


# ── Reports & reviews ─────────────────────────────────────────────────────


def can_add_report(user, project) -> bool:
    return is_assigned_manager(user, project) or is_assigned_supervisor(user, project)


def can_edit_report(user, project=None) -> bool:
    return _is_admin(user)


def can_delete_report(user, project=None) -> bool:
    return _is_admin(user)


def can_review_report(user, project) -> bool:
    return is_assigned_manager(user, project)


def capabilities(user, project=None) -> dict:
    """Flattened predicate results for UI affordances."""
    caps = {
        "manageUsers": can_manage_users(user),
        "addProject": can_add_project(user),
        "editPersonnel": can_edit_personnel(user),
        "deleteProject": can_delete_project(user),
    }
    if project is not None:
        caps.update({
            "editProject": can_edit_project(user, project),
            "addReport": can_add_report(user, project),
            "editReport": can_edit_report(user, project),
            "deleteReport": can_delete_report(user, project),
            "reviewReport": can_review_report(user, project),
        })
    return caps
