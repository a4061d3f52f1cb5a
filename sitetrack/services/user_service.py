"""
User Service — profile directory, approval of pending users, role management.

Profiles are application records only. Deleting one never touches the
sign-in Identity; the person can sign in again and comes back as pending.
"""

import logging

from flask import current_app

from sitetrack.core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from sitetrack.models import db
from sitetrack.models.auth import Role, User
from sitetrack.services import permission_service as perms
from sitetrack.services.realtime import USERS, notify_change
from sitetrack.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

DEFAULT_GRANTABLE_ROLES = (
    Role.DEPARTMENT_HEAD,
    Role.PROJECT_MANAGER,
    Role.LEAD_SUPERVISOR,
)


def grantable_roles() -> tuple[Role, ...]:
    """Roles an approval may grant, from APPROVAL_GRANTABLE_ROLES."""
    configured = current_app.config.get("APPROVAL_GRANTABLE_ROLES")
    if not configured:
        return DEFAULT_GRANTABLE_ROLES
    roles = tuple(r for r in (Role.parse(v) for v in configured) if r is not None)
    return roles or DEFAULT_GRANTABLE_ROLES


def list_users(actor: User) -> list[dict]:
    if not perms.can_fetch_all_users(actor):
        raise PermissionDeniedError("Only Admin can list users.", action="user.list")
    return [u.to_dict() for u in User.query.order_by(User.name.asc(), User.id.asc()).all()]


def _parse_role_field(value) -> Role | None:
    if value is None:
        return None
    role = Role.parse(value)
    if role is None:
        raise ValidationError(
            f"Unknown role '{value}'",
            details={"role": [r.value for r in Role]},
        )
    return role


# ═══════════════════════════════════════════════════════════════
# Approval
# ═══════════════════════════════════════════════════════════════
def approve_user(actor: User, user_id: str, role) -> User:
    """Grant a role to a pending user."""
    if not perms.can_approve_users(actor):
        raise PermissionDeniedError("Only Admin can approve users.", action="user.approve")
    target = get_or_raise(User, user_id, "User")
    if not target.is_pending:
        raise ConflictError(resource="User", field="role", value=target.role)

    granted = _parse_role_field(role)
    allowed = grantable_roles()
    if granted is None or granted not in allowed:
        raise ValidationError(
            "Role cannot be granted by approval",
            details={"role": [r.value for r in allowed]},
        )

    target.role = granted.value
    db.session.commit()
    logger.info(
        "User %s approved as %s by %s", target.id, granted.value, actor.id,
        extra={"user_id": target.id, "event_type": "user.approved"},
    )
    notify_change(USERS)
    return target


# ═══════════════════════════════════════════════════════════════
# Update / delete
# ═══════════════════════════════════════════════════════════════
def update_user(actor: User, user_id: str, data: dict) -> User:
    """Admin edit of name and role. ``role: null`` revokes access."""
    if not perms.can_manage_users(actor):
        raise PermissionDeniedError("Only Admin can edit users.", action="user.update")
    target = get_or_raise(User, user_id, "User")

    changed = [k for k in ("name", "role") if k in data]
    if not changed:
        raise ValidationError("No updatable fields supplied")
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        target.name = name
    if "role" in data:
        role = _parse_role_field(data["role"])
        target.role = role.value if role else None

    db.session.commit()
    logger.info(
        "User %s updated by %s (fields: %s)", target.id, actor.id, ", ".join(changed),
        extra={"user_id": target.id, "event_type": "user.updated"},
    )
    notify_change(USERS)
    return target


def delete_user(actor: User, user_id: str) -> None:
    if actor is not None and actor.id == user_id:
        raise PermissionDeniedError("You cannot delete yourself.", action="user.delete_self")
    if not perms.can_delete_user(actor, user_id):
        raise PermissionDeniedError("Only Admin can delete users.", action="user.delete")
    target = get_or_raise(User, user_id, "User")

    db.session.delete(target)
    db.session.commit()
    logger.info(
        "User profile %s deleted by %s", user_id, actor.id,
        extra={"user_id": user_id, "event_type": "user.deleted"},
    )
    notify_change(USERS)
