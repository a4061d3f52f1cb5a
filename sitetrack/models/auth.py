"""
Auth Models — external identities and application user profiles.

Identity and User are deliberately separate tables:
  - identities: the sign-in credential (password or federated subject).
  - users:      the dashboard profile (name, role), keyed by identity uid.

Deleting a User removes only the profile. The Identity survives, so the
same person can sign in again and is re-provisioned as a pending profile.
"""

import enum
import uuid
from datetime import datetime, timezone

from sitetrack.models import db


class Role(str, enum.Enum):
    """Closed set of dashboard roles. Pending approval is modelled as None."""

    ADMIN = "Admin"
    DEPARTMENT_HEAD = "DepartmentHead"
    PROJECT_MANAGER = "ProjectManager"
    LEAD_SUPERVISOR = "LeadSupervisor"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """Map a stored/submitted value to a Role, or None when unknown/empty."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


def _new_uid() -> str:
    return uuid.uuid4().hex


# ═══════════════════════════════════════════════════════════════
# 1. IDENTITIES (external auth provider records)
# ═══════════════════════════════════════════════════════════════
class Identity(db.Model):
    __tablename__ = "identities"

    uid = db.Column(db.String(64), primary_key=True, default=_new_uid)
    email = db.Column(db.String(200), unique=True, nullable=True)
    password_hash = db.Column(db.String(256))  # NULL for federated identities
    display_name = db.Column(db.String(200))
    provider = db.Column(db.String(30), nullable=False, default="password")  # password, google
    provider_subject = db.Column(db.String(200), index=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    last_sign_in_at = db.Column(db.DateTime)

    def __repr__(self) -> str:
        return f"<Identity {self.uid}: {self.provider}>"


# ═══════════════════════════════════════════════════════════════
# 2. USERS (application profiles)
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)  # == Identity.uid
    email = db.Column(db.String(200))
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(30), nullable=True)  # NULL = pending approval
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_role", "role"),
    )

    @property
    def role_enum(self) -> Role | None:
        """Role validated at the data-access boundary."""
        return Role.parse(self.role)

    @property
    def is_pending(self) -> bool:
        return self.role_enum is None

    def to_dict(self) -> dict:
        role = self.role_enum
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": role.value if role else None,
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.role or 'pending'}>"
