"""
Session Service — profile provisioning and the dashboard session lifecycle.

States:
    unauthenticated → authenticating → profile_missing (first login)
                    → pending_approval (role NULL) | active (role set)
                    → unauthenticated (sign out)

Rules:
  - the first sign-in of an identity without a profile provisions one with
    role NULL, copying email and display name verbatim ("New user" if the
    identity has no name)
  - a pending session loads no projects, reports or users
  - a failed profile fetch, or a profile that disappears, forces sign-out
  - a change of user or role is a barrier: every subscription of the old
    scope is cancelled before the new scope subscribes
  - sign_out() clears user, users, projects and reports before returning
"""

import enum
import logging
import threading
from typing import Callable

from sitetrack.core.exceptions import AuthError
from sitetrack.models import db
from sitetrack.models.auth import Identity, User
from sitetrack.services import permission_service as perms
from sitetrack.services.realtime import USERS, feed as default_feed, notify_change
from sitetrack.services.visibility_service import VisibilityScope, query_profile

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "New user"
PROFILE_MISSING = "ERR_PROFILE_MISSING"


class SessionState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    PROFILE_MISSING = "profile_missing"
    PENDING_APPROVAL = "pending_approval"
    ACTIVE = "active"


# ═══════════════════════════════════════════════════════════════
# Profiles
# ═══════════════════════════════════════════════════════════════
def ensure_profile(identity: Identity) -> User:
    """Return the identity's profile, provisioning a pending one on first login."""
    user = db.session.get(User, identity.uid)
    if user is not None:
        return user

    user = User(
        id=identity.uid,
        email=identity.email,
        name=identity.display_name or PLACEHOLDER_NAME,
        role=None,
    )
    db.session.add(user)
    db.session.commit()
    logger.info(
        "Provisioned pending profile for %s", identity.uid,
        extra={"user_id": identity.uid, "event_type": "user.provisioned"},
    )
    notify_change(USERS)
    return user


def load_profile(uid: str) -> User:
    """Profile for an authenticated uid; a missing profile ends the session."""
    user = db.session.get(User, uid) if uid else None
    if user is None:
        raise AuthError("Your profile could not be loaded. Please sign in again.", code=PROFILE_MISSING)
    return user


def state_for(user: User | None) -> SessionState:
    if user is None:
        return SessionState.PROFILE_MISSING
    return SessionState.PENDING_APPROVAL if user.is_pending else SessionState.ACTIVE


def session_payload(user: User) -> dict:
    return {
        "state": state_for(user).value,
        "user": user.to_dict(),
        "capabilities": perms.capabilities(user),
    }


# ═══════════════════════════════════════════════════════════════
# Live session
# ═══════════════════════════════════════════════════════════════
class DashboardSession:
    """One signed-in dashboard: the profile stream plus a VisibilityScope.

    ``on_update`` receives ``snapshot()`` after every state or data change.
    """

    def __init__(
        self,
        *,
        on_update: Callable[[dict], None] | None = None,
        profile_loader: Callable[[str], dict | None] = query_profile,
        provision: Callable[[object], object] | None = ensure_profile,
        feed=None,
    ):
        self._on_update = on_update
        self._profile_loader = profile_loader
        self._provision = provision
        self._feed = feed or default_feed
        self._lock = threading.RLock()

        self.state = SessionState.UNAUTHENTICATED
        self.identity = None
        self.user: dict | None = None
        self.users: list[dict] = []
        self.projects: list[dict] = []
        self.reports: list[dict] = []
        self.error: str | None = None

        self._profile_sub = None
        self._scope: VisibilityScope | None = None

    # -- public API --

    @property
    def uid(self) -> str | None:
        return getattr(self.identity, "uid", None)

    def sign_in(self, identity) -> "DashboardSession":
        """Start a session for ``identity`` (anything with a ``uid``)."""
        with self._lock:
            self._teardown()
            self._clear()
            self.error = None
            self.identity = identity
            self.state = SessionState.AUTHENTICATING
            uid = identity.uid
            self._profile_sub = self._feed.subscribe(
                USERS,
                lambda: self._profile_loader(uid),
                self._on_profile,
                on_error=self._on_profile_error,
                name=f"profile:{uid}",
                deliver_initial=False,
            )
            self._profile_sub.refresh()
        self._publish()
        return self

    def sign_out(self) -> None:
        with self._lock:
            self._teardown()
            self._clear()
            self.identity = None
            self.state = SessionState.UNAUTHENTICATED
        self._publish()

    def subscription_count(self) -> int:
        with self._lock:
            count = 1 if self._profile_sub is not None and self._profile_sub.active else 0
            if self._scope is not None:
                count += self._scope.subscription_count()
            return count

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "state": self.state.value,
                "user": dict(self.user) if self.user else None,
                "users": list(self.users),
                "projects": list(self.projects),
                "reports": list(self.reports),
                "error": self.error,
            }

    # -- internals --

    def _teardown(self) -> None:
        if self._scope is not None:
            self._scope.close()
            self._scope = None
        if self._profile_sub is not None:
            self._profile_sub.cancel()
            self._profile_sub = None

    def _clear(self) -> None:
        self.user = None
        self.users = []
        self.projects = []
        self.reports = []

    def _force_sign_out(self, reason: str) -> None:
        logger.warning(
            "Forcing sign-out of %s: %s", self.uid, reason,
            extra={"user_id": self.uid, "event_type": "session.forced_sign_out"},
        )
        self._teardown()
        self._clear()
        self.identity = None
        self.error = reason
        self.state = SessionState.UNAUTHENTICATED

    def _on_profile_error(self, exc: Exception) -> None:
        with self._lock:
            if self.identity is None:
                return
            self._force_sign_out(f"Profile fetch failed: {exc}")
        self._publish()

    def _on_profile(self, profile: dict | None) -> None:
        with self._lock:
            if self.identity is None:
                return
            if profile is None:
                if self.state is SessionState.AUTHENTICATING and self._provision is not None:
                    self.state = SessionState.PROFILE_MISSING
                    try:
                        # Provisioning notifies USERS, which re-enters here with the new profile.
                        self._provision(self.identity)
                    except Exception as exc:
                        logger.error("Profile provisioning failed for %s: %s", self.uid, exc, exc_info=True)
                        self._force_sign_out(f"Profile provisioning failed: {exc}")
                    if self.state is SessionState.PROFILE_MISSING and self.identity is not None:
                        self._force_sign_out("Profile not found")
                else:
                    self._force_sign_out("Profile not found")
            else:
                self._apply_profile(profile)
        self._publish()

    def _apply_profile(self, profile: dict) -> None:
        previous = self.user
        self.user = dict(profile)
        if previous is not None and previous.get("role") == profile.get("role") and self._scope is not None:
            return

        # Role (or user) changed: old scope is closed before anything new subscribes.
        if self._scope is not None:
            self._scope.close()
            self._scope = None
        self.users, self.projects, self.reports = [], [], []

        if profile.get("role") is None:
            self.state = SessionState.PENDING_APPROVAL
            return
        self.state = SessionState.ACTIVE
        # Deliveries are tagged with their scope so a closed one cannot overwrite the new sets.
        scope = VisibilityScope(
            self.user, lambda sets: self._on_sets(scope, sets),
            on_error=lambda exc: self._on_scope_error(scope, exc), feed=self._feed,
        )
        self._scope = scope
        scope.open()

    def _on_sets(self, scope, sets) -> None:
        with self._lock:
            if scope is not self._scope or self.state is not SessionState.ACTIVE:
                return
            self.users = sets.users
            self.projects = sets.projects
            self.reports = sets.reports
        self._publish()

    def _on_scope_error(self, scope, exc: Exception) -> None:
        with self._lock:
            if scope is not self._scope:
                return
            self.error = str(exc)
        self._publish()

    def _publish(self) -> None:
        if self._on_update is not None:
            self._on_update(self.snapshot())
