"""
Permission Decorators — profile-aware guards for route protection.

Usage:
    @bp.route("/users", methods=["GET"])
    @require_profile()
    @require_permission(can_fetch_all_users)
    def list_users():
        ...

``require_profile`` resolves the JWT identity to its profile and stores it
on ``g.current_user``:
  - no or invalid token            → 401 ERR_AUTH_REQUIRED
  - token but profile deleted      → 401 ERR_PROFILE_MISSING (forced logout)
  - pending profile (role NULL)    → 403 ERR_PENDING_APPROVAL, unless
                                     ``allow_pending=True``

``require_permission`` checks a permission_service predicate that takes
only the user; project-scoped checks stay in the services.
"""

import functools
import logging

from flask import g

from sitetrack.models import db
from sitetrack.models.auth import User
from sitetrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_profile(allow_pending: bool = False):
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            uid = getattr(g, "jwt_uid", None)
            if uid is None:
                message = getattr(g, "jwt_error", None) or "Authentication required"
                return api_error(E.AUTH_REQUIRED, message)

            user = db.session.get(User, uid)
            if user is None:
                logger.warning(
                    "Identity %s has no profile on %s; forcing sign-out", uid, f.__name__,
                    extra={"user_id": uid, "event_type": "session.profile_missing"},
                )
                return api_error(E.PROFILE_MISSING, "Your profile could not be loaded. Please sign in again.")

            if user.is_pending and not allow_pending:
                return api_error(E.PENDING_APPROVAL, "Your account is awaiting approval.")

            g.current_user = user
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_permission(predicate, message: str = "Permission denied"):
    """Require ``predicate(g.current_user)`` to hold. Use under require_profile."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if not predicate(user):
                logger.warning(
                    "User %s denied: %s on %s",
                    getattr(user, "id", None), predicate.__name__, f.__name__,
                    extra={"user_id": getattr(user, "id", None), "event_type": "permission.denied"},
                )
                return api_error(E.FORBIDDEN, message)
            return f(*args, **kwargs)
        return decorated
    return decorator
