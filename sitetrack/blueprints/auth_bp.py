"""
Auth Blueprint — sign-in endpoints.

Endpoints:
  POST /api/v1/auth/register  — email + password → token + session
  POST /api/v1/auth/login     — email + password → token + session
  POST /api/v1/auth/google    — Google ID token  → token + session
  GET  /api/v1/auth/me        — current session state
  POST /api/v1/auth/logout    — acknowledge logout (tokens are discarded client-side)

Every successful sign-in provisions a pending profile when the identity has
none, so the returned session state is either "pending_approval" or "active".
"""

import logging

from flask import Blueprint, g, jsonify, request

from sitetrack.middleware.permission_required import require_profile
from sitetrack.services import identity_service, session_service
from sitetrack.services.jwt_service import token_response
from sitetrack.utils.errors import E, api_error
from sitetrack.utils.helpers import missing_fields

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _signed_in(identity, status=200):
    user = session_service.ensure_profile(identity)
    body = token_response(identity.uid)
    body["session"] = session_service.session_payload(user)
    return jsonify(body), status


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "name": "..." }
    """
    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, "email", "password")
    if missing:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required",
                         details={f: "required" for f in missing})

    identity = identity_service.register_with_password(
        data["email"], data["password"], display_name=data.get("name"),
    )
    return _signed_in(identity, 201)


@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    if missing_fields(data, "email", "password"):
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    identity = identity_service.sign_in_with_password(data["email"], data["password"])
    return _signed_in(identity)


@auth_bp.route("/google", methods=["POST"])
def google():
    """
    Body: { "id_token": "<Google ID token>" }
    """
    data = request.get_json(silent=True) or {}
    if missing_fields(data, "id_token"):
        return api_error(E.VALIDATION_REQUIRED, "id_token is required")

    identity = identity_service.sign_in_with_google(data["id_token"])
    return _signed_in(identity)


@auth_bp.route("/me", methods=["GET"])
@require_profile(allow_pending=True)
def me():
    return jsonify(session_service.session_payload(g.current_user)), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    uid = getattr(g, "jwt_uid", None)
    if uid:
        logger.info("User %s signed out", uid, extra={"user_id": uid, "event_type": "auth.logout"})
    return jsonify({"state": session_service.SessionState.UNAUTHENTICATED.value}), 200
