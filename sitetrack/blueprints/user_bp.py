"""
User Blueprint — Admin user management.

Endpoints:
    GET    /api/v1/users                 — full directory
    PATCH  /api/v1/users/<id>            — edit name / role (role null revokes)
    DELETE /api/v1/users/<id>            — delete profile (never self)
    POST   /api/v1/users/<id>/approve    — grant a role to a pending user
"""

from flask import Blueprint, g, jsonify, request

from sitetrack.middleware.permission_required import require_permission, require_profile
from sitetrack.services import user_service
from sitetrack.services.permission_service import can_manage_users
from sitetrack.utils.errors import E, api_error
from sitetrack.utils.helpers import missing_fields

user_bp = Blueprint("user", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["GET"])
@require_profile()
@require_permission(can_manage_users, "Only Admin can manage users.")
def list_users():
    return jsonify(user_service.list_users(g.current_user)), 200


@user_bp.route("/users/<user_id>", methods=["PATCH"])
@require_profile()
@require_permission(can_manage_users, "Only Admin can manage users.")
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    if not any(k in data for k in ("name", "role")):
        return api_error(E.VALIDATION_REQUIRED, "name or role is required")
    user = user_service.update_user(g.current_user, user_id, data)
    return jsonify(user.to_dict()), 200


@user_bp.route("/users/<user_id>", methods=["DELETE"])
@require_profile()
def delete_user(user_id):
    user_service.delete_user(g.current_user, user_id)
    return jsonify({"deleted_user": user_id}), 200


@user_bp.route("/users/<user_id>/approve", methods=["POST"])
@require_profile()
@require_permission(can_manage_users, "Only Admin can approve users.")
def approve_user(user_id):
    """Body: { "role": "ProjectManager" }"""
    data = request.get_json(silent=True) or {}
    if missing_fields(data, "role"):
        return api_error(E.VALIDATION_REQUIRED, "role is required", details={"role": "required"})
    user = user_service.approve_user(g.current_user, user_id, data["role"])
    return jsonify(user.to_dict()), 200
