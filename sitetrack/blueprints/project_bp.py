"""
Project Blueprint — projects and their daily reports.

Endpoints:
    GET    /api/v1/projects                  — visible projects with progress
    POST   /api/v1/projects                  — create (Admin, DepartmentHead)
    GET    /api/v1/projects/<id>             — detail with progress + capabilities
    PATCH  /api/v1/projects/<id>             — merge update
    DELETE /api/v1/projects/<id>             — cascading delete (Admin)
    GET    /api/v1/projects/<id>/reports     — reports joined with reviews, newest first
    POST   /api/v1/projects/<id>/reports     — add a daily report

Layer contract:
    - No ORM calls here; all DB work is delegated to the services.
    - Missing required fields are rejected with 400 before any service call.
"""

import logging

from flask import Blueprint, g, jsonify, request

from sitetrack.middleware.permission_required import require_profile
from sitetrack.services import permission_service as perms
from sitetrack.services import project_service, report_service, visibility_service
from sitetrack.services.aggregate_service import project_card
from sitetrack.utils.errors import E, api_error
from sitetrack.utils.helpers import missing_fields

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


@project_bp.route("/projects", methods=["GET"])
@require_profile()
def list_projects():
    projects = visibility_service.visible_projects(g.current_user)
    return jsonify([project_card(p) for p in projects]), 200


@project_bp.route("/projects", methods=["POST"])
@require_profile()
def create_project():
    """Body: project fields in wire format (name and both dates required)."""
    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, "name", "constructionStartDate", "plannedAcceptanceDate")
    if missing:
        return api_error(E.VALIDATION_REQUIRED, "Please fill in all required fields",
                         details={f: "required" for f in missing})

    project = project_service.create_project(g.current_user, data)
    return jsonify(project_card(project)), 201


@project_bp.route("/projects/<project_id>", methods=["GET"])
@require_profile()
def get_project(project_id):
    project = project_service.get_visible_project(g.current_user, project_id)
    body = project_card(project)
    body["capabilities"] = perms.capabilities(g.current_user, project)
    return jsonify(body), 200


@project_bp.route("/projects/<project_id>", methods=["PATCH"])
@require_profile()
def update_project(project_id):
    data = request.get_json(silent=True) or {}
    data.pop("id", None)
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "No fields supplied")

    project = project_service.update_project(g.current_user, project_id, data)
    return jsonify(project_card(project)), 200


@project_bp.route("/projects/<project_id>", methods=["DELETE"])
@require_profile()
def delete_project(project_id):
    result = project_service.delete_project(g.current_user, project_id)
    return jsonify(result), 200


# ── Reports of a project ──────────────────────────────────────────────────────


@project_bp.route("/projects/<project_id>/reports", methods=["GET"])
@require_profile()
def list_reports(project_id):
    return jsonify(report_service.list_project_reports(g.current_user, project_id)), 200


@project_bp.route("/projects/<project_id>/reports", methods=["POST"])
@require_profile()
def add_report(project_id):
    """Body: { "date": "DD/MM/YYYY", "tasks": "...", "images": ["<base64>", ...] }"""
    data = request.get_json(silent=True) or {}
    missing = missing_fields(data, "date", "tasks")
    if missing:
        return api_error(E.VALIDATION_REQUIRED, "Please fill in all required fields",
                         details={f: "required" for f in missing})

    report = report_service.add_report(g.current_user, project_id, data)
    return jsonify(report.to_dict()), 201
