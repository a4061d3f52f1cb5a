"""
Report Blueprint — edit, delete and review existing daily reports.

Endpoints:
    PATCH  /api/v1/reports/<id>          — partial update (Admin)
    DELETE /api/v1/reports/<id>          — remove review entry, then report (Admin)
    POST   /api/v1/reports/<id>/review   — add the manager review (assigned PM)
"""

from flask import Blueprint, g, jsonify, request

from sitetrack.middleware.permission_required import require_profile
from sitetrack.services import report_service
from sitetrack.utils.errors import E, api_error
from sitetrack.utils.helpers import missing_fields

report_bp = Blueprint("report", __name__, url_prefix="/api/v1")


@report_bp.route("/reports/<report_id>", methods=["PATCH"])
@require_profile()
def update_report(report_id):
    data = request.get_json(silent=True) or {}
    if not data:
        return api_error(E.VALIDATION_REQUIRED, "No fields supplied")
    report = report_service.update_report(g.current_user, report_id, data)
    return jsonify(report.to_dict()), 200


@report_bp.route("/reports/<report_id>", methods=["DELETE"])
@require_profile()
def delete_report(report_id):
    return jsonify(report_service.delete_report(g.current_user, report_id)), 200


@report_bp.route("/reports/<report_id>/review", methods=["POST"])
@require_profile()
def add_review(report_id):
    """Body: { "comment": "..." }"""
    data = request.get_json(silent=True) or {}
    if missing_fields(data, "comment"):
        return api_error(E.VALIDATION_REQUIRED, "Please enter a review comment",
                         details={"comment": "required"})

    review = report_service.add_review(g.current_user, report_id, data["comment"])
    return jsonify({"reportId": review.report_id, "projectId": review.project_id, **review.to_dict()}), 201
