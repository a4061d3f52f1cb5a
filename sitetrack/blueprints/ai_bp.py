"""
AI Blueprint — generated progress summaries.

Endpoints:
    POST /api/v1/projects/<id>/summary  — summary of the project's reports

Summaries never fail the request: the assistant returns a fixed fallback
text when the LLM is unavailable.
"""

from flask import Blueprint, current_app, g, jsonify

from sitetrack.ai.assistants.progress_summary import ProgressSummaryAssistant
from sitetrack.ai.gateway import LLMGateway
from sitetrack.middleware.permission_required import require_profile
from sitetrack.services import project_service, report_service

ai_bp = Blueprint("ai", __name__, url_prefix="/api/v1")


def _get_assistant() -> ProgressSummaryAssistant:
    gateway = current_app.extensions.get("llm_gateway")
    if gateway is None:
        gateway = LLMGateway.from_app(current_app)
        current_app.extensions["llm_gateway"] = gateway
    return ProgressSummaryAssistant(gateway, language=current_app.config.get("SUMMARY_LANGUAGE", "Vietnamese"))


@ai_bp.route("/projects/<project_id>/summary", methods=["POST"])
@require_profile()
def project_summary(project_id):
    project = project_service.get_visible_project(g.current_user, project_id)
    reports = report_service.list_project_reports(g.current_user, project_id)
    summary = _get_assistant().summarize(project, reports)
    return jsonify({"projectId": project.id, "summary": summary}), 200
