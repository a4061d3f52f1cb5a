"""
Dashboard Blueprint — the signed-in user's visible sets.

Endpoints:
    GET /api/v1/me/dashboard  — one-shot: visible projects (with progress),
                                reports and users
    GET /api/v1/me/stream     — Server-Sent Events: a snapshot of the live
                                DashboardSession after every change

Stream query params:
    access_token  — bearer token (EventSource cannot send headers)
    limit         — stop after N snapshots (0 = until the client disconnects)
"""

import json
import logging
import queue
from types import SimpleNamespace

from flask import Blueprint, Response, current_app, g, jsonify, request, stream_with_context

from sitetrack.middleware.permission_required import require_profile
from sitetrack.services import permission_service as perms
from sitetrack.services.aggregate_service import project_card
from sitetrack.services.session_service import DashboardSession
from sitetrack.services.visibility_service import resolve_visible_sets

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/me")


@dashboard_bp.route("/dashboard", methods=["GET"])
@require_profile()
def dashboard():
    user = g.current_user
    sets = resolve_visible_sets(user)
    return jsonify({
        "user": user.to_dict(),
        "capabilities": perms.capabilities(user),
        "users": sets.users,
        "projects": [project_card(p) for p in sets.projects],
        "reports": sets.reports,
    }), 200


def _sse(snapshot: dict) -> str:
    payload = dict(snapshot)
    payload["projects"] = [project_card(p) for p in snapshot.get("projects", [])]
    return f"event: snapshot\ndata: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dashboard_bp.route("/stream", methods=["GET"])
@require_profile(allow_pending=True)
def stream():
    user = g.current_user
    uid = user.id
    limit = request.args.get("limit", 0, type=int)
    heartbeat = current_app.config.get("SSE_HEARTBEAT_SECONDS", 15)

    updates: queue.Queue = queue.Queue()
    session = DashboardSession(on_update=updates.put, provision=None)
    session.sign_in(SimpleNamespace(uid=user.id, email=user.email, display_name=user.name))
    logger.info("Dashboard stream opened for %s", user.id, extra={"user_id": user.id, "event_type": "stream.opened"})

    @stream_with_context
    def generate():
        sent = 0
        try:
            while True:
                try:
                    snapshot = updates.get(timeout=heartbeat)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                # Coalesce bursts; only the latest state matters
                while not updates.empty():
                    snapshot = updates.get_nowait()
                yield _sse(snapshot)
                sent += 1
                if snapshot["state"] == "unauthenticated" or (limit and sent >= limit):
                    break
        finally:
            session.sign_out()
            logger.info("Dashboard stream closed for %s", uid, extra={"user_id": uid, "event_type": "stream.closed"})

    return Response(generate(), mimetype="text/event-stream", headers={"Cache-Control": "no-cache"})
