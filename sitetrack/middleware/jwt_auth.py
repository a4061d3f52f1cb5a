"""
JWT Auth Middleware — parses the Bearer token, sets g.jwt_uid.

The hook never rejects a request itself. Routes that need a signed-in
profile use ``require_profile`` which turns a missing/invalid token into
401; public routes (health, login, register) simply ignore g.jwt_uid.
"""

import logging

import jwt as pyjwt
from flask import g, request

from sitetrack.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/google",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_uid = None
        g.jwt_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        token = auth_header[7:] if auth_header.startswith("Bearer ") else None
        # EventSource cannot set headers, so the stream accepts ?access_token=
        if token is None and path == "/api/v1/me/stream":
            token = request.args.get("access_token")
        if not token:
            return

        try:
            g.jwt_uid = decode_access_token(token).get("sub")
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
        except pyjwt.InvalidTokenError as exc:
            logger.debug("Rejected bearer token on %s: %s", path, exc)
            g.jwt_error = "Invalid token"
