"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in sitetrack/__init__.py with no default limits; this module
applies limits per route category.

Usage:
    from sitetrack.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

AUTH_LIMIT = "20/minute"
AI_LIMIT = "10/minute"
WRITE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Limits (per remote IP):
        - Auth endpoints:   20/minute  (credential guessing)
        - AI endpoints:     10/minute  (LLM calls are expensive)
        - Mutation routes:  120/minute
        - Dashboard stream: exempt (long-lived connection)

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(AUTH_LIMIT)(bp)

    bp = app.blueprints.get("ai")
    if bp:
        limiter.limit(AI_LIMIT)(bp)

    for bp_name in ("project", "report", "user"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("dashboard")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — auth: %s, ai: %s, write: %s", AUTH_LIMIT, AI_LIMIT, WRITE_LIMIT,
    )
