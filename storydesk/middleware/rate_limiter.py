"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in storydesk/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from storydesk.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

MAINTENANCE_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Stakeholder maintenance (dedup):  10/minute  (full-table rewrites)
        - Record/registry endpoints:        60/minute
        - Project reads:                    200/minute
        - Health check:                     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("stakeholder_maintenance")
    if bp:
        limiter.limit(MAINTENANCE_LIMIT)(bp)

    for bp_name in ("stakeholder", "narrative", "follow_up"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("project")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: maintenance=%s write=%s read=%s",
        MAINTENANCE_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
