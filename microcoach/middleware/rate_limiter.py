"""
Rate limiting configuration.

The Limiter instance is created in microcoach/__init__.py with no default
limits; this module applies per-blueprint limits.

Usage:
    from microcoach.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""


def init_rate_limits(app, limiter):
    """
    Apply rate limits to blueprints.

    Limits (per remote IP):
        - Auth (login):        10/minute
        - Inbound SMS webhook: 120/minute
        - Dashboard reads:     200/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit("10/minute")(bp)

    bp = app.blueprints.get("sms_bp")
    if bp:
        limiter.limit("120/minute")(bp)

    for bp_name in ("analytics_bp", "cohort_bp", "org_bp", "reflection_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — auth: 10/min, inbound: 120/min, read: 200/min")
