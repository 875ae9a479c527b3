"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in scantrack/__init__.py has no default limit; this module
attaches one limit string per blueprint group after registration:

    scheduler                       RATELIMIT_SCHEDULER (30/minute)
    production_completion, barcode  RATELIMIT_READ (200/minute)
    health                          exempt

Nothing is attached when TESTING is set.
"""

import logging

logger = logging.getLogger(__name__)

READ_BLUEPRINTS = ("production_completion", "barcode")


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        logger.debug("Rate limits not applied under TESTING")
        return

    limits = {"scheduler": app.config.get("RATELIMIT_SCHEDULER", "30/minute")}
    read_limit = app.config.get("RATELIMIT_READ", "200/minute")
    limits.update({name: read_limit for name in READ_BLUEPRINTS})

    for name, limit in limits.items():
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit)(bp)

    if "health" in app.blueprints:
        limiter.exempt(app.blueprints["health"])

    logger.info("Rate limiter configured: scheduler %s, read %s", limits["scheduler"], read_limit)
