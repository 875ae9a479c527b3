"""
Request timing middleware.

Every response carries ``X-Request-ID`` (echoed from the caller when sent)
and ``X-Request-Duration-Ms``. Requests are logged at DEBUG, promoted to
WARNING when slower than SLOW_REQUEST_MS and to ERROR on 5xx.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are hit every few seconds by the load balancer
QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

SLOW_REQUEST_MS = 1000


def _log_level(status_code: int, duration_ms: float) -> int:
    if status_code >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Attach the timing hooks to ``app``."""

    @app.before_request
    def _stamp_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_started = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        started = getattr(g, "request_started", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        request_id = getattr(g, "request_id", "")
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path not in QUIET_PATHS:
            logger.log(
                _log_level(response.status_code, elapsed_ms),
                "%s %s -> %d",
                request.method, request.path, response.status_code,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": elapsed_ms,
                    "remote_addr": request.remote_addr,
                    "request_id": request_id,
                    "work_order_id": (request.view_args or {}).get("work_order_id"),
                },
            )
        return response
