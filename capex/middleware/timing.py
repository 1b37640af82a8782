"""
Request id, duration headers and the request log.

Every response carries ``X-Request-ID`` (echoed from the caller or
generated) and ``X-Request-Duration-Ms``. Logging rules:

- successful writes to projects or settings: INFO, tagged with the
  project / phase / item and, for project routes, the resulting status
- rejected writes (4xx): INFO with the status code
- 5xx or anything slower than SLOW_THRESHOLD_MS: WARNING / ERROR
- everything else: DEBUG
"""

import logging
import time
import uuid

from flask import Flask, g, request

from capex.middleware.logging_config import request_tags

logger = logging.getLogger(__name__)

SLOW_THRESHOLD_MS = 1000

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_QUIET_PREFIXES = ("/api/v1/health/",)


def _outcome(response) -> dict:
    """Status / completion from a project payload, when the body is one."""
    if response.status_code >= 300 or not response.is_json:
        return {}
    body = response.get_json(silent=True)
    if not isinstance(body, dict):
        return {}
    out = {}
    if "status" in body and "overall_completion" in body:
        out["project_status"] = body["status"]
        out["overall_completion"] = body["overall_completion"]
    if "recomputed" in body:
        out["recomputed"] = body["recomputed"]
    return out


def init_request_timing(app: Flask):
    """Register the before/after hooks on ``app``."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _log_request(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if request.path.startswith(_QUIET_PREFIXES):
            return response

        extra = dict(request_tags())
        extra.update(
            method=request.method,
            path=request.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        code = response.status_code
        is_write = request.method in _WRITE_METHODS

        if code >= 500:
            logger.error("%s %s failed with %d", request.method, request.path, code, extra=extra)
        elif duration_ms > SLOW_THRESHOLD_MS:
            logger.warning("Slow request: %s %s %d (%.0fms)",
                           request.method, request.path, code, duration_ms, extra=extra)
        elif is_write and code >= 400:
            logger.info("Rejected %s %s: %d", request.method, request.path, code, extra=extra)
        elif is_write:
            extra.update(_outcome(response))
            logger.info("%s %s applied", request.method, request.path, extra=extra)
        else:
            logger.debug("%s %s %d", request.method, request.path, code, extra=extra)

        return response
