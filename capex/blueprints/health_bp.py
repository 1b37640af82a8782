"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — detailed health (database, settings row, project count)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from capex.models import db
from capex.models.project import CapexProject
from capex.models.settings import SETTINGS_ROW_ID, AdminSettings

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── CapEx tables ─────────────────────────────────────────────────
    if overall:
        try:
            checks["projects"] = {"status": "ok", "count": CapexProject.query.count()}
            configured = db.session.get(AdminSettings, SETTINGS_ROW_ID) is not None
            checks["settings"] = {"status": "ok" if configured else "defaults"}
        except Exception as exc:
            checks["projects"] = {"status": "error", "detail": str(exc)}
            overall = False
            logger.error("Health check — capex tables failed: %s", exc)

    # ── Rate limiter storage ─────────────────────────────────────────
    redis_url = current_app.config.get("REDIS_URL", "")
    checks["rate_limiter"] = {
        "status": "ok",
        "storage": "redis" if redis_url and "redis" in redis_url else "memory",
    }

    checks["app"] = {
        "name": "CapEx Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
