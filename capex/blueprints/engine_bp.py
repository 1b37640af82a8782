"""
Engine Blueprint — stateless evaluation of a posted project.

Endpoints:
    POST /api/v1/engine/evaluate

Request body:
    {
      "project":  {...any record shape the record adapter accepts...},
      "settings": {"on_track": 90, "at_risk": 80, "impacted": 0,
                   "phase_weights": {...}}      # optional, defaults to stored settings
    }

Nothing is persisted.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from capex.core.exceptions import ValidationError
from capex.services import settings_service
from capex.services.completion_engine import evaluate_project
from capex.services.record_adapter import project_from_record
from capex.utils.errors import E, api_error

logger = logging.getLogger(__name__)

engine_bp = Blueprint("engine", __name__, url_prefix="/api/v1/engine")


@engine_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@engine_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    logger.exception("Unexpected error in engine_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _settings_from(raw):
    """Stored settings, optionally overlaid with posted ones."""
    if raw is None:
        return settings_service.get_threshold_settings()
    if not isinstance(raw, dict):
        raise ValidationError("settings must be an object", details={"field": "settings"})
    return settings_service.preview_settings(raw)


@engine_bp.route("/evaluate", methods=["POST"])
def evaluate():
    """Run a record through the adapter and the engine; returns the evaluated project."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body required")
    record = data.get("project", data)
    if not isinstance(record, dict):
        return api_error(E.VALIDATION_INVALID, "project must be an object")

    settings = _settings_from(data.get("settings"))
    evaluated = evaluate_project(project_from_record(record), settings)
    return jsonify({
        "project": evaluated.to_dict(),
        "settings": settings.to_dict(),
    }), 200
