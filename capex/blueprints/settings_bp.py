"""
Admin Settings Blueprint — status thresholds, phase weight tables and the
financials display flag.

Endpoints:
    GET  /api/v1/settings            — Current settings
    PUT  /api/v1/settings            — Validate + save; recomputes every project
    POST /api/v1/settings/validate   — Dry-run validation for the admin form
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from capex.core.exceptions import ValidationError
from capex.models import db
from capex.services import settings_service
from capex.utils.errors import E, api_error
from capex.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1")


@settings_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@settings_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    logger.exception("Unexpected error in settings_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@settings_bp.route("/settings", methods=["GET"])
def get_settings():
    settings = settings_service.get_settings()
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(settings.to_dict()), 200


@settings_bp.route("/settings", methods=["PUT"])
def update_settings():
    """Partial update. Invalid thresholds/weights -> 422 with the offending field."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "Settings payload is required")

    settings, result, changed = settings_service.update_settings(
        data, updated_by=request.headers.get("X-User"),
    )
    err = db_commit_or_error()
    if err:
        return err
    body = settings.to_dict()
    body["recomputed"] = changed
    if result.warnings:
        body["warnings"] = result.warnings
    return jsonify(body), 200


@settings_bp.route("/settings/validate", methods=["POST"])
def validate_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_INVALID, "JSON object body required")
    result = settings_service.validate_settings(data)
    return jsonify(result.to_dict()), 200
