"""
CapEx Tracker
Project Blueprint — CRUD API for CapEx projects and their phase sub-items.

Endpoints:
    GET    /api/v1/projects                                        — List (type/status/owner/q filters)
    POST   /api/v1/projects                                        — Create
    GET    /api/v1/projects/<id>                                   — Detail (phases + sub-items)
    PUT    /api/v1/projects/<id>                                   — Update scalars and/or sub-items
    DELETE /api/v1/projects/<id>                                   — Delete
    PATCH  /api/v1/projects/<id>/phases/<phase>/items/<item>       — Set one sub-item value / N/A
    GET    /api/v1/projects/<id>/record                            — Legacy flat-row export
    POST   /api/v1/projects/recompute                              — Recompute every project
    POST   /api/v1/projects/import                                 — Import historical records

Status and overall completion are derived; payloads carrying them get 422.
"""

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from capex.core.exceptions import NotFoundError, ValidationError
from capex.models import db
from capex.services import project_service
from capex.services.record_adapter import project_to_record
from capex.services.settings_service import get_settings
from capex.utils.errors import E, api_error
from capex.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("project", __name__, url_prefix="/api/v1")


# ── Error handlers ───────────────────────────────────────────────────────────


@project_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@project_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    db.session.rollback()
    return api_error(E.VALIDATION_RULE, str(error), details=error.details)


@project_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    logger.exception("Unexpected error in project_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _serialize(project, settings):
    thresholds = settings.to_threshold_settings()
    return project.to_dict(
        weights=thresholds.weights_for(project.project_type),
        show_financials=settings.show_financials,
    )


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """Return all projects, newest first, optionally filtered."""
    projects = project_service.list_projects(
        project_type=request.args.get("type"),
        status=request.args.get("status"),
        owner=request.args.get("owner"),
        q=request.args.get("q"),
    )
    settings = get_settings()
    include_phases = request.args.get("include_phases", "false").lower() == "true"
    items = []
    for p in projects:
        if include_phases:
            items.append(_serialize(p, settings))
        else:
            items.append(p.to_dict(include_phases=False, show_financials=settings.show_financials))
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a project; every catalog sub-item starts at 0."""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "JSON object body required")
    if not str(data.get("project_name") or data.get("projectName") or data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "project_name is required")

    settings = get_settings()
    project = project_service.create_project(data, settings.to_threshold_settings())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_serialize(project, settings)), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    return jsonify(_serialize(project, get_settings())), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    """Partial update; derived fields are recomputed before commit."""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "JSON object body required")

    project = project_service.get_project(project_id)
    settings = get_settings()
    project_service.update_project(project, data, settings.to_threshold_settings())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_serialize(project, settings)), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project = project_service.get_project(project_id)
    name = project.project_name
    project_service.delete_project(project)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": f"Project '{name}' deleted"}), 200


@project_bp.route("/projects/<int:project_id>/phases/<phase_id>/items/<item_key>", methods=["PATCH"])
def update_sub_item(project_id, phase_id, item_key):
    """Set ``value`` and/or ``is_na`` on one sub-item."""
    data = _json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "JSON object body required")
    if not any(k in data for k in ("value", "is_na", "isNA")):
        return api_error(E.VALIDATION_REQUIRED, "value or is_na is required")

    project = project_service.get_project(project_id)
    settings = get_settings()
    project_service.update_sub_item(project, phase_id, item_key, data, settings.to_threshold_settings())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_serialize(project, settings)), 200


@project_bp.route("/projects/<int:project_id>/record", methods=["GET"])
def export_record(project_id):
    """Project as a legacy flat row (``"75%"`` / ``"N/A"`` cells)."""
    project = project_service.get_project(project_id)
    settings = get_settings()
    record = project_to_record(project_service.evaluate(project, settings.to_threshold_settings()))
    record.update({
        k: v for k, v in project.to_dict(include_phases=False, show_financials=settings.show_financials).items()
        if k not in ("status", "overall_completion", "financials") and k not in record
    })
    return jsonify(record), 200


@project_bp.route("/projects/recompute", methods=["POST"])
def recompute_projects():
    settings = get_settings()
    changed = project_service.recompute_all(settings.to_threshold_settings())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"recomputed": changed}), 200


@project_bp.route("/projects/import", methods=["POST"])
def import_projects():
    """Import a list of records in any supported historical shape."""
    data = request.get_json(silent=True)
    records = data.get("records") if isinstance(data, dict) else data
    if not isinstance(records, list) or not records:
        return api_error(E.VALIDATION_REQUIRED, "records list is required")

    settings = get_settings()
    created = project_service.import_records(records, settings.to_threshold_settings())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "imported": len(created),
        "items": [p.to_dict(include_phases=False, show_financials=settings.show_financials) for p in created],
    }), 201
