"""Admin-settings provider.

Supplies ``ThresholdSettings`` to the engine and accepts updates only after
``validate_thresholds`` / ``validate_weight_table`` pass.

Rules:
  - The settings row (id=1) is created lazily with configured defaults.
  - Updates are partial: omitted thresholds / weight tables keep their value.
  - A successful update recomputes every project against the new settings
    in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import current_app, has_app_context

from capex.core.exceptions import ValidationError
from capex.models import db
from capex.models.settings import SETTINGS_ROW_ID, AdminSettings
from capex.services.completion_engine import (
    MIN_THRESHOLD_GAP,
    ProjectType,
    ThresholdSettings,
    ValidationResult,
    coerce_flag,
    validate_thresholds,
    validate_weight_table,
)

logger = logging.getLogger(__name__)

_THRESHOLD_KEYS = {
    "on_track": ("on_track", "onTrack", "onTrackThreshold", "on_track_threshold"),
    "at_risk": ("at_risk", "atRisk", "atRiskThreshold", "at_risk_threshold"),
    "impacted": ("impacted", "impactedThreshold", "impacted_threshold"),
}


def _config(key: str, default: Any) -> Any:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def min_threshold_gap() -> float:
    return _config("CAPEX_MIN_THRESHOLD_GAP", MIN_THRESHOLD_GAP)


def get_settings() -> AdminSettings:
    """Return the settings row, creating it with configured defaults if absent."""
    settings = db.session.get(AdminSettings, SETTINGS_ROW_ID)
    if settings is None:
        defaults = _config("CAPEX_DEFAULT_THRESHOLDS", {})
        settings = AdminSettings(id=SETTINGS_ROW_ID)
        if "on_track" in defaults:
            settings.on_track_threshold = defaults["on_track"]
        if "at_risk" in defaults:
            settings.at_risk_threshold = defaults["at_risk"]
        if "impacted" in defaults:
            settings.impacted_threshold = defaults["impacted"]
        weights = _config("CAPEX_DEFAULT_PHASE_WEIGHTS", None)
        if weights:
            settings.phase_weights = weights
        db.session.add(settings)
        db.session.flush()
        logger.info("Admin settings initialised with defaults")
    return settings


def get_threshold_settings() -> ThresholdSettings:
    return get_settings().to_threshold_settings()


def _pick(sources: tuple[dict, ...], keys: tuple[str, ...], default: Any) -> Any:
    for source in sources:
        for key in keys:
            if key in source:
                return source[key]
    return default


def _candidate(current: AdminSettings, data: dict) -> tuple[dict, dict]:
    """Merge a partial payload over the current settings."""
    nested = data.get("thresholds") if isinstance(data.get("thresholds"), dict) else {}
    sources = (nested, data)
    thresholds = {
        "on_track": _pick(sources, _THRESHOLD_KEYS["on_track"], current.on_track_threshold),
        "at_risk": _pick(sources, _THRESHOLD_KEYS["at_risk"], current.at_risk_threshold),
        "impacted": _pick(sources, _THRESHOLD_KEYS["impacted"], current.impacted_threshold),
    }
    weights = current.phase_weights
    incoming = _pick((data,), ("phase_weights", "phaseWeights"), None)
    if incoming is not None:
        if not isinstance(incoming, dict):
            weights = incoming
        else:
            weights = dict(weights)
            for type_key, table in incoming.items():
                weights[type_key] = table
    return thresholds, weights


def validate_settings(data: dict, current: AdminSettings | None = None) -> ValidationResult:
    """Dry-run validation of a settings payload. Never raises."""
    current = current or get_settings()
    thresholds, weights = _candidate(current, data or {})

    result = validate_thresholds(
        thresholds["on_track"], thresholds["at_risk"], thresholds["impacted"],
        min_gap=min_threshold_gap(),
    )
    if not result.is_valid:
        return result

    if not isinstance(weights, dict):
        return ValidationResult(False, "phase_weights must be an object keyed by project type", "phase_weights")
    warnings: list[str] = []
    for type_key, table in weights.items():
        try:
            ProjectType.parse(type_key)
        except ValueError:
            return ValidationResult(False, f"Unknown project type in phase_weights: {type_key}", "phase_weights")
        check = validate_weight_table(table, label=f"phase_weights.{type_key}")
        if not check.is_valid:
            return check
        warnings.extend(check.warnings)
    return ValidationResult(True, warnings=warnings)


def preview_settings(data: dict, current: AdminSettings | None = None) -> ThresholdSettings:
    """Engine settings with ``data`` overlaid on the stored row; nothing is saved.

    Raises:
        ValidationError: when the merged settings are invalid.
    """
    current = current or get_settings()
    result = validate_settings(data, current)
    if not result.is_valid:
        raise ValidationError(result.error, details={"field": result.field_name})
    thresholds, weights = _candidate(current, data or {})
    return ThresholdSettings(
        on_track=float(thresholds["on_track"]),
        at_risk=float(thresholds["at_risk"]),
        impacted=float(thresholds["impacted"]),
        phase_weights={
            ProjectType.parse(k).value: {p: float(w) for p, w in table.items()}
            for k, table in weights.items()
        },
    )


def update_settings(data: dict, *, updated_by: str | None = None) -> tuple[AdminSettings, ValidationResult, int]:
    """Validate and apply a partial settings update, then recompute projects.

    Returns:
        (settings, validation_result, recomputed_project_count)

    Raises:
        ValidationError: with the engine's reason and offending field.
    """
    from capex.services import project_service

    settings = get_settings()
    data = data or {}
    result = validate_settings(data, settings)
    if not result.is_valid:
        raise ValidationError(result.error, details={"field": result.field_name})

    thresholds, weights = _candidate(settings, data)
    settings.on_track_threshold = float(thresholds["on_track"])
    settings.at_risk_threshold = float(thresholds["at_risk"])
    settings.impacted_threshold = float(thresholds["impacted"])
    settings.phase_weights = {
        ProjectType.parse(k).value: {p: float(w) for p, w in table.items()}
        for k, table in weights.items()
    }
    flag = _pick((data,), ("show_financials", "showFinancials"), None)
    if flag is not None:
        settings.show_financials = coerce_flag(flag)
    if updated_by:
        settings.updated_by = updated_by
    db.session.flush()

    changed = project_service.recompute_all(settings.to_threshold_settings())
    logger.info(
        "Admin settings updated: on_track=%s at_risk=%s impacted=%s recomputed=%d",
        settings.on_track_threshold, settings.at_risk_threshold,
        settings.impacted_threshold, changed,
    )
    return settings, result, changed
