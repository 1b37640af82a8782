"""
CapEx Tracker
Admin settings — single-row table (id=1) holding status thresholds,
phase weight tables per project type and the financials display flag.
"""

import json
from datetime import datetime, timezone

from capex.models import db
from capex.services.completion_engine import (
    DEFAULT_AT_RISK,
    DEFAULT_IMPACTED,
    DEFAULT_ON_TRACK,
    DEFAULT_PHASE_WEIGHTS,
    ThresholdSettings,
)

SETTINGS_ROW_ID = 1


class AdminSettings(db.Model):
    """Admin-configured inputs of the completion engine."""

    __tablename__ = "capex_admin_settings"

    id = db.Column(db.Integer, primary_key=True)
    on_track_threshold = db.Column(db.Float, nullable=False, default=DEFAULT_ON_TRACK)
    at_risk_threshold = db.Column(db.Float, nullable=False, default=DEFAULT_AT_RISK)
    impacted_threshold = db.Column(db.Float, nullable=False, default=DEFAULT_IMPACTED)
    show_financials = db.Column(db.Boolean, nullable=False, default=True)
    phase_weights_json = db.Column(
        db.Text,
        nullable=False,
        default=lambda: json.dumps(DEFAULT_PHASE_WEIGHTS),
        comment="JSON: {project_type: {phase: weight}}",
    )
    updated_by = db.Column(db.String(100), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def phase_weights(self) -> dict:
        try:
            weights = json.loads(self.phase_weights_json or "{}")
        except (TypeError, ValueError):
            weights = {}
        merged = {k: dict(v) for k, v in DEFAULT_PHASE_WEIGHTS.items()}
        for type_key, table in weights.items():
            if isinstance(table, dict):
                merged[type_key] = table
        return merged

    @phase_weights.setter
    def phase_weights(self, value: dict) -> None:
        self.phase_weights_json = json.dumps(value)

    def to_threshold_settings(self) -> ThresholdSettings:
        return ThresholdSettings(
            on_track=self.on_track_threshold,
            at_risk=self.at_risk_threshold,
            impacted=self.impacted_threshold,
            phase_weights=self.phase_weights,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "thresholds": {
                "on_track": self.on_track_threshold,
                "at_risk": self.at_risk_threshold,
                "impacted": self.impacted_threshold,
            },
            "phase_weights": self.phase_weights,
            "show_financials": self.show_financials,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<AdminSettings on_track={self.on_track_threshold} "
            f"at_risk={self.at_risk_threshold} impacted={self.impacted_threshold}>"
        )
