"""
CapEx Tracker
Project domain models.

Models:
    - CapexProject: a Complex Project or Asset Purchase with budget figures
      and the cached derived fields (phase completions, overall, status)
    - CapexSubItem: one tracked deliverable inside a phase (value + N/A flag)

Derived columns are written only through ``apply_evaluation``; the engine in
``capex.services.completion_engine`` is the only place they are computed.
"""

from datetime import datetime, timezone

from capex.models import db
from capex.services.completion_engine import (
    PHASE_NAMES,
    PHASE_ORDER,
    Phase,
    ProjectData,
    ProjectStatus,
    ProjectType,
    SubItem,
)
from capex.services.financials import financial_metrics


class CapexProject(db.Model):
    """Capital project tracked through Feasibility → Planning → Execution → Close."""

    __tablename__ = "capex_projects"

    id = db.Column(db.Integer, primary_key=True)
    project_name = db.Column(db.String(200), nullable=False)
    project_owner = db.Column(db.String(100), nullable=True)
    project_type = db.Column(
        db.String(30),
        nullable=False,
        default=ProjectType.COMPLEX_PROJECT.value,
        comment="project | asset_purchase",
    )
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    # ── Financials ──
    total_budget = db.Column(db.Float, nullable=False, default=0.0)
    total_actual = db.Column(db.Float, nullable=False, default=0.0)
    yearly_budget = db.Column(db.Float, nullable=True)
    yearly_actual = db.Column(db.Float, nullable=True)
    ses_number = db.Column(db.String(50), nullable=True)

    upcoming_milestone = db.Column(db.String(200), nullable=True)
    comments = db.Column(db.Text, nullable=True)

    # ── Derived (recomputed on every mutation) ──
    status = db.Column(
        db.String(20),
        nullable=False,
        default=ProjectStatus.IMPACTED.value,
        comment="On Track | At Risk | Impacted",
    )
    overall_completion = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    feasibility_completion = db.Column(db.Integer, nullable=False, default=0)
    planning_completion = db.Column(db.Integer, nullable=False, default=0)
    execution_completion = db.Column(db.Integer, nullable=False, default=0)
    close_completion = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    sub_items = db.relationship(
        "CapexSubItem", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="CapexSubItem.position",
    )

    __table_args__ = (
        db.Index("ix_capex_projects_type_status", "project_type", "status"),
    )

    # ── Engine bridge ────────────────────────────────────────────────────

    def to_project_data(self) -> ProjectData:
        """Build the engine's in-memory shape from the persisted rows."""
        grouped: dict[str, list[SubItem]] = {p: [] for p in PHASE_ORDER}
        for row in self.sub_items:
            grouped.setdefault(row.phase, []).append(
                SubItem(row.item_key, row.name, row.value or 0, bool(row.is_na))
            )
        phases = {
            phase_id: Phase(
                id=phase_id,
                name=PHASE_NAMES.get(phase_id, phase_id.title()),
                sub_items=items,
                completion=getattr(self, f"{phase_id}_completion", 0) or 0,
            )
            for phase_id, items in grouped.items()
        }
        return ProjectData(
            id=self.id,
            project_name=self.project_name,
            project_type=ProjectType.parse(self.project_type, default=ProjectType.COMPLEX_PROJECT),
            phases=phases,
            overall_completion=self.overall_completion or 0,
            status=ProjectStatus(self.status) if self.status else ProjectStatus.IMPACTED,
        )

    def apply_evaluation(self, evaluated: ProjectData) -> bool:
        """Copy derived fields from an evaluated ``ProjectData``.

        Returns True when any derived value changed.
        """
        before = self.derived_snapshot()
        for phase_id in PHASE_ORDER:
            phase = evaluated.phases.get(phase_id)
            setattr(self, f"{phase_id}_completion", phase.completion if phase else 0)
        self.overall_completion = evaluated.overall_completion
        self.status = evaluated.status.value
        changed = before != self.derived_snapshot()
        if changed:
            self.last_updated = datetime.now(timezone.utc)
        return changed

    def derived_snapshot(self) -> tuple:
        return (
            self.overall_completion,
            self.status,
            *(getattr(self, f"{p}_completion") for p in PHASE_ORDER),
        )

    def sub_item(self, phase_id: str, item_key: str):
        for row in self.sub_items:
            if row.phase == phase_id and row.item_key == item_key:
                return row
        return None

    # ── Serialization ────────────────────────────────────────────────────

    def to_dict(self, include_phases: bool = True, weights: dict | None = None,
                show_financials: bool = True) -> dict:
        """Serialize project for API responses."""
        result = {
            "id": self.id,
            "project_name": self.project_name,
            "project_owner": self.project_owner,
            "project_type": self.project_type,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "overall_completion": self.overall_completion,
            "upcoming_milestone": self.upcoming_milestone,
            "comments": self.comments,
            "ses_number": self.ses_number,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if show_financials:
            result.update({
                "total_budget": self.total_budget,
                "total_actual": self.total_actual,
                "yearly_budget": self.yearly_budget,
                "yearly_actual": self.yearly_actual,
                "financials": financial_metrics(
                    self.total_budget, self.total_actual, self.overall_completion,
                ),
            })
        if include_phases:
            weights = weights or {}
            data = self.to_project_data()
            result["phases"] = {}
            for phase_id in PHASE_ORDER:
                phase = data.phases[phase_id]
                phase.weight = weights.get(phase_id, 0)
                result["phases"][phase_id] = phase.to_dict()
        return result

    def __repr__(self) -> str:
        return f"<CapexProject {self.id}: {self.project_name}>"


class CapexSubItem(db.Model):
    """Completion value for one catalog sub-item of one project."""

    __tablename__ = "capex_sub_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("capex_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase = db.Column(
        db.String(20), nullable=False,
        comment="feasibility | planning | execution | close",
    )
    item_key = db.Column(db.String(50), nullable=False, comment="camelCase catalog id")
    name = db.Column(db.String(100), nullable=False)
    value = db.Column(db.Float, nullable=False, default=0.0, comment="0-100")
    is_na = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint("project_id", "item_key", name="uq_capex_sub_items_project_item"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.item_key,
            "name": self.name,
            "phase": self.phase,
            "value": self.value,
            "is_na": self.is_na,
        }

    def __repr__(self) -> str:
        return f"<CapexSubItem {self.project_id}:{self.item_key}={self.value}>"
