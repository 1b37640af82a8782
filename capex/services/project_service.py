"""CapEx project repository.

Every mutation (create, scalar update, sub-item value / N/A edit, settings
change) ends with ``recompute_project`` so phase completions, overall
completion and status are never persisted stale.

Rules:
  - Settings are passed in explicitly as ``ThresholdSettings``.
  - Derived fields (status, overall_completion) are read-only for callers.
  - The service flushes; the blueprint commits via ``db_commit_or_error``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_

from capex.core.exceptions import NotFoundError, ValidationError
from capex.models import db
from capex.models.project import CapexProject, CapexSubItem
from capex.services.completion_engine import (
    PHASE_ORDER,
    PHASE_SUB_ITEMS,
    ProjectData,
    ProjectType,
    ThresholdSettings,
    coerce_flag,
    coerce_value,
    evaluate_project,
)
from capex.services.record_adapter import (
    catalog_item_id,
    iter_sub_item_updates,
    project_from_record,
)
from capex.utils.helpers import parse_amount, parse_date

logger = logging.getLogger(__name__)

READ_ONLY_FIELDS = (
    "status", "project_status", "projectStatus",
    "overall_completion", "overallCompletion", "actual_project_completion",
)

_TEXT_FIELDS = {
    "project_name": ("project_name", "projectName", "name"),
    "project_owner": ("project_owner", "projectOwner", "owner"),
    "upcoming_milestone": ("upcoming_milestone", "upcomingMilestone"),
    "comments": ("comments",),
    "ses_number": ("ses_number", "sesNumber"),
}
_DATE_FIELDS = {
    "start_date": ("start_date", "startDate"),
    "end_date": ("end_date", "endDate"),
}
_AMOUNT_FIELDS = {
    "total_budget": ("total_budget", "totalBudget", "budget"),
    "total_actual": ("total_actual", "totalActual", "spent"),
    "yearly_budget": ("yearly_budget", "yearlyBudget"),
    "yearly_actual": ("yearly_actual", "yearlyActual"),
}
_UNSET = object()


# ── Queries ──────────────────────────────────────────────────────────────────


def list_projects(
    *,
    project_type: str | None = None,
    status: str | None = None,
    owner: str | None = None,
    q: str | None = None,
) -> list[CapexProject]:
    """List projects with optional type / status / owner / name filters."""
    query = CapexProject.query
    if project_type:
        try:
            query = query.filter(CapexProject.project_type == ProjectType.parse(project_type).value)
        except ValueError as exc:
            raise ValidationError(str(exc), details={"type": project_type}) from exc
    if status:
        query = query.filter(CapexProject.status == status)
    if owner:
        query = query.filter(CapexProject.project_owner == owner)
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(
            CapexProject.project_name.ilike(pattern),
            CapexProject.upcoming_milestone.ilike(pattern),
        ))
    return query.order_by(CapexProject.created_at.desc(), CapexProject.id.desc()).all()


def get_project(project_id: int) -> CapexProject:
    project = db.session.get(CapexProject, project_id)
    if project is None:
        raise NotFoundError(resource="CapexProject", resource_id=project_id)
    return project


# ── Recompute ────────────────────────────────────────────────────────────────


def evaluate(project: CapexProject, settings: ThresholdSettings) -> ProjectData:
    """Engine view of a persisted project, without writing anything back."""
    return evaluate_project(project.to_project_data(), settings)


def recompute_project(project: CapexProject, settings: ThresholdSettings) -> bool:
    """Re-derive completion and status; returns True when anything changed."""
    return project.apply_evaluation(evaluate(project, settings))


def recompute_all(settings: ThresholdSettings) -> int:
    """Recompute every project; returns the number whose derived fields changed."""
    changed = 0
    projects = CapexProject.query.all()
    for project in projects:
        if recompute_project(project, settings):
            changed += 1
    db.session.flush()
    logger.info("Recomputed %d projects (%d changed)", len(projects), changed)
    return changed


# ── Mutations ────────────────────────────────────────────────────────────────


def _reject_read_only(data: dict) -> None:
    present = [k for k in READ_ONLY_FIELDS if k in data]
    if present:
        raise ValidationError(
            "Status and overall completion are derived and cannot be set directly",
            details={k: "read-only" for k in present},
        )


def _pick(data: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return _UNSET


def _apply_scalars(project: CapexProject, data: dict) -> None:
    for attr, keys in _TEXT_FIELDS.items():
        value = _pick(data, keys)
        if value is _UNSET:
            continue
        text = str(value or "").strip() or None
        if attr == "project_name" and not text:
            raise ValidationError("project_name cannot be empty", details={"project_name": "required"})
        setattr(project, attr, text)

    for attr, keys in _DATE_FIELDS.items():
        value = _pick(data, keys)
        if value is _UNSET:
            continue
        parsed = parse_date(value)
        if value and parsed is None:
            raise ValidationError(f"{attr} is not a valid date", details={attr: value})
        setattr(project, attr, parsed)

    for attr, keys in _AMOUNT_FIELDS.items():
        value = _pick(data, keys)
        if value is _UNSET:
            continue
        try:
            amount = parse_amount(value)
        except ValueError as exc:
            raise ValidationError(f"{attr}: {exc}", details={attr: value}) from exc
        if amount is None and attr in ("total_budget", "total_actual"):
            amount = 0.0
        setattr(project, attr, amount)

    raw_type = _pick(data, ("project_type", "projectType", "type"))
    if raw_type is not _UNSET:
        try:
            project.project_type = ProjectType.parse(raw_type).value
        except ValueError as exc:
            raise ValidationError(str(exc), details={"project_type": raw_type}) from exc

    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationError("end_date cannot be before start_date", details={"end_date": "before start_date"})


def _ensure_sub_items(project: CapexProject) -> None:
    """Add any catalog sub-item the project does not have yet (value 0, not N/A)."""
    existing = {(row.phase, row.item_key) for row in project.sub_items}
    position = 0
    for phase_id in PHASE_ORDER:
        for item_id, name in PHASE_SUB_ITEMS[phase_id]:
            if (phase_id, item_id) not in existing:
                project.sub_items.append(CapexSubItem(
                    phase=phase_id, item_key=item_id, name=name,
                    value=0.0, is_na=False, position=position,
                ))
            position += 1


def _set_item(row: CapexSubItem, value: Any = _UNSET, is_na: Any = _UNSET) -> None:
    if is_na is not _UNSET and is_na is not None:
        row.is_na = coerce_flag(is_na)
        if row.is_na:
            row.value = 0.0
    if value is not _UNSET and value is not None:
        row.value = coerce_value(value)


def _apply_phases(project: CapexProject, raw_phases: Any) -> None:
    for phase_id, item_id, value, is_na in iter_sub_item_updates(raw_phases):
        if phase_id not in PHASE_SUB_ITEMS:
            raise ValidationError(f"Unknown phase: {phase_id}", details={"phase": phase_id})
        row = project.sub_item(phase_id, item_id)
        if row is None:
            raise ValidationError(
                f"Unknown sub-item {item_id!r} in phase {phase_id}",
                details={"phase": phase_id, "item": item_id},
            )
        _set_item(row, value, is_na)


def create_project(data: dict, settings: ThresholdSettings) -> CapexProject:
    """Create a project with every catalog sub-item, then derive its status."""
    _reject_read_only(data)
    name = _pick(data, _TEXT_FIELDS["project_name"])
    if name is _UNSET or not str(name or "").strip():
        raise ValidationError("project_name is required", details={"project_name": "required"})

    project = CapexProject(
        project_type=ProjectType.COMPLEX_PROJECT.value,
        total_budget=0.0,
        total_actual=0.0,
    )
    _apply_scalars(project, data)
    _ensure_sub_items(project)
    _apply_phases(project, data.get("phases"))
    recompute_project(project, settings)

    db.session.add(project)
    db.session.flush()
    logger.info(
        "CapEx project created id=%s type=%s completion=%s status=%s",
        project.id, project.project_type, project.overall_completion, project.status,
    )
    return project


def update_project(project: CapexProject, data: dict, settings: ThresholdSettings) -> CapexProject:
    """Partial update of scalar fields and/or sub-items; always recomputes."""
    _reject_read_only(data)
    _apply_scalars(project, data)
    _ensure_sub_items(project)
    _apply_phases(project, data.get("phases"))
    recompute_project(project, settings)
    db.session.flush()
    logger.info("CapEx project updated id=%s status=%s", project.id, project.status)
    return project


def update_sub_item(
    project: CapexProject,
    phase_id: str,
    item_key: str,
    data: dict,
    settings: ThresholdSettings,
) -> CapexProject:
    """Set one sub-item's value and/or N/A flag, then recompute."""
    if phase_id not in PHASE_SUB_ITEMS:
        raise NotFoundError(resource="Phase", resource_id=phase_id)
    _ensure_sub_items(project)
    row = project.sub_item(phase_id, catalog_item_id(phase_id, item_key))
    if row is None:
        raise NotFoundError(resource="SubItem", resource_id=f"{phase_id}.{item_key}")

    value = _pick(data, ("value",))
    is_na = _pick(data, ("is_na", "isNA"))
    if value is _UNSET and is_na is _UNSET:
        raise ValidationError("value or is_na is required", details={"value": "required"})
    _set_item(row, value, is_na)

    previous = project.status
    recompute_project(project, settings)
    db.session.flush()
    if previous != project.status:
        logger.info(
            "CapEx project %s status %s -> %s (completion=%s)",
            project.id, previous, project.status, project.overall_completion,
        )
    return project


def delete_project(project: CapexProject) -> None:
    db.session.delete(project)
    db.session.flush()
    logger.info("CapEx project deleted id=%s", project.id)


def import_records(records: list, settings: ThresholdSettings) -> list[CapexProject]:
    """Create projects from historical-shape records via the record adapter."""
    if not isinstance(records, list):
        raise ValidationError("records must be a list", details={"records": "list required"})

    created = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValidationError(f"record {index} must be an object", details={"index": index})
        data = project_from_record(record)
        if not data.project_name:
            raise ValidationError(f"record {index} has no project name", details={"index": index})

        payload: dict[str, Any] = {
            "project_name": data.project_name,
            "project_type": data.project_type.value,
            **data.extra,
        }
        payload["phases"] = {
            phase_id: {
                "sub_items": [
                    {"id": s.id, "value": s.value, "is_na": s.is_na}
                    for s in phase.sub_items
                ],
            }
            for phase_id, phase in data.phases.items()
        }
        created.append(create_project(payload, settings))

    logger.info("Imported %d CapEx project records", len(created))
    return created
