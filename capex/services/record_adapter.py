"""
Persistence-boundary adapter for historical CapEx project shapes.

Spreadsheet imports and older API clients send projects in several layouts.
They are all collapsed here into ``ProjectData`` so nothing past this module
has to guess which layout it holds.

Supported inputs:
    1. flat rows  — ``{"project_name": ..., "risk_assessment": "75%",
       "project_charter": "N/A", "section": "Projects", ...}``
    2. nested phases, ``subItems`` as a list of ``{id, name, value, isNA}``
    3. nested phases, ``subItems``/``sub_items`` keyed by sub-item id
    4. any nested sub-item carrying ``target``/``actual`` instead of ``value``

Missing sub-items come back as value 0, not N/A.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from capex.services.completion_engine import (
    PHASE_NAMES,
    PHASE_ORDER,
    PHASE_SUB_ITEMS,
    Phase,
    ProjectData,
    ProjectStatus,
    ProjectType,
    SubItem,
    coerce_flag,
    coerce_value,
    completion_ratio,
    round_half_up,
    sub_item_column,
)

NA_MARKER = "N/A"

# Scalar fields copied verbatim into ProjectData.extra; (canonical, aliases...)
_SCALAR_FIELDS: tuple[tuple[str, ...], ...] = (
    ("project_owner", "projectOwner", "owner"),
    ("start_date", "startDate"),
    ("end_date", "endDate"),
    ("total_budget", "totalBudget", "budget", "yearly_budget"),
    ("total_actual", "totalActual", "spent", "yearly_actual"),
    ("yearly_budget", "yearlyBudget"),
    ("yearly_actual", "yearlyActual"),
    ("upcoming_milestone", "upcomingMilestone"),
    ("comments", "comments_risk", "financialNotes"),
    ("ses_number", "sesNumber"),
)


def _first(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return default


def _is_na_marker(raw: Any) -> bool:
    return isinstance(raw, str) and raw.strip().upper() == NA_MARKER


def _nested_value(item: Mapping[str, Any]) -> float:
    if "value" not in item and ("target" in item or "actual" in item):
        return min(100.0, float(completion_ratio(item.get("actual"), item.get("target"))))
    return coerce_value(item.get("value"))


def _nested_is_na(item: Mapping[str, Any]) -> bool:
    flag = _first(item, "is_na", "isNA", default=False)
    return coerce_flag(flag) or _is_na_marker(item.get("value"))


def _items_by_id(raw_items: Any) -> dict[str, Mapping[str, Any]]:
    """Normalize list-or-dict sub-item collections to ``{id: item}``."""
    if isinstance(raw_items, Mapping):
        out = {}
        for key, item in raw_items.items():
            if isinstance(item, Mapping):
                out[str(key)] = item
            else:
                out[str(key)] = {"value": item}
        return out
    out = {}
    for item in raw_items or ():
        if isinstance(item, Mapping) and item.get("id") is not None:
            out[str(item["id"])] = item
    return out


def _lookup(items: Mapping[str, Mapping[str, Any]], item_id: str) -> Mapping[str, Any] | None:
    return items.get(item_id) or items.get(sub_item_column(item_id))


def _phases_from_nested(raw_phases: Mapping[str, Any]) -> dict[str, Phase]:
    phases = {}
    for phase_id in PHASE_ORDER:
        raw_phase = raw_phases.get(phase_id) or {}
        raw_items = _first(raw_phase, "sub_items", "subItems", default=[])
        items = _items_by_id(raw_items)
        sub_items = []
        for item_id, default_name in PHASE_SUB_ITEMS[phase_id]:
            item = _lookup(items, item_id)
            if item is None:
                sub_items.append(SubItem(item_id, default_name))
                continue
            sub_items.append(SubItem(
                id=item_id,
                name=str(item.get("name") or default_name),
                value=0.0 if _nested_is_na(item) else _nested_value(item),
                is_na=_nested_is_na(item),
            ))
        phases[phase_id] = Phase(
            id=phase_id,
            name=str(raw_phase.get("name") or PHASE_NAMES[phase_id]),
            sub_items=sub_items,
        )
    return phases


def _phases_from_flat(record: Mapping[str, Any]) -> dict[str, Phase]:
    phases = {}
    for phase_id in PHASE_ORDER:
        sub_items = []
        for item_id, name in PHASE_SUB_ITEMS[phase_id]:
            raw = _first(record, sub_item_column(item_id), item_id)
            is_na = _is_na_marker(raw)
            sub_items.append(SubItem(item_id, name, 0.0 if is_na else coerce_value(raw), is_na))
        phases[phase_id] = Phase(id=phase_id, name=PHASE_NAMES[phase_id], sub_items=sub_items)
    return phases


def _project_type(record: Mapping[str, Any]) -> ProjectType:
    raw = _first(record, "project_type", "projectType", "type", "section")
    if isinstance(raw, Mapping):
        raw = raw.get("id") or raw.get("name")
    return ProjectType.parse(raw, default=ProjectType.COMPLEX_PROJECT)


def project_from_record(record: Mapping[str, Any]) -> ProjectData:
    """Read any supported historical shape into ``ProjectData``.

    Derived fields (completion, status) are left at their defaults; run the
    result through ``evaluate_project`` to fill them in.
    """
    if not isinstance(record, Mapping):
        raise TypeError(f"project record must be a mapping, got {type(record).__name__}")

    raw_phases = record.get("phases")
    if isinstance(raw_phases, Mapping):
        phases = _phases_from_nested(raw_phases)
    else:
        phases = _phases_from_flat(record)

    extra = {}
    for canonical, *aliases in _SCALAR_FIELDS:
        value = _first(record, canonical, *aliases)
        if value is not None:
            extra[canonical] = value

    return ProjectData(
        id=record.get("id"),
        project_name=str(_first(record, "project_name", "projectName", "name", default="")).strip(),
        project_type=_project_type(record),
        phases=phases,
        extra=extra,
    )


def project_to_record(project: ProjectData) -> dict:
    """Flatten a project into the legacy row shape (``"75%"`` / ``"N/A"`` cells)."""
    record: dict = {
        "id": project.id,
        "project_name": project.project_name,
        "project_type": project.project_type.value,
        "project_status": project.status.value if isinstance(project.status, ProjectStatus) else project.status,
        "actual_project_completion": project.overall_completion,
    }
    for phase_id in PHASE_ORDER:
        phase = project.phases.get(phase_id)
        if phase is None:
            continue
        for item in phase.sub_items:
            record[sub_item_column(item.id)] = NA_MARKER if item.is_na else f"{round_half_up(item.value)}%"
        record[f"{phase_id}_status"] = phase.completion
    record.update(project.extra)
    return record


def iter_sub_item_updates(raw_phases: Any):
    """Yield ``(phase_id, item_id, value, is_na)`` for each sub-item in a phases payload.

    ``value`` / ``is_na`` are None when the payload leaves them untouched.
    Unknown phases and sub-items are yielded as-is so the caller can reject them.
    """
    if not isinstance(raw_phases, Mapping):
        return
    for phase_id, raw_phase in raw_phases.items():
        if not isinstance(raw_phase, Mapping):
            continue
        raw_items = _first(raw_phase, "sub_items", "subItems", default=[])
        for item_id, item in _items_by_id(raw_items).items():
            value = None
            if "value" in item and not _is_na_marker(item.get("value")):
                value = coerce_value(item.get("value"))
            elif "value" not in item and ("target" in item or "actual" in item):
                value = _nested_value(item)
            is_na = None
            if any(k in item for k in ("is_na", "isNA")) or _is_na_marker(item.get("value")):
                is_na = _nested_is_na(item)
            yield str(phase_id), catalog_item_id(str(phase_id), item_id), value, is_na


def catalog_item_id(phase_id: str, item_id: str) -> str:
    """Map a snake_case or camelCase sub-item id onto the catalog id of ``phase_id``."""
    for catalog_id, _ in PHASE_SUB_ITEMS.get(phase_id, ()):
        if item_id in (catalog_id, sub_item_column(catalog_id)):
            return catalog_id
    return item_id
