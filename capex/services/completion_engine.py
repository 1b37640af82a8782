"""
Completion & Status Engine.

Pure functions that turn sub-item values into phase completion, phase
completion into weighted overall completion, and overall completion into a
project status.  No database access, no Flask imports: every input arrives as
an argument and every result is a return value.

Usage:
    from capex.services.completion_engine import (
        ThresholdSettings, compute_phase_completion,
        compute_overall_completion, determine_status, validate_thresholds,
    )

    pct = compute_phase_completion([SubItem("a", "A", 80), SubItem("b", "B", 60, is_na=True)])
    # -> 80
    overall = compute_overall_completion(
        {"feasibility": 100, "planning": 80, "execution": 60, "close": 0},
        ProjectType.COMPLEX_PROJECT,
        DEFAULT_PHASE_WEIGHTS,
    )
    # -> 70
    status = determine_status(overall, ThresholdSettings())
    # -> ProjectStatus.IMPACTED
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class ProjectType(str, Enum):
    """Project type; the value doubles as the key of the admin weight table."""
    COMPLEX_PROJECT = "project"
    ASSET_PURCHASE = "asset_purchase"

    @classmethod
    def parse(cls, raw: Any, default: "ProjectType | None" = None) -> "ProjectType":
        """Accept wire values, enum names, labels and the legacy section names."""
        if isinstance(raw, cls):
            return raw
        key = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        aliases = {
            "project": cls.COMPLEX_PROJECT,
            "projects": cls.COMPLEX_PROJECT,
            "complex_project": cls.COMPLEX_PROJECT,
            "complexproject": cls.COMPLEX_PROJECT,
            "asset_purchase": cls.ASSET_PURCHASE,
            "asset_purchases": cls.ASSET_PURCHASE,
            "assetpurchase": cls.ASSET_PURCHASE,
        }
        if key in aliases:
            return aliases[key]
        if default is not None:
            return default
        raise ValueError(f"Unknown project type: {raw!r}")


class ProjectStatus(str, Enum):
    ON_TRACK = "On Track"
    AT_RISK = "At Risk"
    IMPACTED = "Impacted"


# ═════════════════════════════════════════════════════════════════════════════
# Phase catalog: fixed composition
# ═════════════════════════════════════════════════════════════════════════════

PHASE_ORDER: tuple[str, ...] = ("feasibility", "planning", "execution", "close")

PHASE_NAMES: dict[str, str] = {
    "feasibility": "Feasibility",
    "planning": "Planning",
    "execution": "Execution",
    "close": "Close",
}

PHASE_SUB_ITEMS: dict[str, tuple[tuple[str, str], ...]] = {
    "feasibility": (
        ("riskAssessment", "Risk Assessment"),
        ("projectCharter", "Project Charter"),
    ),
    "planning": (
        ("rfqPackage", "RFQ Package"),
        ("validationStrategy", "Validation Strategy"),
        ("financialForecast", "Financial Forecast"),
        ("vendorSolicitation", "Vendor Solicitation"),
        ("ganttChart", "Gantt Chart"),
        ("sesAssetNumberApproval", "SES Asset Number Approval"),
    ),
    "execution": (
        ("poSubmission", "PO Submission"),
        ("equipmentDesign", "Equipment Design"),
        ("equipmentBuild", "Equipment Build"),
        ("projectDocumentation", "Project Documentation"),
        ("demoInstall", "Demo/Install"),
        ("validation", "Validation"),
        ("equipmentTurnover", "Equipment Turnover"),
        ("goLive", "Go-Live"),
    ),
    "close": (
        ("poClosure", "PO Closure"),
        ("projectTurnover", "Project Turnover"),
    ),
}

DEFAULT_PHASE_WEIGHTS: dict[str, dict[str, float]] = {
    ProjectType.COMPLEX_PROJECT.value: {
        "feasibility": 15, "planning": 35, "execution": 45, "close": 5,
    },
    ProjectType.ASSET_PURCHASE.value: {
        "feasibility": 0, "planning": 45, "execution": 50, "close": 5,
    },
}

DEFAULT_ON_TRACK = 90
DEFAULT_AT_RISK = 80
DEFAULT_IMPACTED = 0
MIN_THRESHOLD_GAP = 10


def sub_item_column(item_id: str) -> str:
    """camelCase sub-item id -> snake_case column name (riskAssessment -> risk_assessment)."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", item_id).lower()


# ═════════════════════════════════════════════════════════════════════════════
# Data classes
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class SubItem:
    id: str
    name: str
    value: float = 0
    is_na: bool = False

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "value": self.value, "is_na": self.is_na}


@dataclass
class Phase:
    id: str
    name: str
    weight: float = 0
    sub_items: list[SubItem] = field(default_factory=list)
    completion: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "completion": self.completion,
            "sub_items": [s.to_dict() for s in self.sub_items],
        }


@dataclass
class ProjectData:
    """In-memory project the engine evaluates.

    Only ``project_type`` and ``phases`` feed the math; the remaining fields
    travel alongside so callers can hand one object around.
    """
    id: Any = None
    project_name: str = ""
    project_type: ProjectType = ProjectType.COMPLEX_PROJECT
    phases: dict[str, Phase] = field(default_factory=dict)
    overall_completion: int = 0
    status: ProjectStatus = ProjectStatus.IMPACTED
    extra: dict = field(default_factory=dict)

    def phase_completions(self) -> dict[str, int]:
        return {pid: p.completion for pid, p in self.phases.items()}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_name": self.project_name,
            "project_type": self.project_type.value,
            "overall_completion": self.overall_completion,
            "status": self.status.value,
            "phases": {pid: self.phases[pid].to_dict() for pid in _ordered(self.phases)},
            **self.extra,
        }


@dataclass
class ThresholdSettings:
    """Admin-configured thresholds plus the per-type phase weight tables."""
    on_track: float = DEFAULT_ON_TRACK
    at_risk: float = DEFAULT_AT_RISK
    impacted: float = DEFAULT_IMPACTED
    phase_weights: dict[str, dict[str, float]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_PHASE_WEIGHTS.items()}
    )

    def weights_for(self, project_type: ProjectType | str) -> dict[str, float]:
        key = ProjectType.parse(project_type).value
        return self.phase_weights.get(key) or DEFAULT_PHASE_WEIGHTS[key]

    def to_dict(self) -> dict:
        return {
            "on_track": self.on_track,
            "at_risk": self.at_risk,
            "impacted": self.impacted,
            "phase_weights": self.phase_weights,
        }


@dataclass
class ValidationResult:
    is_valid: bool
    error: str | None = None
    field_name: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result: dict = {"is_valid": self.is_valid}
        if self.error:
            result["error"] = self.error
        if self.field_name:
            result["field"] = self.field_name
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result


# ═════════════════════════════════════════════════════════════════════════════
# Numeric helpers
# ═════════════════════════════════════════════════════════════════════════════

def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going away from zero."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def to_number(raw: Any) -> float:
    """Coerce to a finite float; anything unusable becomes 0."""
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, str):
        raw = raw.strip().rstrip("%").strip()
        if not raw:
            return 0.0
    try:
        number = float(raw)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def coerce_value(raw: Any) -> float:
    """Sub-item value: numeric, "75%" strings, junk -> 0, clamped to [0, 100]."""
    return min(100.0, max(0.0, to_number(raw)))


_TRUE_FLAGS = {"true", "1", "yes", "y", "on"}


def coerce_flag(raw: Any) -> bool:
    """Boolean flag from JSON/CSV input; only explicit truthy markers count.

    ``"false"``, ``"0"``, ``"no"``, ``None`` and anything unrecognized are False.
    """
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw == 1
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUE_FLAGS
    return False


def completion_ratio(actual: Any, target: Any) -> int:
    """Actual-to-target completion as a rounded percentage (uncapped).

    Kept separate from ``determine_status``: it converts target/actual pairs
    into a value, it is never used to threshold a status.
    """
    target_num = to_number(target)
    if target_num <= 0:
        return 0
    return round_half_up(to_number(actual) / target_num * 100)


# ═════════════════════════════════════════════════════════════════════════════
# Core operations
# ═════════════════════════════════════════════════════════════════════════════

def _item_fields(item: Any) -> tuple[Any, bool]:
    if isinstance(item, Mapping):
        is_na = item.get("is_na", item.get("isNA", False))
        return item.get("value"), coerce_flag(is_na)
    return getattr(item, "value", None), coerce_flag(getattr(item, "is_na", False))


def compute_phase_completion(sub_items: Iterable[Any]) -> int:
    """N/A-excluded, rounded mean of sub-item values; 0 when nothing applies.

    Accepts ``SubItem`` objects or dicts with ``value`` and ``is_na``/``isNA``.
    """
    values = []
    for item in sub_items or ():
        raw, is_na = _item_fields(item)
        if is_na:
            continue
        values.append(coerce_value(raw))
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def _resolve_weight_table(
    project_type: ProjectType | str,
    weight_table: Mapping[str, Any] | None,
) -> Mapping[str, Any]:
    type_key = ProjectType.parse(project_type).value
    if weight_table is None:
        return DEFAULT_PHASE_WEIGHTS[type_key]
    nested = weight_table.get(type_key)
    if isinstance(nested, Mapping):
        return nested
    if any(isinstance(v, Mapping) for v in weight_table.values()):
        # Two-level table without an entry for this type: nothing weighted
        return {}
    return weight_table


def compute_overall_completion(
    phases: Mapping[str, Any],
    project_type: ProjectType | str,
    weight_table: Mapping[str, Any] | None = None,
) -> int:
    """Weighted overall completion normalized by the weight actually in play.

    ``phases`` maps phase id -> completion (a number or a ``Phase``); a
    weighted phase missing from the map counts as 0.
    ``weight_table`` is either a single type's table or the two-level admin
    table keyed by project type. Only ``None`` falls back to the defaults.
    """
    weights = _resolve_weight_table(project_type, weight_table)
    weighted_sum = 0.0
    total_weight = 0.0
    for phase_id, raw_weight in weights.items():
        weight = to_number(raw_weight)
        if weight <= 0:
            continue
        phase = phases.get(phase_id, 0)
        completion = phase.completion if isinstance(phase, Phase) else phase
        weighted_sum += coerce_value(completion) * weight
        total_weight += weight
    if total_weight <= 0:
        return 0
    return round_half_up(weighted_sum / total_weight)


def determine_status(completion: Any, thresholds: ThresholdSettings | Mapping[str, Any]) -> ProjectStatus:
    """Three-bucket thermometer on raw completion; ties go to the higher bucket."""
    if isinstance(thresholds, Mapping):
        on_track = to_number(thresholds.get("on_track", thresholds.get("onTrack", DEFAULT_ON_TRACK)))
        at_risk = to_number(thresholds.get("at_risk", thresholds.get("atRisk", DEFAULT_AT_RISK)))
    else:
        on_track = to_number(thresholds.on_track)
        at_risk = to_number(thresholds.at_risk)

    value = to_number(completion)
    if value >= on_track:
        return ProjectStatus.ON_TRACK
    if value >= at_risk:
        return ProjectStatus.AT_RISK
    return ProjectStatus.IMPACTED


def _is_number(raw: Any) -> bool:
    if isinstance(raw, bool):
        return False
    if isinstance(raw, (int, float)):
        return not (math.isnan(raw) or math.isinf(raw))
    try:
        number = float(str(raw).strip())
    except (TypeError, ValueError):
        return False
    return not (math.isnan(number) or math.isinf(number))


def validate_thresholds(
    on_track: Any,
    at_risk: Any,
    impacted: Any,
    *,
    min_gap: float = MIN_THRESHOLD_GAP,
) -> ValidationResult:
    """Form-validation helper for the admin threshold settings. Never raises."""
    named = (("on_track", on_track), ("at_risk", at_risk), ("impacted", impacted))
    for name, raw in named:
        if raw is None or not _is_number(raw):
            return ValidationResult(False, f"{name} must be a number", name)
        if not 0 <= float(raw) <= 100:
            return ValidationResult(False, f"{name} must be between 0 and 100", name)

    on_track, at_risk, impacted = float(on_track), float(at_risk), float(impacted)
    if on_track <= at_risk:
        return ValidationResult(False, "On Track threshold must be greater than At Risk threshold", "on_track")
    if at_risk <= impacted:
        return ValidationResult(False, "At Risk threshold must be greater than Impacted threshold", "at_risk")
    if on_track - at_risk < min_gap:
        return ValidationResult(
            False,
            f"On Track and At Risk thresholds must be at least {min_gap:g} points apart",
            "on_track",
        )
    if at_risk - impacted < min_gap:
        return ValidationResult(
            False,
            f"At Risk and Impacted thresholds must be at least {min_gap:g} points apart",
            "at_risk",
        )
    return ValidationResult(True)


def validate_weight_table(weights: Any, *, label: str = "phase_weights") -> ValidationResult:
    """Check one project type's weight table. Never raises."""
    if not isinstance(weights, Mapping):
        return ValidationResult(False, f"{label} must be an object keyed by phase", label)

    unknown = sorted(set(weights) - set(PHASE_ORDER))
    if unknown:
        return ValidationResult(False, f"{label} has unknown phases: {', '.join(unknown)}", label)
    missing = [p for p in PHASE_ORDER if p not in weights]
    if missing:
        return ValidationResult(False, f"{label} is missing phases: {', '.join(missing)}", label)

    total = 0.0
    for phase_id in PHASE_ORDER:
        raw = weights[phase_id]
        if not _is_number(raw):
            return ValidationResult(False, f"{label}.{phase_id} must be a number", f"{label}.{phase_id}")
        value = float(raw)
        if not 0 <= value <= 100:
            return ValidationResult(
                False, f"{label}.{phase_id} must be between 0 and 100", f"{label}.{phase_id}",
            )
        total += value

    if total <= 0:
        return ValidationResult(False, f"{label} weights must not all be zero", label)
    result = ValidationResult(True)
    if abs(total - 100) > 1e-9:
        result.warnings.append(f"{label} weights sum to {total:g}, not 100; completion is normalized")
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Project-level helpers
# ═════════════════════════════════════════════════════════════════════════════

def _ordered(phases: Mapping[str, Any]) -> list[str]:
    known = [p for p in PHASE_ORDER if p in phases]
    return known + [p for p in phases if p not in PHASE_ORDER]


def blank_phases(project_type: ProjectType | str, settings: ThresholdSettings | None = None) -> dict[str, Phase]:
    """All four phases with every catalog sub-item at 0 and not N/A."""
    weights = (settings or ThresholdSettings()).weights_for(project_type)
    return {
        phase_id: Phase(
            id=phase_id,
            name=PHASE_NAMES[phase_id],
            weight=weights.get(phase_id, 0),
            sub_items=[SubItem(item_id, name) for item_id, name in PHASE_SUB_ITEMS[phase_id]],
        )
        for phase_id in PHASE_ORDER
    }


def evaluate_project(project: ProjectData, settings: ThresholdSettings | None = None) -> ProjectData:
    """Recompute phase completions, overall completion and status.

    Returns a new ``ProjectData``; the input is not mutated, so evaluating an
    unchanged project twice gives identical results.
    """
    settings = settings or ThresholdSettings()
    weights = settings.weights_for(project.project_type)

    phases = {}
    for phase_id in _ordered(project.phases):
        phase = project.phases[phase_id]
        items = [replace(s, value=coerce_value(s.value), is_na=coerce_flag(s.is_na)) for s in phase.sub_items]
        phases[phase_id] = replace(
            phase,
            sub_items=items,
            weight=weights.get(phase_id, 0),
            completion=compute_phase_completion(items),
        )

    overall = compute_overall_completion(phases, project.project_type, weights)
    return replace(
        project,
        phases=phases,
        overall_completion=overall,
        status=determine_status(overall, settings),
        extra=dict(project.extra),
    )
