"""
Portfolio Summary Service

Aggregates the dashboard KPIs over all CapEx projects:
  - project counts per type
  - budget vs. actual spend, over-budget and near-limit counts
  - status breakdown and the weighted portfolio health score
  - average overall completion
"""

import logging

from capex.models.project import CapexProject
from capex.services.completion_engine import ProjectStatus, ProjectType, round_half_up
from capex.services.financials import financial_metrics
from capex.services.settings_service import get_settings

logger = logging.getLogger(__name__)

HEALTH_WEIGHTS = {
    ProjectStatus.ON_TRACK.value: 100,
    ProjectStatus.AT_RISK.value: 70,
    ProjectStatus.IMPACTED.value: 30,
}

HEALTH_LABELS = (
    (85, "Excellent"),
    (70, "Good"),
    (50, "At Risk"),
)


def health_label(score):
    for floor, label in HEALTH_LABELS:
        if score >= floor:
            return label
    return "Needs Attention"


def build_summary(projects, show_financials=True):
    """Compute the KPI block from already-loaded projects."""
    total = len(projects)
    breakdown = {s.value: 0 for s in ProjectStatus}
    complex_count = 0
    asset_count = 0
    budget = 0.0
    actual = 0.0
    completion_sum = 0
    over_budget = 0
    near_limit = 0

    for project in projects:
        breakdown[project.status] = breakdown.get(project.status, 0) + 1
        if project.project_type == ProjectType.ASSET_PURCHASE.value:
            asset_count += 1
        else:
            complex_count += 1
        budget += project.total_budget or 0
        actual += project.total_actual or 0
        completion_sum += project.overall_completion or 0
        metrics = financial_metrics(project.total_budget, project.total_actual, project.overall_completion)
        over_budget += metrics["over_budget"]
        near_limit += metrics["near_limit"]

    score = 0.0
    if total:
        score = round(sum(HEALTH_WEIGHTS.get(s, 0) * n for s, n in breakdown.items()) / total, 1)

    summary = {
        "total_projects": total,
        "complex_projects": complex_count,
        "asset_purchases": asset_count,
        "status_breakdown": breakdown,
        "portfolio_health_score": score,
        "health_label": health_label(score),
        "average_completion": round_half_up(completion_sum / total) if total else 0,
        "show_financials": show_financials,
    }
    if show_financials:
        summary.update({
            "total_budget": round(budget, 2),
            "total_actual": round(actual, 2),
            "spend_pct": round(actual / budget * 100, 1) if budget > 0 else 0.0,
            "over_budget_projects": over_budget,
            "near_limit_projects": near_limit,
        })
    return summary


def portfolio_summary():
    """Dashboard KPIs for every persisted project, honouring ``show_financials``."""
    settings = get_settings()
    projects = CapexProject.query.all()
    summary = build_summary(projects, show_financials=settings.show_financials)
    logger.debug("Portfolio summary computed for %d projects", summary["total_projects"])
    return summary
