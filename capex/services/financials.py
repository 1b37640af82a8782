"""
Per-project financial performance metrics.

Pure functions over the budget figures of one project:
  - budget utilization (actual / budget, percent)
  - remaining budget
  - over-budget and near-limit flags
  - projected cost at completion and its variance against budget

The projection extrapolates spend from overall completion, so a project
that has spent 500 of 1000 at 40% complete projects to 1250.
"""

NEAR_LIMIT_PCT = 90


def _amount(raw) -> float:
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


def budget_utilization(total_budget, total_actual) -> float:
    budget = _amount(total_budget)
    if budget <= 0:
        return 0.0
    return round(_amount(total_actual) / budget * 100, 1)


def financial_metrics(total_budget, total_actual, overall_completion=0) -> dict:
    """Budget-vs-actual block shown on the project's financial tab."""
    budget = _amount(total_budget)
    actual = _amount(total_actual)
    utilization = budget_utilization(budget, actual)
    over_budget = actual > budget
    completion = _amount(overall_completion)
    projected = actual / completion * 100 if completion > 0 else budget
    return {
        "budget_utilization": utilization,
        "remaining_budget": round(budget - actual, 2),
        "over_budget": over_budget,
        "near_limit": utilization >= NEAR_LIMIT_PCT and not over_budget,
        "projected_cost": round(projected, 2),
        "cost_variance": round(projected - budget, 2),
    }
