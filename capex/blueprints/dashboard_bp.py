"""
Dashboard Blueprint — portfolio KPIs for the executive banner and summary cards.
"""

from flask import Blueprint, jsonify

from capex.services import portfolio_service as svc

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/summary", methods=["GET"])
def summary():
    """Portfolio summary KPIs."""
    return jsonify(svc.portfolio_summary()), 200
