"""
Demo portfolio used by ``flask seed-demo``.

Rows are in the legacy spreadsheet shape ("75%" / "N/A" cells, ``section``
instead of ``project_type``) so seeding goes through the same record adapter
as ``POST /api/v1/projects/import``.
"""

import logging

from capex.models.project import CapexProject
from capex.services import project_service
from capex.services.settings_service import get_threshold_settings

logger = logging.getLogger(__name__)

DEMO_RECORDS = [
    {
        "section": "Projects",
        "project_owner": "T. Bolt",
        "project_name": "Cardinal Capital Project",
        "yearly_budget": 1604,
        "yearly_actual": 123,
        "risk_assessment": "N/A",
        "project_charter": "N/A",
        "rfq_package": "N/A",
        "validation_strategy": "N/A",
        "financial_forecast": "N/A",
        "vendor_solicitation": "N/A",
        "gantt_chart": "N/A",
        "ses_asset_number_approval": "N/A",
        "po_submission": "N/A",
        "equipment_design": "N/A",
        "equipment_build": "N/A",
        "project_documentation": "N/A",
        "demo_install": "N/A",
        "validation": "N/A",
        "equipment_turnover": "N/A",
        "go_live": "N/A",
        "po_closure": "N/A",
        "project_turnover": "N/A",
        "upcoming_milestone": "Project Charter Review",
        "comments_risk": "Awaiting stakeholder feedback",
    },
    {
        "section": "Projects",
        "project_owner": "M. Smith",
        "project_name": "DeltaV Migration",
        "yearly_budget": 2500,
        "yearly_actual": 1250,
        "risk_assessment": "75%",
        "project_charter": "90%",
        "rfq_package": "80%",
        "validation_strategy": "75%",
        "financial_forecast": "100%",
        "vendor_solicitation": "90%",
        "gantt_chart": "85%",
        "ses_asset_number_approval": "100%",
        "po_submission": "100%",
        "equipment_design": "75%",
        "equipment_build": "46%",
        "project_documentation": "46%",
        "demo_install": "0%",
        "validation": "0%",
        "equipment_turnover": "0%",
        "go_live": "0%",
        "po_closure": "0%",
        "project_turnover": "0%",
        "upcoming_milestone": "Equipment Build Phase",
        "comments_risk": "Supply chain delays possible",
    },
    {
        "section": "Asset Purchases",
        "project_owner": "R. Johnson",
        "project_name": "Capital IT Server Replacement",
        "yearly_budget": 750,
        "yearly_actual": 600,
        "risk_assessment": "100%",
        "project_charter": "100%",
        "rfq_package": "100%",
        "validation_strategy": "100%",
        "financial_forecast": "100%",
        "vendor_solicitation": "100%",
        "gantt_chart": "100%",
        "ses_asset_number_approval": "100%",
        "po_submission": "100%",
        "equipment_design": "100%",
        "equipment_build": "90%",
        "project_documentation": "85%",
        "demo_install": "75%",
        "validation": "46%",
        "equipment_turnover": "0%",
        "go_live": "0%",
        "po_closure": "0%",
        "project_turnover": "0%",
        "upcoming_milestone": "Validation Testing",
        "comments_risk": "On schedule",
    },
]


def seed_demo_projects():
    """Import the demo rows unless a project with the same name already exists.

    Returns the number of projects created. The caller commits.
    """
    existing = {name for (name,) in CapexProject.query.with_entities(CapexProject.project_name)}
    records = [r for r in DEMO_RECORDS if r["project_name"] not in existing]
    if not records:
        logger.info("Demo projects already present — nothing to seed")
        return 0
    created = project_service.import_records(records, get_threshold_settings())
    return len(created)
