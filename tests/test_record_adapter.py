"""
Record adapter — historical project shapes into ProjectData and back.
"""

import pytest

from capex.services.completion_engine import (
    PHASE_ORDER,
    ProjectStatus,
    ProjectType,
    ThresholdSettings,
    evaluate_project,
)
from capex.services.demo_data import DEMO_RECORDS
from capex.services.record_adapter import (
    NA_MARKER,
    catalog_item_id,
    iter_sub_item_updates,
    project_from_record,
    project_to_record,
)


def _item(project, phase_id, item_id):
    return next(s for s in project.phases[phase_id].sub_items if s.id == item_id)


# ═══════════════════════════════════════════════════════════════════════════
# Flat spreadsheet rows
# ═══════════════════════════════════════════════════════════════════════════

class TestFlatRows:

    def test_percent_strings_and_na_markers(self):
        project = project_from_record({
            "project_name": "Row",
            "risk_assessment": "75%",
            "project_charter": "N/A",
            "rfq_package": 40,
        })
        assert _item(project, "feasibility", "riskAssessment").value == 75
        charter = _item(project, "feasibility", "projectCharter")
        assert charter.is_na is True
        assert charter.value == 0
        assert _item(project, "planning", "rfqPackage").value == 40

    def test_missing_cells_default_to_zero_not_na(self):
        project = project_from_record({"project_name": "Sparse"})
        for phase in project.phases.values():
            assert all(s.value == 0 and not s.is_na for s in phase.sub_items)

    def test_section_maps_to_project_type(self):
        assert project_from_record({"section": "Asset Purchases"}).project_type is ProjectType.ASSET_PURCHASE
        assert project_from_record({"section": "Projects"}).project_type is ProjectType.COMPLEX_PROJECT
        assert project_from_record({"project_type": "asset_purchase"}).project_type is ProjectType.ASSET_PURCHASE
        assert project_from_record({}).project_type is ProjectType.COMPLEX_PROJECT

    def test_scalar_aliases_collected_in_extra(self):
        project = project_from_record({
            "project_name": " Cardinal ",
            "projectOwner": "T. Bolt",
            "yearly_budget": 1604,
            "comments_risk": "Awaiting feedback",
        })
        assert project.project_name == "Cardinal"
        assert project.extra["project_owner"] == "T. Bolt"
        assert project.extra["total_budget"] == 1604
        assert project.extra["yearly_budget"] == 1604
        assert project.extra["comments"] == "Awaiting feedback"

    def test_stored_derived_columns_are_ignored(self):
        project = project_from_record({
            "project_name": "Stale",
            "project_status": "On Track",
            "actual_project_completion": 99,
            "feasibility_status": 100,
        })
        evaluated = evaluate_project(project)
        assert evaluated.overall_completion == 0
        assert evaluated.status is ProjectStatus.IMPACTED

    def test_demo_row_evaluates(self):
        deltav = next(r for r in DEMO_RECORDS if r["project_name"] == "DeltaV Migration")
        evaluated = evaluate_project(project_from_record(deltav), ThresholdSettings())
        assert evaluated.phase_completions() == {
            "feasibility": 83, "planning": 88, "execution": 33, "close": 0,
        }
        assert evaluated.overall_completion == 58

    def test_non_mapping_rejected(self):
        with pytest.raises(TypeError):
            project_from_record(["not", "a", "record"])


# ═══════════════════════════════════════════════════════════════════════════
# Nested phase shapes
# ═══════════════════════════════════════════════════════════════════════════

class TestNestedShapes:

    def test_sub_items_as_list(self):
        project = project_from_record({
            "projectName": "Nested",
            "projectType": "project",
            "phases": {
                "feasibility": {
                    "subItems": [
                        {"id": "riskAssessment", "name": "Risk", "value": 80, "isNA": False},
                        {"id": "projectCharter", "name": "Charter", "value": 60, "isNA": True},
                    ],
                },
            },
        })
        assert project.project_name == "Nested"
        assert _item(project, "feasibility", "riskAssessment").value == 80
        charter = _item(project, "feasibility", "projectCharter")
        assert charter.is_na and charter.value == 0
        assert evaluate_project(project).phases["feasibility"].completion == 80

    def test_string_false_flag_is_not_na(self):
        project = project_from_record({"phases": {"feasibility": {"subItems": [
            {"id": "riskAssessment", "value": 80, "isNA": "false"},
            {"id": "projectCharter", "value": 40, "isNA": "true"},
        ]}}})
        assert [s.is_na for s in project.phases["feasibility"].sub_items] == [False, True]
        assert _item(project, "feasibility", "riskAssessment").value == 80

    def test_sub_items_keyed_by_id(self):
        project = project_from_record({
            "phases": {
                "planning": {
                    "sub_items": {
                        "gantt_chart": {"value": "40%"},
                        "rfqPackage": 70,
                        "validationStrategy": {"value": "N/A"},
                    },
                },
            },
        })
        assert _item(project, "planning", "ganttChart").value == 40
        assert _item(project, "planning", "rfqPackage").value == 70
        assert _item(project, "planning", "validationStrategy").is_na is True
        assert _item(project, "planning", "vendorSolicitation").value == 0

    def test_target_actual_pairs(self):
        project = project_from_record({
            "phases": {
                "execution": {
                    "subItems": [
                        {"id": "poSubmission", "target": 200, "actual": 50},
                        {"id": "equipmentBuild", "target": 10, "actual": 30},
                        {"id": "goLive", "target": 0, "actual": 5},
                    ],
                },
            },
        })
        assert _item(project, "execution", "poSubmission").value == 25
        assert _item(project, "execution", "equipmentBuild").value == 100
        assert _item(project, "execution", "goLive").value == 0

    def test_all_phases_present(self):
        project = project_from_record({"phases": {}})
        assert list(project.phases) == list(PHASE_ORDER)


# ═══════════════════════════════════════════════════════════════════════════
# Export and update helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestProjectToRecord:

    def test_flat_cells(self):
        project = project_from_record({
            "id": 7,
            "project_name": "Export",
            "risk_assessment": "75%",
            "project_charter": "N/A",
            "rfq_package": 62.5,
        })
        record = project_to_record(evaluate_project(project))
        assert record["id"] == 7
        assert record["risk_assessment"] == "75%"
        assert record["project_charter"] == NA_MARKER
        assert record["rfq_package"] == "63%"
        assert record["feasibility_status"] == 75
        assert record["project_status"] == "Impacted"
        assert record["actual_project_completion"] == evaluate_project(project).overall_completion

    def test_reimport_preserves_values(self):
        original = evaluate_project(project_from_record(DEMO_RECORDS[2]))
        again = evaluate_project(project_from_record(project_to_record(original)))
        assert again.project_type is ProjectType.ASSET_PURCHASE
        assert again.phase_completions() == original.phase_completions()
        assert again.overall_completion == original.overall_completion


class TestSubItemUpdates:

    def test_yields_catalog_ids(self):
        updates = list(iter_sub_item_updates({
            "planning": {"sub_items": [{"id": "gantt_chart", "value": 55}]},
            "close": {"subItems": {"poClosure": {"isNA": True}}},
        }))
        assert ("planning", "ganttChart", 55.0, None) in updates
        assert ("close", "poClosure", None, True) in updates

    def test_unknown_ids_pass_through(self):
        updates = list(iter_sub_item_updates({"design": {"sub_items": {"thing": 10}}}))
        assert updates == [("design", "thing", 10.0, None)]

    def test_non_mapping_yields_nothing(self):
        assert list(iter_sub_item_updates(None)) == []
        assert list(iter_sub_item_updates([1, 2])) == []

    def test_catalog_item_id(self):
        assert catalog_item_id("planning", "ses_asset_number_approval") == "sesAssetNumberApproval"
        assert catalog_item_id("planning", "ganttChart") == "ganttChart"
        assert catalog_item_id("close", "ganttChart") == "ganttChart"
