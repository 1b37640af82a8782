from datetime import date

import pytest

from capex.core.exceptions import NotFoundError, ValidationError
from capex.models import db as _db
from capex.models.project import CapexProject, CapexSubItem
from capex.services import project_service
from capex.services.completion_engine import PHASE_ORDER, PHASE_SUB_ITEMS, ThresholdSettings
from capex.services.demo_data import DEMO_RECORDS


def _all_items(value):
    return {
        phase_id: {"sub_items": [{"id": item_id, "value": value} for item_id, _ in PHASE_SUB_ITEMS[phase_id]]}
        for phase_id in PHASE_ORDER
    }


def _create(thresholds, **data):
    data.setdefault("project_name", "Svc Project")
    return project_service.create_project(data, thresholds)


def test_create_project_seeds_catalog(thresholds):
    project = _create(thresholds, project_owner="T. Bolt", total_budget="1,250")

    assert project.id is not None
    assert len(project.sub_items) == sum(len(items) for items in PHASE_SUB_ITEMS.values())
    assert all(row.value == 0 and not row.is_na for row in project.sub_items)
    assert project.overall_completion == 0
    assert project.status == "Impacted"
    assert project.project_type == "project"
    assert project.total_budget == 1250.0
    assert project.last_updated is not None


def test_create_project_with_phases_derives_status(thresholds):
    project = _create(thresholds, phases=_all_items(95))
    assert project.feasibility_completion == 95
    assert project.overall_completion == 95
    assert project.status == "On Track"


def test_create_project_requires_name(thresholds):
    with pytest.raises(ValidationError):
        project_service.create_project({"project_owner": "Nobody"}, thresholds)
    with pytest.raises(ValidationError):
        project_service.create_project({"project_name": "   "}, thresholds)


@pytest.mark.parametrize("field", ["status", "overall_completion", "projectStatus", "overallCompletion"])
def test_create_project_rejects_derived_fields(thresholds, field):
    with pytest.raises(ValidationError) as exc:
        _create(thresholds, **{field: "On Track"})
    assert field in exc.value.details


def test_create_project_rejects_unknown_sub_item(thresholds):
    with pytest.raises(ValidationError):
        _create(thresholds, phases={"planning": {"sub_items": [{"id": "coffeeBreak", "value": 50}]}})
    with pytest.raises(ValidationError):
        _create(thresholds, phases={"design": {"sub_items": [{"id": "riskAssessment", "value": 50}]}})


def test_create_project_invalid_scalars(thresholds):
    with pytest.raises(ValidationError):
        _create(thresholds, project_type="tooling")
    with pytest.raises(ValidationError):
        _create(thresholds, start_date="not-a-date")
    with pytest.raises(ValidationError):
        _create(thresholds, total_budget=-10)
    with pytest.raises(ValidationError):
        _create(thresholds, start_date="2026-05-01", end_date="2026-04-01")


def test_dates_parsed(thresholds):
    project = _create(thresholds, start_date="2026-01-15", end_date="31.12.2026")
    assert project.start_date == date(2026, 1, 15)
    assert project.end_date == date(2026, 12, 31)


def test_get_project_not_found():
    with pytest.raises(NotFoundError):
        project_service.get_project(999)


# ── Sub-item edits ───────────────────────────────────────────────────────────


def test_update_sub_item_recomputes(thresholds):
    project = _create(thresholds, phases=_all_items(100))
    assert project.status == "On Track"

    project_service.update_sub_item(project, "execution", "goLive", {"value": 0}, thresholds)

    assert project.execution_completion == 88
    assert project.overall_completion == 95
    assert project.status == "On Track"

    project_service.update_sub_item(project, "execution", "go_live", {"value": "10%"}, thresholds)
    assert project.sub_item("execution", "goLive").value == 10


def test_update_sub_item_na_zeroes_value(thresholds):
    project = _create(thresholds, phases={"feasibility": {"sub_items": [
        {"id": "riskAssessment", "value": 80},
        {"id": "projectCharter", "value": 60},
    ]}})
    assert project.feasibility_completion == 70

    project_service.update_sub_item(project, "feasibility", "projectCharter", {"is_na": True}, thresholds)

    row = project.sub_item("feasibility", "projectCharter")
    assert row.is_na is True
    assert row.value == 0
    assert project.feasibility_completion == 80


def test_update_sub_item_unknown_targets(thresholds):
    project = _create(thresholds)
    with pytest.raises(NotFoundError):
        project_service.update_sub_item(project, "design", "riskAssessment", {"value": 1}, thresholds)
    with pytest.raises(NotFoundError):
        project_service.update_sub_item(project, "feasibility", "goLive", {"value": 1}, thresholds)
    with pytest.raises(ValidationError):
        project_service.update_sub_item(project, "feasibility", "riskAssessment", {}, thresholds)


# ── Scalar updates ───────────────────────────────────────────────────────────


def test_update_project_type_switch_changes_weighting(thresholds):
    phases = {"planning": {"sub_items": [{"id": i, "value": 100} for i, _ in PHASE_SUB_ITEMS["planning"]]}}
    project = _create(thresholds, phases=phases)
    assert project.overall_completion == 35

    project_service.update_project(project, {"project_type": "asset_purchase"}, thresholds)
    assert project.project_type == "asset_purchase"
    assert project.overall_completion == 45


def test_update_project_rejects_derived_fields(thresholds):
    project = _create(thresholds)
    with pytest.raises(ValidationError):
        project_service.update_project(project, {"overall_completion": 100}, thresholds)


def test_update_project_scalars_and_phases(thresholds):
    project = _create(thresholds)
    project_service.update_project(project, {
        "project_name": "Renamed",
        "upcoming_milestone": "Go-Live",
        "phases": {"close": {"subItems": {"poClosure": {"value": 100}, "projectTurnover": {"isNA": True}}}},
    }, thresholds)
    assert project.project_name == "Renamed"
    assert project.upcoming_milestone == "Go-Live"
    assert project.close_completion == 100
    assert project.overall_completion == 5


# ── Recompute, listing, import, delete ───────────────────────────────────────


def test_recompute_all_is_idempotent(thresholds):
    _create(thresholds, project_name="A", phases=_all_items(75))
    _create(thresholds, project_name="B", phases=_all_items(75))

    relaxed = ThresholdSettings(on_track=70, at_risk=50, impacted=0)
    assert project_service.recompute_all(relaxed) == 2
    assert {p.status for p in CapexProject.query.all()} == {"On Track"}
    assert project_service.recompute_all(relaxed) == 0


def test_list_projects_filters(thresholds):
    _create(thresholds, project_name="Line 4 Upgrade", project_owner="V. Levy", phases=_all_items(95))
    _create(thresholds, project_name="Server Refresh", project_type="asset_purchase", project_owner="K. Brown")

    assert len(project_service.list_projects()) == 2
    assert [p.project_name for p in project_service.list_projects(project_type="Asset Purchases")] == ["Server Refresh"]
    assert [p.project_name for p in project_service.list_projects(status="On Track")] == ["Line 4 Upgrade"]
    assert [p.project_name for p in project_service.list_projects(owner="K. Brown")] == ["Server Refresh"]
    assert [p.project_name for p in project_service.list_projects(q="line 4")] == ["Line 4 Upgrade"]
    with pytest.raises(ValidationError):
        project_service.list_projects(project_type="tooling")


def test_import_records(thresholds):
    created = project_service.import_records(DEMO_RECORDS, thresholds)
    assert len(created) == 3

    deltav = next(p for p in created if p.project_name == "DeltaV Migration")
    assert deltav.overall_completion == 58
    assert deltav.total_budget == 2500
    assert deltav.comments == "Supply chain delays possible"

    cardinal = next(p for p in created if p.project_name == "Cardinal Capital Project")
    assert all(row.is_na for row in cardinal.sub_items)
    assert cardinal.overall_completion == 0

    server = next(p for p in created if p.project_name == "Capital IT Server Replacement")
    assert server.project_type == "asset_purchase"


def test_import_records_rejects_bad_input(thresholds):
    with pytest.raises(ValidationError):
        project_service.import_records({"project_name": "x"}, thresholds)
    with pytest.raises(ValidationError):
        project_service.import_records(["row"], thresholds)
    with pytest.raises(ValidationError):
        project_service.import_records([{"risk_assessment": "50%"}], thresholds)


def test_delete_project_removes_sub_items(thresholds):
    project = _create(thresholds)
    project_service.delete_project(project)
    _db.session.expire_all()
    assert CapexProject.query.count() == 0
    assert CapexSubItem.query.count() == 0
