"""
HTTP API — /api/v1/settings and /api/v1/engine/evaluate.
"""

from capex.services.completion_engine import PHASE_ORDER, PHASE_SUB_ITEMS


def _all_items(value):
    return {
        phase_id: {"sub_items": [{"id": item_id, "value": value} for item_id, _ in PHASE_SUB_ITEMS[phase_id]]}
        for phase_id in PHASE_ORDER
    }


class TestSettingsApi:

    def test_get_defaults(self, client):
        res = client.get("/api/v1/settings")
        assert res.status_code == 200
        body = res.get_json()
        assert body["thresholds"] == {"on_track": 90, "at_risk": 80, "impacted": 0}
        assert body["phase_weights"]["project"] == {"feasibility": 15, "planning": 35, "execution": 45, "close": 5}
        assert body["show_financials"] is True

    def test_put_invalid_returns_422_with_field(self, client):
        res = client.put("/api/v1/settings", json={"thresholds": {"on_track": 90, "at_risk": 85, "impacted": 0}})
        assert res.status_code == 422
        body = res.get_json()
        assert body["details"] == {"field": "on_track"}
        assert "10" in body["error"]
        assert client.get("/api/v1/settings").get_json()["thresholds"]["at_risk"] == 80

    def test_put_empty_returns_400(self, client):
        assert client.put("/api/v1/settings", json={}).status_code == 400

    def test_put_recomputes_projects(self, client, make_project):
        created = make_project(phases=_all_items(75))
        assert created["status"] == "Impacted"

        res = client.put(
            "/api/v1/settings",
            json={"onTrackThreshold": 70, "atRiskThreshold": 50, "impactedThreshold": 0},
            headers={"X-User": "finance-admin"},
        )
        assert res.status_code == 200
        body = res.get_json()
        assert body["recomputed"] == 1
        assert body["updated_by"] == "finance-admin"

        project = client.get(f"/api/v1/projects/{created['id']}").get_json()
        assert project["status"] == "On Track"

    def test_put_weights_returns_warnings(self, client):
        table = {"feasibility": 0, "planning": 40, "execution": 40, "close": 0}
        res = client.put("/api/v1/settings", json={"phase_weights": {"asset_purchase": table}})
        assert res.status_code == 200
        assert res.get_json()["warnings"]

    def test_put_all_zero_weights_rejected(self, client):
        table = {p: 0 for p in PHASE_ORDER}
        res = client.put("/api/v1/settings", json={"phase_weights": {"project": table}})
        assert res.status_code == 422
        assert res.get_json()["details"]["field"] == "phase_weights.project"

    def test_validate_dry_run(self, client):
        res = client.post("/api/v1/settings/validate", json={"on_track": 90, "at_risk": 70, "impacted": 40})
        assert res.status_code == 200
        assert res.get_json() == {"is_valid": True}

        res = client.post("/api/v1/settings/validate", json={"on_track": 90, "at_risk": 85, "impacted": 0})
        assert res.get_json()["is_valid"] is False
        assert res.get_json()["field"] == "on_track"

        assert client.get("/api/v1/settings").get_json()["thresholds"]["at_risk"] == 80


class TestEngineEvaluate:

    def test_evaluates_flat_record(self, client):
        res = client.post("/api/v1/engine/evaluate", json={"project": {
            "project_name": "Ad hoc",
            "risk_assessment": "100%",
            "project_charter": "N/A",
        }})
        assert res.status_code == 200
        body = res.get_json()
        assert body["project"]["phases"]["feasibility"]["completion"] == 100
        assert body["project"]["overall_completion"] == 15
        assert body["project"]["status"] == "Impacted"
        assert body["settings"]["on_track"] == 90

    def test_posted_settings_override_stored(self, client):
        res = client.post("/api/v1/engine/evaluate", json={
            "project": {"phases": _all_items(60)},
            "settings": {"on_track": 60, "at_risk": 40, "impacted": 0},
        })
        body = res.get_json()
        assert body["project"]["overall_completion"] == 60
        assert body["project"]["status"] == "On Track"
        assert client.get("/api/v1/settings").get_json()["thresholds"]["on_track"] == 90

    def test_invalid_settings_rejected(self, client):
        res = client.post("/api/v1/engine/evaluate", json={
            "project": {"project_name": "x"},
            "settings": {"on_track": 50, "at_risk": 45},
        })
        assert res.status_code == 422

    def test_nothing_persisted(self, client):
        client.post("/api/v1/engine/evaluate", json={"project": {"project_name": "Ghost"}})
        assert client.get("/api/v1/projects").get_json()["total"] == 0

    def test_non_object_project_rejected(self, client):
        res = client.post("/api/v1/engine/evaluate", json={"project": [1, 2]})
        assert res.status_code == 400
