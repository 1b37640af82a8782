"""
App factory, health probes, middleware and config.
"""

import logging

import pytest
from flask import g
from sqlalchemy.exc import IntegrityError, OperationalError

from capex.config import ProductionConfig, config
from capex.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter
from capex.models import db
from capex.utils.errors import E, api_error
from capex.utils.helpers import db_commit_or_error


class TestHealth:

    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "ok"
        assert body["checks"]["projects"]["count"] == 0
        assert body["checks"]["rate_limiter"]["storage"] == "memory"


class TestAppLevel:

    def test_request_id_and_duration_headers(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert float(res.headers["X-Request-Duration-Ms"]) >= 0

    def test_generated_request_id(self, client):
        res = client.get("/api/v1/settings")
        assert len(res.headers["X-Request-ID"]) == 12

    def test_unknown_api_path_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nope"

    def test_method_not_allowed(self, client):
        res = client.post("/api/v1/health/ready", json={})
        assert res.status_code == 405
        assert res.get_json() == {"error": "Method not allowed"}

    def test_testing_config(self, app):
        assert app.config["TESTING"] is True
        assert app.config["RATELIMIT_ENABLED"] is False
        assert app.config["CAPEX_MIN_THRESHOLD_GAP"] == 10
        assert {"project", "settings", "engine", "dashboard", "health_bp"} <= set(app.blueprints)


def test_production_requires_database_url(monkeypatch):
    monkeypatch.setattr(ProductionConfig, "SQLALCHEMY_DATABASE_URI", None)
    with pytest.raises(RuntimeError):
        ProductionConfig()


def test_config_mapping():
    assert set(config) == {"development", "testing", "production", "default"}


def test_formatters():
    record = logging.LogRecord("capex.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.request_id = "r1"
    assert '"message": "hello world"' in JSONFormatter().format(record)
    assert '"request_id": "r1"' in JSONFormatter().format(record)
    assert "hello world" in ReadableFormatter().format(record)


def test_api_error_envelope(app):
    with app.test_request_context():
        resp, status = api_error(E.VALIDATION_REQUIRED, "name is required", details={"field": "name"})
        assert status == 400
        assert resp.get_json() == {"error": "name is required", "code": E.VALIDATION_REQUIRED, "details": {"field": "name"}}
        _, status = api_error(E.VALIDATION_RULE, "rule")
        assert status == 422


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (IntegrityError("INSERT", {}, Exception("duplicate")), 409, E.CONFLICT_DUPLICATE),
        (OperationalError("COMMIT", {}, Exception("locked")), 500, E.DATABASE),
    ],
)
def test_commit_failure_uses_error_envelope(app, monkeypatch, exc, status, code):
    def _fail():
        raise exc

    monkeypatch.setattr(db.session, "commit", _fail)
    with app.test_request_context():
        resp, http_status = db_commit_or_error()
    assert http_status == status
    assert resp.get_json()["code"] == code


def test_request_context_filter_tags_route(app):
    record = logging.LogRecord("capex.services.project_service", logging.INFO, __file__, 1, "status changed", (), None)
    with app.test_request_context("/api/v1/projects/5/phases/close/items/poClosure", method="PATCH"):
        g.request_id = "rid42"
        assert RequestContextFilter().filter(record) is True
    assert record.request_id == "rid42"
    assert record.project_id == 5
    assert record.phase_id == "close"
    assert record.item_key == "poClosure"
    assert "project=5 close.poClosure" in ReadableFormatter().format(record)
    assert '"phase_id": "close"' in JSONFormatter().format(record)


def test_write_requests_logged_with_outcome(client, make_project, caplog):
    created = make_project()
    caplog.set_level(logging.INFO, logger="capex.middleware.timing")
    client.patch(f"/api/v1/projects/{created['id']}/phases/close/items/poClosure", json={"value": 100})
    client.patch(f"/api/v1/projects/{created['id']}/phases/close/items/poClosure", json={})

    applied = [r for r in caplog.records if r.getMessage().endswith("applied") and getattr(r, "method", None) == "PATCH"]
    assert len(applied) == 1
    assert applied[0].project_id == created["id"]
    assert applied[0].item_key == "poClosure"
    assert applied[0].overall_completion == 3
    assert applied[0].project_status == "Impacted"
    assert any(r.getMessage().startswith("Rejected PATCH") and r.status == 400 for r in caplog.records)
