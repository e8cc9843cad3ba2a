from sqlalchemy.exc import OperationalError

import backend.api.health as health_api


def test_healthz_always_ok(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_ok_with_test_database(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"


def test_readyz_reports_billing_flag(client, gateway):
    resp = client.get("/readyz")
    assert resp.json().get("billing_enabled") is True


def test_readyz_reports_missing_tables(client, monkeypatch):
    class FakeInspector:
        def has_table(self, name):
            return name != "payment_events"

    monkeypatch.setattr(health_api, "inspect", lambda engine: FakeInspector())

    resp = client.get("/readyz")
    assert resp.status_code == 503
    assert "payment_events" in resp.json().get("detail", "")


def test_readyz_handles_db_down(client, monkeypatch):
    def boom():
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    monkeypatch.setattr(health_api, "get_engine", boom)

    resp = client.get("/readyz")
    body = resp.json()
    assert resp.status_code == 503
    assert body.get("status") == "error"
    assert "database" in body.get("detail", "")
