"""Plan catalog endpoints."""

from backend.core.supabase_auth import create_test_jwt
from backend.features.plans.catalog import DEFAULT_CATALOG


def _payload(free_participants=50):
    payload = DEFAULT_CATALOG.model_dump()
    payload["free"]["max_participants"] = free_participants
    del payload["pro"]["trial_duration_days"]
    return payload


def test_public_catalog_returns_defaults(client):
    resp = client.get("/api/plans/catalog")

    assert resp.status_code == 200
    assert resp.json() == DEFAULT_CATALOG.model_dump()


def test_put_requires_admin(client):
    resp = client.put("/api/admin/plans/catalog", json=_payload())

    assert resp.status_code == 401


def test_non_admin_jwt_rejected(client, user_headers):
    resp = client.put("/api/admin/plans/catalog", headers=user_headers("u1"), json=_payload())

    assert resp.status_code == 401


def test_admin_jwt_replaces_catalog(client, admin_headers):
    resp = client.put("/api/admin/plans/catalog", headers=admin_headers, json=_payload(free_participants=25))

    assert resp.status_code == 200
    assert resp.json()["free"]["max_participants"] == 25
    assert resp.json()["pro"]["trial_duration_days"] == 14
    assert client.get("/api/plans/catalog").json()["free"]["max_participants"] == 25


def test_legacy_admin_key_accepted(client):
    resp = client.put("/api/admin/plans/catalog", headers={"X-Admin-Key": "test-admin-key"}, json=_payload())

    assert resp.status_code == 200


def test_legacy_admin_key_blocked_in_production(client, monkeypatch):
    from backend.core.config import settings

    monkeypatch.setattr(settings, "ENV", "production")

    resp = client.put("/api/admin/plans/catalog", headers={"X-Admin-Key": "test-admin-key"}, json=_payload())

    assert resp.status_code == 401


def test_jwt_only_mode_ignores_legacy_key(client, monkeypatch):
    from backend.core.config import settings

    monkeypatch.setattr(settings, "ADMIN_AUTH_MODE", "jwt")

    resp = client.put("/api/admin/plans/catalog", headers={"X-Admin-Key": "test-admin-key"}, json=_payload())

    assert resp.status_code == 401


def test_admin_auth_unconfigured_is_503(client, monkeypatch):
    from backend.core.config import settings

    monkeypatch.setattr(settings, "ADMIN_KEY", None)
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)

    resp = client.put("/api/admin/plans/catalog", json=_payload())

    assert resp.status_code == 503


def test_unknown_field_rejected(client, admin_headers):
    payload = _payload()
    payload["enterprise"] = payload["business"]

    resp = client.put("/api/admin/plans/catalog", headers=admin_headers, json=payload)

    assert resp.status_code == 422


def test_admin_catalog_write_is_audited(client, admin_headers):
    client.put("/api/admin/plans/catalog", headers=admin_headers, json=_payload())

    events = client.get("/api/admin/audit", headers=admin_headers, params={"action": "set_catalog"}).json()["events"]

    assert len(events) == 1
    assert "admin_1" in events[0]["actor"]


def test_expired_admin_jwt_rejected(client):
    token = create_test_jwt(sub="admin_1", role="admin", exp_minutes=-1)

    resp = client.put("/api/admin/plans/catalog", headers={"Authorization": f"Bearer {token}"}, json=_payload())

    assert resp.status_code == 401
