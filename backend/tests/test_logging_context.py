"""Structured logging and request_id propagation."""

import logging

from backend.core.logging import JsonFormatter, log_event, request_id_ctx_var


def test_request_id_in_response_and_logs(client, caplog):
    with caplog.at_level(logging.INFO, logger="confera"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert len({r.request_id for r in records}) == 1


def test_request_id_in_error_response(client, identity, admin_headers):
    response = client.put("/api/admin/users/missing/plan", headers=admin_headers, json={"plan": "pro", "active": True})
    rid = response.headers.get("x-request-id")
    assert response.status_code == 404
    assert rid
    assert response.json()["error"]["request_id"] == rid


def test_log_event_uses_context_request_id(caplog):
    token = request_id_ctx_var.set("rid-ctx")
    try:
        with caplog.at_level(logging.INFO, logger="confera"):
            log_event("info", "billing.payment_applied", user_id="u1", reference="ref_1", extra={"plan": "pro"})
    finally:
        request_id_ctx_var.reset(token)

    record = [r for r in caplog.records if r.getMessage() == "billing.payment_applied"][-1]
    assert record.request_id == "rid-ctx"
    assert record.reference == "ref_1"
    assert record.plan == "pro"


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("confera", logging.INFO, __file__, 1, "billing.checkout", None, None)
    record.request_id = "rid-1"
    record.reference = "ref_9"

    payload = JsonFormatter().format(record)

    assert '"request_id": "rid-1"' in payload
    assert '"reference": "ref_9"' in payload
