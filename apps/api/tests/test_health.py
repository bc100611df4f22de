from __future__ import annotations

from fastapi.testclient import TestClient

from mailrender.main import create_app


def test_healthz_ok() -> None:
    app = create_app()
    client = TestClient(app)
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_responses_carry_request_id_and_security_headers() -> None:
    client = TestClient(create_app())

    res = client.get("/healthz", headers={"x-request-id": "req-123"})

    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["x-content-type-options"] == "nosniff"
    assert res.headers["x-frame-options"] == "DENY"
    assert res.headers["referrer-policy"] == "same-origin"
    assert "default-src 'self'" in res.headers["content-security-policy"]


def test_request_id_is_generated_when_missing() -> None:
    client = TestClient(create_app())

    first = client.get("/healthz").headers["x-request-id"]
    second = client.get("/healthz").headers["x-request-id"]

    assert first
    assert first != second


def test_request_completion_is_logged(caplog) -> None:
    client = TestClient(create_app())

    with caplog.at_level("INFO", logger="mailrender"):
        client.get("/healthz", headers={"x-request-id": "req-log"})

    lines = [r.getMessage() for r in caplog.records if "http.request.completed" in r.getMessage()]
    assert any('"request_id":"req-log"' in line and '"status_code":200' in line for line in lines)
