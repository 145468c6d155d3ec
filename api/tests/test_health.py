from fastapi.testclient import TestClient

from coderag_api.main import app


def test_healthz() -> None:
    client = TestClient(app)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_health_reports_version() -> None:
    client = TestClient(app)
    payload = client.get("/health").json()
    assert payload["status"] == "healthy"
    assert payload["version"] == "1.0.0"
    assert payload["timestamp"]


def test_unknown_route_uses_error_envelope() -> None:
    client = TestClient(app)
    response = client.get("/api/v1/nope")
    assert response.status_code == 404
    body = response.json()
    assert body["code"] == 404
    assert body["path"] == "/api/v1/nope"
    assert body["message"] == "Not Found"
