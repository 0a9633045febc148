from __future__ import annotations

from cities_collective.routers import system


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"]["status"] == "connected"


def test_health_reports_database_outage(client, monkeypatch):
    monkeypatch.setattr(
        system, "check_database_health", lambda: {"status": "disconnected", "response_time_ms": None}
    )

    response = client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
    assert response.json()["database"]["status"] == "disconnected"


def test_security_headers(client):
    response = client.get("/api/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/api/does-not-exist")

    assert response.status_code == 404
    assert "error" in response.json()
