"""
Tests for health and metrics endpoints
"""


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Request-ID" in response.headers


def test_detailed_health(client):
    data = client.get("/health/detailed").json()

    assert data["status"] == "healthy"
    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["llm"] == {"status": "not_configured", "model": None}
    assert data["components"]["email"]["status"] == "disabled"


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_api_root(client):
    data = client.get("/api").json()
    assert data["docs"] == "/docs"
    assert data["version"]


def test_metrics(client):
    client.get("/health")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "llm_requests_total" in response.text
