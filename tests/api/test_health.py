"""
Tests for the health check endpoint.
"""


def test_health_check_returns_200(client):
    """Can the application receive a request and respond at all?"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_check_returns_service_name(client):
    """Monitoring parses this field; it must not drift."""
    response = client.get("/health")
    data = response.json()
    assert data["service"] == "mobile-money-payments"


def test_health_check_reports_database_status(client):
    response = client.get("/health")
    data = response.json()
    assert data["database"] == "healthy"
    assert data["status"] == "healthy"


def test_health_check_reports_gateway_mode(client):
    response = client.get("/health")
    assert response.json()["gateway_mode"] in ("simulated", "live")
