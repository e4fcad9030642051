"""Tests for health endpoints."""

from unittest.mock import MagicMock, patch


def test_health_check(client):
    """Test basic health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


def test_detailed_health_check(client):
    """Test detailed health check endpoint."""
    response = client.get("/health/detailed")
    assert response.status_code == 200
    data = response.json()
    assert "status" in data
    assert "components" in data
    assert "database" in data["components"]
    assert "reconciler" in data["components"]


def test_detailed_health_degraded_without_reconciler(client):
    """No reconciler means the service cannot make progress."""
    with patch("app.main.get_reconciler", return_value=None):
        data = client.get("/health/detailed").json()
    assert data["status"] == "degraded"
    assert data["components"]["reconciler"] == "not_initialized"


def test_detailed_health_with_running_reconciler(client):
    reconciler = MagicMock(stopping=False)
    scheduler = MagicMock(running=True)
    with (
        patch("app.main.get_reconciler", return_value=reconciler),
        patch("app.main.get_scheduler", return_value=scheduler),
        patch("app.main.check_connection"),
    ):
        data = client.get("/health/detailed").json()
    assert data["status"] == "healthy"
    assert data["components"]["scheduler"] == "running"
