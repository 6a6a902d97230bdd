import pytest
from unittest.mock import Mock, patch

from fastapi.testclient import TestClient

from app.config.settings import settings
from app.db.models import SearchClass
from app.db.session import get_sync_session
from app.main import app
from app.schemas.slot_schemas import Area
from app.utils.errors import DatabaseError

PREFIX = settings.API_PREFIX


@pytest.fixture
def client(db_session):
    def override_session():
        yield db_session

    app.dependency_overrides[get_sync_session] = override_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestHealth:
    def test_health_check(self, client):
        response = client.get(f"{PREFIX}/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["service"] == settings.NAME
        assert "X-Request-ID" in response.headers
        assert body["requestId"] == response.headers["X-Request-ID"]


class TestAreaStatus:
    """Test the area query-status listing."""

    def test_paginated_statuses(self, client, registry):
        failing = Area(search_class=SearchClass.PIN, search_value="110001")
        for _ in range(10):
            registry.record_fetch_failure(failing)
        registry.record_fetch_success(
            Area(search_class=SearchClass.DISTRICT, search_value="294")
        )

        response = client.get(f"{PREFIX}/areas/status", params={"page": 1, "per_page": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"]["total"] == 2
        assert body["pagination"]["hasNext"] is True
        (first,) = body["data"]
        assert first["searchClass"] == "PIN"
        assert first["searchValue"] == "110001"
        assert first["queryFailCount"] == 10
        assert first["isExcluded"] is True

    def test_empty_registry(self, client):
        response = client.get(f"{PREFIX}/areas/status")

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_invalid_page_is_rejected(self, client):
        response = client.get(f"{PREFIX}/areas/status", params={"page": 0})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["meta"]["error_code"] == "VALIDATION_ERROR"


class TestErrorEnvelope:
    """Test that errors share the response envelope."""

    def test_unknown_route_is_404_envelope(self, client):
        response = client.get(f"{PREFIX}/areas/does-not-exist")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["meta"]["error_code"] == "HTTP_ERROR"
        assert body["meta"]["http_status"] == 404
        assert body["requestId"] == response.headers["X-Request-ID"]

    def test_database_error_is_500_envelope(self, client):
        registry = Mock()
        registry.list_area_statuses.side_effect = DatabaseError(
            "Failed to list area statuses", error_code="AREA_STATUS_LIST_FAILED"
        )

        with patch("app.routers.areas.get_area_registry", return_value=registry):
            response = client.get(f"{PREFIX}/areas/status")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["meta"]["error_code"] == "AREA_STATUS_LIST_FAILED"
        assert body["meta"]["error_type"] == "DATABASE_ERROR"


class TestCycles:
    def test_trigger_enqueues_task(self, client):
        task = Mock()
        task.delay.return_value = Mock(id="task-123")

        with patch("app.routers.cycles.inventory_cycle_task", task):
            response = client.post(f"{PREFIX}/cycles/")

        assert response.status_code == 202
        body = response.json()
        assert body["data"]["taskId"] == "task-123"
        task.delay.assert_called_once_with(body["data"]["requestId"])
