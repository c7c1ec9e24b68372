"""Tests for the API's error responses, exercised through the real routes."""

import logging
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.errors import format_error_response
from app.services import repair_service

from tests.conftest import APP_TSX, FakeOracle, make_analysis


FILES = [{"path": "/src/App.tsx", "content": APP_TSX}]


@pytest.fixture(autouse=True)
def _clear_monitors():
    repair_service._monitors.clear()
    yield
    repair_service._monitors.clear()


@pytest.fixture()
def client():
    with TestClient(create_app(), raise_server_exceptions=False) as c:
        yield c


def _start(client, session_id: str = "abc") -> None:
    with patch("app.services.repair_service.LLMOracle", return_value=FakeOracle([make_analysis()])):
        assert client.post(f"/api/sandbox/sessions/{session_id}", json={"files": FILES}).status_code == 200


# ------------------------------------------------------------------
# Service errors
# ------------------------------------------------------------------

def test_unknown_session_is_404(client) -> None:
    response = client.get("/api/sandbox/sessions/ghost/status")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "Not Found"
    assert body["detail"] == "Monitoring session ghost not found"
    assert body["request_id"] == response.headers["x-request-id"]


def test_stop_without_repair_is_409(client) -> None:
    _start(client)
    response = client.post("/api/sandbox/sessions/abc/stop")
    assert response.status_code == 409
    assert response.json()["error"] == "Conflict"
    assert response.json()["detail"] == "No repair in progress"


def test_blank_error_text_is_400(client) -> None:
    response = client.post("/api/sandbox/fix-error", json={"error": "  ", "files": FILES})
    assert response.status_code == 400
    assert response.json()["error"] == "Bad Request"


def test_service_error_logged_with_session(client, caplog) -> None:
    caplog.set_level(logging.INFO, logger="app.middleware.exception_handler")
    client.get("/api/sandbox/sessions/ghost/files")
    record = next(r for r in caplog.records if r.name == "app.middleware.exception_handler")
    assert record.levelno == logging.INFO
    assert "NotFoundError" in record.getMessage()
    assert "[session=ghost]" in record.getMessage()


# ------------------------------------------------------------------
# Validation and route misses
# ------------------------------------------------------------------

def test_missing_files_is_422_with_field_path(client) -> None:
    response = client.post("/api/sandbox/sessions/abc", json={})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation failed"
    assert any(line.startswith("body.files:") for line in body["detail"])


def test_unknown_route_is_404(client) -> None:
    response = client.get("/api/sandbox/nowhere")
    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"


def test_wrong_method_is_405(client) -> None:
    response = client.patch("/api/sandbox/sessions/abc/status")
    assert response.status_code == 405
    assert response.json()["error"] == "Method Not Allowed"


# ------------------------------------------------------------------
# Unhandled failures
# ------------------------------------------------------------------

def test_unhandled_failure_is_500_without_leak(client) -> None:
    _start(client)
    with patch("app.services.repair_service.session_status", side_effect=RuntimeError("monitor exploded")):
        with patch("app.middleware.exception_handler.logger") as mock_logger:
            response = client.get("/api/sandbox/sessions/abc/status")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal Server Error"
    assert "monitor exploded" not in str(body)
    mock_logger.error.assert_called_once()
    assert mock_logger.error.call_args.kwargs.get("exc_info") is not None


# ------------------------------------------------------------------
# Request ID propagation
# ------------------------------------------------------------------

def test_client_request_id_reused(client) -> None:
    response = client.get("/api/sandbox/sessions/ghost/status", headers={"X-Request-ID": "trace-123"})
    assert response.json()["request_id"] == "trace-123"
    assert response.headers["x-request-id"] == "trace-123"


def test_format_error_response_defaults_detail() -> None:
    assert format_error_response(error="Boom") == {"error": "Boom", "detail": "Boom", "request_id": ""}
