"""Tests for the /api/sandbox router."""

import json
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services import repair_service

from tests.conftest import APP_TSX, FIXED_APP_TSX, HEADER_TSX, MAIN_TSX, FakeOracle, make_analysis, make_fix


FILES = [
    {"path": "/src/App.tsx", "content": APP_TSX},
    {"path": "/src/components/Header.tsx", "content": HEADER_TSX},
    {"path": "/src/main.tsx", "content": MAIN_TSX},
]

FAULT_EVENT = {"kind": "diagnostic", "message": "Unexpected token in /src/App.tsx line 12", "file": "/src/App.tsx"}


@pytest.fixture(autouse=True)
def _clear_monitors():
    repair_service._monitors.clear()
    yield
    repair_service._monitors.clear()


@pytest.fixture
def client():
    # Context-managed so background repair tasks share one event loop.
    with TestClient(app) as c:
        yield c


def _use_oracle(oracle):
    return patch("app.services.repair_service.LLMOracle", return_value=oracle)


def _happy_oracle() -> FakeOracle:
    return FakeOracle([make_analysis(), make_fix({"/src/App.tsx": FIXED_APP_TSX})])


def _wait_until_idle(client, session_id: str, timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        status = client.get(f"/api/sandbox/sessions/{session_id}/status").json()
        if status["active_repair"] is None or time.monotonic() > deadline:
            return status
        time.sleep(0.01)


def _sse_events(text: str) -> list[dict]:
    return [json.loads(chunk[len("data: "):]) for chunk in text.split("\n\n") if chunk.startswith("data: ")]


# ---------------------------------------------------------------------------
# Monitoring sessions
# ---------------------------------------------------------------------------


def test_start_session(client):
    with _use_oracle(_happy_oracle()):
        resp = client.post("/api/sandbox/sessions/abc", json={"files": FILES, "fileStructure": {"projectType": "react-ts"}})
    assert resp.status_code == 200
    data = resp.json()
    assert data["session_id"] == "abc"
    assert data["monitoring"] is True
    assert data["file_count"] == 3
    assert data["preview_options"] == {"auto_reload": True, "recompile_mode": "delayed", "recompile_delay_ms": 500}


def test_start_session_requires_files(client):
    resp = client.post("/api/sandbox/sessions/abc", json={})
    assert resp.status_code == 422
    assert resp.json()["error"] == "Validation failed"


def test_unknown_session_returns_404(client):
    assert client.get("/api/sandbox/sessions/nope/status").status_code == 404
    assert client.post("/api/sandbox/sessions/nope/events", json={"event": FAULT_EVENT}).status_code == 404
    assert client.get("/api/sandbox/sessions/nope/files").status_code == 404
    assert client.delete("/api/sandbox/sessions/nope").status_code == 404


def test_irrelevant_event_ignored(client):
    with _use_oracle(_happy_oracle()):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})
    resp = client.post("/api/sandbox/sessions/abc/events", json={"event": {"type": "state"}})
    assert resp.json() == {"signal": "ignored"}


def test_fault_is_repaired_and_merged(client):
    with _use_oracle(_happy_oracle()):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})

    resp = client.post("/api/sandbox/sessions/abc/events", json={"event": FAULT_EVENT})
    body = resp.json()
    assert body["signal"] == "fault"
    assert body["accepted"] is True

    status = _wait_until_idle(client, "abc")
    assert status["active_repair"] is None
    assert status["last_update"]["stage"] == "complete"

    files = client.get("/api/sandbox/sessions/abc/files").json()["files"]
    assert files[0] == {"path": "/src/App.tsx", "content": FIXED_APP_TSX}
    assert files[2]["content"] == MAIN_TSX

    # the same fault right after the merge is suppressed
    again = client.post("/api/sandbox/sessions/abc/events", json={"event": FAULT_EVENT}).json()
    assert again["accepted"] is False


def test_stop_running_repair(client):
    oracle = FakeOracle([make_analysis()], block_on=0)
    with _use_oracle(oracle):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})
    client.post("/api/sandbox/sessions/abc/events", json={"event": FAULT_EVENT})

    status = client.get("/api/sandbox/sessions/abc/status").json()
    assert status["active_repair"]["stage"] == "analyzing"
    assert status["preview_options"]["auto_reload"] is False

    # a session cannot be replaced while repairing
    assert client.post("/api/sandbox/sessions/abc", json={"files": FILES}).status_code == 409

    resp = client.post("/api/sandbox/sessions/abc/stop", json={"reason": "user"})
    assert resp.status_code == 200
    assert resp.json()["active_repair"] is None
    assert resp.json()["last_update"]["stage"] == "aborted"

    files = client.get("/api/sandbox/sessions/abc/files").json()["files"]
    assert files == FILES


def test_stop_without_repair_conflicts(client):
    with _use_oracle(_happy_oracle()):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})
    resp = client.post("/api/sandbox/sessions/abc/stop")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "No repair in progress"


def test_update_files(client):
    with _use_oracle(_happy_oracle()):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})
    edited = [{"path": "/src/App.tsx", "content": "// edited\n"}, *FILES[1:]]
    resp = client.put("/api/sandbox/sessions/abc/files", json={"files": edited})
    assert resp.json() == {"changed": ["/src/App.tsx"], "file_count": 3}


def test_delete_session(client):
    with _use_oracle(_happy_oracle()):
        client.post("/api/sandbox/sessions/abc", json={"files": FILES})
    assert client.delete("/api/sandbox/sessions/abc").json() == {"closed": "abc"}
    assert client.get("/api/sandbox/sessions/abc/status").status_code == 404


# ---------------------------------------------------------------------------
# One-shot fix (SSE)
# ---------------------------------------------------------------------------


def test_fix_error_streams_sse(client):
    with _use_oracle(_happy_oracle()):
        resp = client.post("/api/sandbox/fix-error", json={
            "error": "Module not found: Can't resolve './components/Head'",
            "files": FILES,
        })
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"

    events = _sse_events(resp.text)
    assert [e["type"] for e in events] == ["progress"] * 5 + ["complete"]
    assert [e["progress"] for e in events[:5]] == [10, 30, 40, 60, 80]
    assert events[-1]["fixedFiles"] == {"/src/App.tsx": FIXED_APP_TSX}


def test_fix_error_failure_event(client):
    with _use_oracle(FakeOracle(["not json at all"])):
        resp = client.post("/api/sandbox/fix-error", json={"error": "SyntaxError: x", "files": FILES})
    events = _sse_events(resp.text)
    assert events[-1]["type"] == "error"
    assert events[-1]["success"] is False
    assert events[-1]["rawPreview"] == "not json at all"


def test_fix_error_api_settings_override(client):
    with patch("app.api.routers.sandbox.LLMOracle", return_value=_happy_oracle()) as oracle_cls:
        resp = client.post("/api/sandbox/fix-error", json={
            "error": "SyntaxError: x",
            "files": FILES,
            "apiSettings": {"provider": "openai", "apiKey": "sk-user", "model": "gpt-4o-mini"},
        })
    assert resp.status_code == 200
    oracle_cls.assert_called_once_with(provider="openai", api_key="sk-user", model="gpt-4o-mini")


def test_fix_error_validation(client):
    assert client.post("/api/sandbox/fix-error", json={"files": FILES}).status_code == 422
    assert client.post("/api/sandbox/fix-error", json={"error": "", "files": FILES}).status_code == 422


def test_fix_error_blank_text(client):
    resp = client.post("/api/sandbox/fix-error", json={"error": "   ", "files": FILES})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Error text is required"
