"""Sandbox router -- auto-repair endpoints for in-browser sandboxes."""

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import StreamingResponse

from autofix import FileStructure, ProjectFile
from app.services import repair_service
from app.services.repair_service import LLMOracle

router = APIRouter(prefix="/api/sandbox", tags=["sandbox"])


class ApiSettings(BaseModel):
    """Per-request oracle override (blank fields use server settings)."""
    provider: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class FixErrorRequest(BaseModel):
    """Request body for a one-shot repair."""
    error: str = Field(..., min_length=1)
    files: list[ProjectFile]
    file_structure: FileStructure | None = Field(default=None, alias="fileStructure")
    api_settings: ApiSettings | None = Field(default=None, alias="apiSettings")

    model_config = ConfigDict(populate_by_name=True)


class StartMonitoringRequest(BaseModel):
    """Request body for registering a monitoring session."""
    files: list[ProjectFile]
    file_structure: FileStructure | None = Field(default=None, alias="fileStructure")

    model_config = ConfigDict(populate_by_name=True)


class SandboxEventRequest(BaseModel):
    """One raw sandbox event, passed through to the observer untouched."""
    event: dict[str, Any]


class UpdateFilesRequest(BaseModel):
    """Request body carrying the user's current file set."""
    files: list[ProjectFile]


class StopRepairRequest(BaseModel):
    """Request body for aborting the in-flight repair."""
    reason: str = Field(default="user", max_length=100)


# ── POST /api/sandbox/fix-error ──────────────────────────────────────────


@router.post("/fix-error")
async def fix_error(body: FixErrorRequest) -> StreamingResponse:
    """Run one repair and stream its stage updates as Server-Sent Events."""
    oracle = None
    if body.api_settings is not None:
        oracle = LLMOracle(
            provider=body.api_settings.provider,
            api_key=body.api_settings.api_key,
            model=body.api_settings.model,
        )
    events = await repair_service.fix_error_stream(
        body.error, body.files, body.file_structure, oracle=oracle,
    )
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ── POST /api/sandbox/sessions/{session_id} ──────────────────────────────


@router.post("/sessions/{session_id}")
async def start_monitoring(session_id: str, body: StartMonitoringRequest):
    """Register (or replace) a monitoring session over the given files."""
    return repair_service.start_session(
        body.files, body.file_structure, session_id=session_id,
    )


# ── POST /api/sandbox/sessions/{session_id}/events ───────────────────────


@router.post("/sessions/{session_id}/events")
async def push_event(session_id: str, body: SandboxEventRequest):
    """Feed one sandbox event; returns the gate decision."""
    return repair_service.feed_event(session_id, body.event)


# ── POST /api/sandbox/sessions/{session_id}/stop ─────────────────────────


@router.post("/sessions/{session_id}/stop")
async def stop_repair(session_id: str, body: StopRepairRequest | None = None):
    """Abort the in-flight repair for a session."""
    return await repair_service.stop_repair(session_id, body.reason if body else "user")


# ── GET /api/sandbox/sessions/{session_id}/status ────────────────────────


@router.get("/sessions/{session_id}/status")
async def session_status(session_id: str):
    """Return monitor state: active repair, last update, preview options."""
    return repair_service.session_status(session_id)


# ── GET / PUT /api/sandbox/sessions/{session_id}/files ───────────────────


@router.get("/sessions/{session_id}/files")
async def get_files(session_id: str):
    """Return the session's current file set (including merged fixes)."""
    return repair_service.get_files(session_id)


@router.put("/sessions/{session_id}/files")
async def update_files(session_id: str, body: UpdateFilesRequest):
    """Replace the file set with the user's latest edits."""
    return repair_service.update_files(session_id, body.files)


# ── DELETE /api/sandbox/sessions/{session_id} ────────────────────────────


@router.delete("/sessions/{session_id}")
async def end_monitoring(session_id: str):
    """Stop any running repair and close the session."""
    await repair_service.end_session(session_id)
    return {"closed": session_id}
