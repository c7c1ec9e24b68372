"""Repair service -- hosts the auto-repair engine behind the HTTP/WS surface.

Two ways in:

* **Monitoring sessions** -- a sandbox registers its file set once, then
  streams raw build/console events.  Each session owns a
  ``RepairMonitor``; progress, merged files and preview options are
  fanned out to the session's WebSocket viewers.
* **One-shot fix** -- ``fix_error_stream`` runs a single repair for an
  error string and yields the stage updates as SSE ``data:`` lines.

Monitors live in process memory only.
"""

import json
import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from typing import Any

from autofix import (
    BuildEventObserver,
    BuildSucceeded,
    FaultGate,
    FaultKind,
    FileStructure,
    OracleRequest,
    PreviewOptions,
    ProjectFile,
    RepairMonitor,
    RepairOrchestrator,
    RepairSession,
    RepairStage,
    StageUpdate,
)
from app.clients import llm_client
from app.config import get_api_key_for_provider, get_model_for_provider, settings
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.ws_manager import manager

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Oracle adapter
# ---------------------------------------------------------------------------


class LLMOracle:
    """Streams oracle requests through the shared LLM client.

    Unset fields fall back to server settings, so a per-request override
    only needs to carry what differs.
    """

    def __init__(
        self,
        *,
        provider: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.provider = (provider or settings.LLM_PROVIDER or "anthropic").lower()
        self.api_key = api_key or get_api_key_for_provider(self.provider)
        self.model = model or get_model_for_provider(self.provider)
        self.max_tokens = max_tokens or settings.LLM_MAX_TOKENS

    async def stream(self, request: OracleRequest) -> AsyncIterator[str]:
        logger.debug("Oracle %s call via %s/%s", request.purpose, self.provider, self.model)
        async for chunk in llm_client.stream_chat(
            api_key=self.api_key,
            model=self.model,
            system_prompt=request.system_prompt,
            messages=request.messages,
            max_tokens=self.max_tokens,
            provider=self.provider,
        ):
            yield chunk


def _make_gate() -> FaultGate:
    return FaultGate(
        cooldown_s=settings.REPAIR_COOLDOWN_S,
        success_grace_s=settings.REPAIR_SUCCESS_GRACE_S,
        prefix_chars=settings.FINGERPRINT_PREFIX_CHARS,
    )


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def update_payload(update: StageUpdate) -> dict:
    """JSON-ready dict for one stage update (the full result is omitted)."""
    return update.model_dump(mode="json", exclude={"result"})


def _files_payload(files: list[ProjectFile]) -> list[dict]:
    return [f.model_dump() for f in files]


def _sse(data: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(data, default=str)}\n\n"


# ---------------------------------------------------------------------------
# Monitoring sessions (in-memory)
# ---------------------------------------------------------------------------

# Live monitors keyed by session_id
_monitors: dict[str, RepairMonitor] = {}


def _wire_fan_out(session_id: str, monitor: RepairMonitor) -> None:
    async def _on_update(update: StageUpdate) -> None:
        await manager.broadcast_stage_update(session_id, update_payload(update))

    async def _on_files_fixed(files: list[ProjectFile], update: StageUpdate) -> None:
        await manager.broadcast_files_fixed(session_id, _files_payload(files), update.modified_files)

    async def _on_preview(options: PreviewOptions) -> None:
        await manager.broadcast_preview_options(session_id, options.model_dump())

    monitor.on_reasoning_update(_on_update)
    monitor.on_files_fixed(_on_files_fixed)
    monitor.on_preview_options(_on_preview)


def start_session(
    files: list[ProjectFile],
    file_structure: FileStructure | None = None,
    *,
    session_id: str | None = None,
    oracle: Any = None,
) -> dict:
    """Create (or replace) a monitoring session over *files*."""
    session_id = session_id or uuid.uuid4().hex
    if session_id in _monitors and _monitors[session_id].active_session is not None:
        raise ConflictError(f"Session {session_id} has a repair in progress")

    monitor = RepairMonitor(
        RepairOrchestrator(oracle or LLMOracle()),
        gate=_make_gate(),
        recompile_delay_ms=settings.PREVIEW_RECOMPILE_DELAY_MS,
        repairing_recompile_delay_ms=settings.PREVIEW_RECOMPILE_DELAY_REPAIRING_MS,
    )
    _wire_fan_out(session_id, monitor)
    monitor.start_monitoring(files, file_structure)
    _monitors[session_id] = monitor
    logger.info("Monitoring session %s registered (%d files)", session_id[:8], len(files))
    return session_status(session_id)


def get_monitor(session_id: str) -> RepairMonitor:
    monitor = _monitors.get(session_id)
    if monitor is None:
        raise NotFoundError(f"Monitoring session {session_id} not found")
    return monitor


def feed_event(session_id: str, event: Mapping[str, Any]) -> dict:
    """Push one raw sandbox event into the session's monitor."""
    monitor = get_monitor(session_id)
    outcome = monitor.handle_event(event)
    if outcome is None:
        return {"signal": "ignored"}
    if isinstance(outcome, BuildSucceeded):
        return {"signal": "build_succeeded"}

    body: dict = {
        "signal": "fault",
        "accepted": outcome.accepted,
        "fingerprint": outcome.fingerprint,
        "reason": outcome.reason,
    }
    active = monitor.active_session
    if outcome.accepted and active is not None:
        body["repair_id"] = active.session_id
    return body


async def stop_repair(session_id: str, reason: str = "user") -> dict:
    """Abort the session's in-flight repair."""
    monitor = get_monitor(session_id)
    if not await monitor.stop_current_repair(reason):
        raise ConflictError("No repair in progress")
    return session_status(session_id)


def update_files(session_id: str, files: list[ProjectFile]) -> dict:
    """Record user edits; a running repair will not overwrite changed paths."""
    monitor = get_monitor(session_id)
    changed = monitor.update_files(files)
    return {"changed": changed, "file_count": len(monitor.files)}


def get_files(session_id: str) -> dict:
    monitor = get_monitor(session_id)
    return {"files": _files_payload(monitor.files)}


def session_status(session_id: str) -> dict:
    monitor = get_monitor(session_id)
    active = monitor.active_session
    gate_state = monitor.gate.state
    return {
        "session_id": session_id,
        "monitoring": monitor.monitoring,
        "file_count": len(monitor.files),
        "active_repair": (
            {
                "repair_id": active.session_id,
                "stage": active.stage.value,
                "fingerprint": active.fingerprint,
                "fault_kind": active.fault.kind.value,
            }
            if active is not None
            else None
        ),
        "last_update": update_payload(monitor.last_update) if monitor.last_update else None,
        "preview_options": monitor.preview_options.model_dump(),
        "gate": {
            "seen_fingerprints": len(gate_state.seen_fingerprints),
            "cooldown_until": gate_state.cooldown_until,
            "last_success_at": gate_state.last_success_at,
        },
    }


async def end_session(session_id: str) -> None:
    """Stop any running repair and forget the session."""
    monitor = get_monitor(session_id)
    await monitor.stop_current_repair("session_closed")
    _monitors.pop(session_id, None)
    logger.info("Monitoring session %s closed", session_id[:8])


async def shutdown_all() -> None:
    """Abort every running repair.  Called during app shutdown."""
    for session_id in list(_monitors):
        monitor = _monitors.pop(session_id)
        try:
            await monitor.stop_current_repair("shutdown")
        except Exception:
            logger.exception("Failed to stop repair for session %s", session_id[:8])


# ---------------------------------------------------------------------------
# One-shot fix stream
# ---------------------------------------------------------------------------


def _terminal_payload(update: StageUpdate) -> dict:
    reasoning = update.reasoning.model_dump(mode="json") if update.reasoning else None
    if update.stage is RepairStage.COMPLETE and update.result is not None:
        result = update.result
        return {
            "type": "complete",
            "success": True,
            "fixedFiles": result.patch,
            "explanation": result.explanation,
            "reasoning": reasoning,
            "analysis": result.context.model_dump(mode="json"),
            "verification": result.verification.model_dump(mode="json"),
            "modifiedFiles": result.modified_files,
        }
    if update.stage is RepairStage.ABORTED:
        return {"type": "aborted", "success": False, "message": update.message}
    return {
        "type": "error",
        "success": False,
        "error": update.error or update.message,
        "rawPreview": update.raw_preview,
        "reasoning": reasoning,
    }


async def fix_error_stream(
    error: str,
    files: list[ProjectFile],
    file_structure: FileStructure | None = None,
    *,
    oracle: Any = None,
) -> AsyncIterator[str]:
    """Validate *error* and return an iterator of SSE lines for one repair.

    Intermediate updates carry ``type: "progress"``; the stream ends with
    exactly one ``complete``, ``error`` or ``aborted`` event.  A client
    disconnect aborts the repair.
    """
    if not error.strip():
        raise BadRequestError("Error text is required")

    signal = BuildEventObserver().observe({"kind": "diagnostic", "message": error}, 0.0)
    if signal is None or isinstance(signal, BuildSucceeded):
        raise BadRequestError("Error text did not describe a fault")
    if signal.kind is FaultKind.MODULE_NOT_FOUND:
        logger.info("One-shot fix for missing module: %.120s", error)

    session = RepairSession(fault=signal, fingerprint="one-shot")
    orchestrator = RepairOrchestrator(oracle or LLMOracle())
    logger.info("One-shot repair %s started: %.200s", session.session_id, error)

    async def _events() -> AsyncIterator[str]:
        try:
            async for update in orchestrator.run(session, files, file_structure):
                if update.is_terminal:
                    yield _sse(_terminal_payload(update))
                else:
                    yield _sse({"type": "progress", **update_payload(update)})
        finally:
            # Disconnect closes this generator before a terminal stage.
            if session.is_active:
                session.abort("client_disconnected")
                logger.info("One-shot repair %s abandoned by client", session.session_id)

    return _events()


__all__ = [
    "LLMOracle",
    "end_session",
    "feed_event",
    "fix_error_stream",
    "get_files",
    "get_monitor",
    "session_status",
    "shutdown_all",
    "start_session",
    "stop_repair",
    "update_files",
    "update_payload",
]
