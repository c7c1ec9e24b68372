"""Repair monitor — session-level control surface for one live project.

Owns the project file set, the fault gate and at most one active repair
session.  Sandbox events enter through ``handle_event`` (synchronous and
fast); an accepted fault spawns the orchestrator as a background task
whose progress is fanned out to ``on_reasoning_update`` callbacks.  A
``complete`` result is merged into the file set exactly once, and only
if no patched path was edited by the user since the snapshot was taken.

While a session is running, ``preview_options`` switch the sandbox to
no auto-reload with a widened recompile delay, so a half-applied repair
does not trigger a rebuild storm of fresh fault events.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Union

from autofix.contracts import (
    Admission,
    BuildSucceeded,
    Fault,
    FileStructure,
    PreviewOptions,
    ProjectFile,
    RepairStage,
    StageUpdate,
)
from autofix.gate import FaultGate
from autofix.observer import BuildEventObserver
from autofix.orchestrator import RepairOrchestrator, RepairSession
from autofix.verifier import apply_patch
from autofix.locate import normalise_path

logger = logging.getLogger(__name__)

DEFAULT_RECOMPILE_DELAY_MS = 500
DEFAULT_REPAIRING_RECOMPILE_DELAY_MS = 2000

ReasoningCallback = Callable[[StageUpdate], Union[None, Awaitable[None]]]
FilesFixedCallback = Callable[[list[ProjectFile], StageUpdate], Union[None, Awaitable[None]]]
PreviewCallback = Callable[[PreviewOptions], Union[None, Awaitable[None]]]


class RepairMonitor:
    """Watches one project's sandbox and runs auto-repair sessions."""

    def __init__(
        self,
        orchestrator: RepairOrchestrator,
        *,
        gate: FaultGate | None = None,
        observer: BuildEventObserver | None = None,
        clock: Callable[[], float] = time.monotonic,
        recompile_delay_ms: int = DEFAULT_RECOMPILE_DELAY_MS,
        repairing_recompile_delay_ms: int = DEFAULT_REPAIRING_RECOMPILE_DELAY_MS,
    ) -> None:
        self._orchestrator = orchestrator
        self._gate = gate or FaultGate()
        self._observer = observer or BuildEventObserver()
        self._clock = clock
        self._idle_preview = PreviewOptions(auto_reload=True, recompile_delay_ms=recompile_delay_ms)
        self._repair_preview = PreviewOptions(
            auto_reload=False, recompile_delay_ms=repairing_recompile_delay_ms,
        )

        self._files: list[ProjectFile] = []
        self._versions: dict[str, int] = {}
        self._file_structure = FileStructure()
        self._monitoring = False

        self._session: RepairSession | None = None
        self._task: asyncio.Task | None = None
        self._last_update: StageUpdate | None = None

        self._reasoning_callbacks: list[ReasoningCallback] = []
        self._files_fixed_callbacks: list[FilesFixedCallback] = []
        self._preview_callbacks: list[PreviewCallback] = []

    # ── control surface ──────────────────────────────────────────────

    def start_monitoring(
        self,
        files: Sequence[ProjectFile],
        file_structure: FileStructure | Mapping[str, Any] | None = None,
    ) -> None:
        """Take ownership of *files* and begin accepting sandbox events."""
        self._files = list(files)
        self._versions = {normalise_path(f.path): 0 for f in self._files}
        if isinstance(file_structure, Mapping):
            file_structure = FileStructure.model_validate(file_structure)
        self._file_structure = file_structure or FileStructure()
        self._monitoring = True
        logger.info("Monitoring started (%d files, %s)", len(self._files), self._file_structure.project_type)

    def on_reasoning_update(self, callback: ReasoningCallback) -> None:
        self._reasoning_callbacks.append(callback)

    def on_files_fixed(self, callback: FilesFixedCallback) -> None:
        self._files_fixed_callbacks.append(callback)

    def on_preview_options(self, callback: PreviewCallback) -> None:
        self._preview_callbacks.append(callback)

    async def stop_current_repair(self, reason: str = "user") -> bool:
        """Abort the active session, if any, and wait for it to wind down."""
        session, task = self._session, self._task
        if session is None or not session.is_active:
            return False
        logger.info("Stopping repair %s (%s)", session.session_id, reason)
        session.abort(reason)
        if task is not None:
            await asyncio.shield(task)
        return True

    # ── state ────────────────────────────────────────────────────────

    @property
    def files(self) -> list[ProjectFile]:
        return list(self._files)

    @property
    def file_structure(self) -> FileStructure:
        return self._file_structure

    @property
    def gate(self) -> FaultGate:
        return self._gate

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    @property
    def active_session(self) -> RepairSession | None:
        if self._session is not None and self._session.is_active:
            return self._session
        return None

    @property
    def last_update(self) -> StageUpdate | None:
        return self._last_update

    @property
    def preview_options(self) -> PreviewOptions:
        return self._repair_preview if self.active_session else self._idle_preview

    def update_files(self, files: Sequence[ProjectFile]) -> list[str]:
        """Replace the file set with user edits; returns the changed paths."""
        current = {normalise_path(f.path): f.content for f in self._files}
        changed: list[str] = []
        for f in files:
            key = normalise_path(f.path)
            if current.get(key) != f.content:
                self._versions[key] = self._versions.get(key, 0) + 1
                changed.append(f.path)
        self._files = list(files)
        return changed

    async def wait_idle(self) -> None:
        """Wait for the running session task (if any) to finish."""
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    # ── event path ───────────────────────────────────────────────────

    def handle_event(self, event: Mapping[str, Any]) -> Admission | BuildSucceeded | None:
        """Feed one sandbox event.  Never blocks on I/O.

        Returns the gate decision for faults, the success signal for a
        clean build, or ``None`` when the event is irrelevant.
        """
        if not self._monitoring:
            return None

        now = self._clock()
        signal = self._observer.observe(event, now)
        if signal is None:
            return None

        if isinstance(signal, BuildSucceeded):
            self._gate.record_success(now)
            logger.debug("Build succeeded; fault tracking reset")
            return signal

        return self._admit(signal, now)

    def _admit(self, fault: Fault, now: float) -> Admission:
        loop = asyncio.get_running_loop()
        if self._busy:
            fp = self._gate.fingerprint(fault)
            logger.debug("Fault %s ignored: a repair session is still running", fp)
            return Admission(accepted=False, fingerprint=fp, reason="repair_in_progress")

        admission = self._gate.admit(fault, now)
        if not admission.accepted:
            logger.info("Fault suppressed (%s): %.80s", admission.reason, fault.raw_message)
            return admission

        session = RepairSession(fault=fault, fingerprint=admission.fingerprint, started_at=now)
        self._session = session
        self._task = loop.create_task(
            self._run_session(session, self.files, dict(self._versions)),
            name=f"repair-{session.session_id}",
        )
        return admission

    @property
    def _busy(self) -> bool:
        # Callbacks for the terminal update still run inside the task.
        if self.active_session is not None:
            return True
        return self._task is not None and not self._task.done()

    # ── session runner ───────────────────────────────────────────────

    async def _run_session(
        self,
        session: RepairSession,
        snapshot: list[ProjectFile],
        versions: dict[str, int],
    ) -> None:
        await self._publish_preview()
        final: StageUpdate | None = None
        merged = False
        try:
            async for update in self._orchestrator.run(session, snapshot, self._file_structure):
                final = update
                if update.stage is RepairStage.COMPLETE and update.result is not None:
                    merged = self._merge(session, update, versions)
                await self._emit(update)
        finally:
            if final is None or not final.is_terminal:
                session.stage = RepairStage.FAILED
            if session.stage is not RepairStage.COMPLETE:
                self._gate.release(session.fingerprint)
            await self._publish_preview()

        if merged:
            for cb in list(self._files_fixed_callbacks):
                await self._call(cb, self.files, final)

    def _merge(self, session: RepairSession, update: StageUpdate, versions: dict[str, int]) -> bool:
        """Apply a completed patch to the file set; ``False`` when it is stale."""
        patch = update.result.patch
        stale = [
            p for p in patch
            if self._versions.get(normalise_path(p), 0) != versions.get(normalise_path(p), 0)
        ]
        if stale:
            logger.warning(
                "[%s] Patch not merged: %s edited during repair", session.session_id, ", ".join(stale),
            )
            self._gate.release(session.fingerprint)
            return False

        self._files = apply_patch(self._files, patch)
        for p in patch:
            key = normalise_path(p)
            self._versions[key] = self._versions.get(key, 0) + 1
        self._gate.note_patch_applied(self._clock())
        logger.info("[%s] Merged fix into %d file(s)", session.session_id, len(patch))
        return True

    async def _emit(self, update: StageUpdate) -> None:
        self._last_update = update
        for cb in list(self._reasoning_callbacks):
            await self._call(cb, update)

    async def _publish_preview(self) -> None:
        options = self.preview_options
        for cb in list(self._preview_callbacks):
            await self._call(cb, options)

    async def _call(self, cb: Callable[..., Any], *args: Any) -> None:
        try:
            result = cb(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Repair monitor callback %r failed", cb)


__all__ = ["RepairMonitor"]
