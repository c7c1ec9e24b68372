"""Repair orchestrator — the staged repair pipeline for one accepted fault.

Stages and advisory progress::

    analyzing (10) → root_cause_identified (30) → scanning_codebase (40)
        → implementing_fix (60) → verifying (80) → complete (100)

``failed`` is reachable from any stage, ``aborted`` from any non-terminal
stage.  ``RepairOrchestrator.run`` is an async generator: it yields one
``StageUpdate`` as each stage is entered (before the stage's work) and
always finishes with exactly one terminal update.  No exception escapes
it; oracle, parse and unexpected errors all become a ``failed`` record.

The only suspension points on external I/O are the two oracle calls
(analysis and implementation).  Everything else is local text work.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field

from autofix.cancellation import AbortToken
from autofix.codebase import analyze_codebase
from autofix.contracts import (
    STAGE_PROGRESS,
    CodebaseContext,
    Fault,
    FileStructure,
    ProjectFile,
    RepairResult,
    RepairStage,
    RootCauseAnalysis,
    StageUpdate,
    VerificationReport,
)
from autofix.errors import OracleError, RepairAborted, ResponseParseError
from autofix.oracle import Oracle, collect
from autofix.prompts import build_analysis_request, build_fix_request
from autofix.response_parser import parse_analysis, parse_fix_response
from autofix.verifier import verify_patch

logger = logging.getLogger(__name__)

STAGE_MESSAGES: dict[RepairStage, str] = {
    RepairStage.ANALYZING: "Analyzing error and codebase context...",
    RepairStage.ROOT_CAUSE_IDENTIFIED: "Root cause identified",
    RepairStage.SCANNING_CODEBASE: "Scanning entire codebase for related issues...",
    RepairStage.IMPLEMENTING_FIX: "Implementing fixes across affected files...",
    RepairStage.VERIFYING: "Verifying fixes...",
    RepairStage.COMPLETE: "Fix complete and verified",
    RepairStage.ABORTED: "Repair cancelled",
}


@dataclass
class RepairSession:
    """One in-flight attempt to fix a fault.  Discarded once terminal."""

    fault: Fault
    fingerprint: str
    abort_token: AbortToken = field(default_factory=AbortToken)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: float = field(default_factory=time.monotonic)
    stage: RepairStage = RepairStage.ANALYZING
    analysis: RootCauseAnalysis | None = None
    context: CodebaseContext | None = None
    result: RepairResult | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.stage.is_terminal

    def abort(self, reason: str = "user") -> None:
        self.abort_token.abort(reason)


class RepairOrchestrator:
    """Drives a ``RepairSession`` through the repair stages against an oracle."""

    def __init__(
        self,
        oracle: Oracle,
        *,
        analyzer: Callable[[Sequence[ProjectFile], Fault], CodebaseContext] = analyze_codebase,
        verifier: Callable[[dict[str, str]], VerificationReport] = verify_patch,
    ) -> None:
        self._oracle = oracle
        self._analyzer = analyzer
        self._verifier = verifier

    def _enter(self, session: RepairSession, stage: RepairStage, **extra) -> StageUpdate:
        session.stage = stage
        return StageUpdate(
            session_id=session.session_id,
            stage=stage,
            message=extra.pop("message", STAGE_MESSAGES.get(stage, stage.value)),
            progress=STAGE_PROGRESS[stage],
            **extra,
        )

    async def run(
        self,
        session: RepairSession,
        files: Sequence[ProjectFile],
        file_structure: FileStructure | None = None,
    ) -> AsyncIterator[StageUpdate]:
        """Run every stage for *session* over the snapshot *files*."""
        token = session.abort_token
        structure = file_structure or FileStructure()
        snapshot = list(files)
        fault = session.fault

        try:
            token.raise_if_aborted()

            # -- analyzing ---------------------------------------------------
            yield self._enter(session, RepairStage.ANALYZING)
            raw = await collect(self._oracle, build_analysis_request(fault, snapshot), token)
            analysis = parse_analysis(raw)
            session.analysis = analysis
            if analysis.fundamental_issue:
                logger.info("[%s] Root cause: %s", session.session_id, analysis.fundamental_issue)

            # -- root_cause_identified ---------------------------------------
            yield self._enter(session, RepairStage.ROOT_CAUSE_IDENTIFIED, reasoning=analysis)

            # -- scanning_codebase -------------------------------------------
            token.raise_if_aborted()
            yield self._enter(session, RepairStage.SCANNING_CODEBASE)
            token.raise_if_aborted()
            context = self._analyzer(snapshot, fault)
            session.context = context

            # -- implementing_fix --------------------------------------------
            token.raise_if_aborted()
            yield self._enter(session, RepairStage.IMPLEMENTING_FIX)
            request = build_fix_request(fault, snapshot, structure, analysis, context)
            raw = await collect(self._oracle, request, token)
            proposal = parse_fix_response(raw)

            # -- verifying ---------------------------------------------------
            token.raise_if_aborted()
            yield self._enter(session, RepairStage.VERIFYING)
            token.raise_if_aborted()
            verification = self._verifier(dict(proposal.files))
            if verification.warnings:
                logger.info(
                    "[%s] Verification warnings in %d file(s)",
                    session.session_id, len(verification.warnings),
                )

            token.raise_if_aborted()
            result = RepairResult(
                patch=dict(proposal.files),
                explanation=proposal.explanation,
                analysis=analysis,
                context=context,
                verification=verification,
            )
            session.result = result

        except RepairAborted as exc:
            logger.info("[%s] Repair aborted during %s (%s)", session.session_id, session.stage.value, exc.reason)
            yield self._enter(session, RepairStage.ABORTED)
            return
        except ResponseParseError as exc:
            session.error = str(exc)
            logger.warning("[%s] %s", session.session_id, exc)
            yield self._fail(session, exc.message, raw_preview=exc.raw_preview)
            return
        except OracleError as exc:
            session.error = str(exc)
            logger.warning("[%s] %s", session.session_id, exc)
            yield self._fail(session, exc.message)
            return
        except Exception as exc:
            session.error = f"{type(exc).__name__}: {exc}"
            logger.exception("[%s] Unexpected repair failure during %s", session.session_id, session.stage.value)
            yield self._fail(session, session.error)
            return

        yield self._enter(
            session,
            RepairStage.COMPLETE,
            result=result,
            reasoning=analysis,
            modified_files=result.modified_files,
        )

    def _fail(self, session: RepairSession, error: str, *, raw_preview: str | None = None) -> StageUpdate:
        failed_during = session.stage
        return self._enter(
            session,
            RepairStage.FAILED,
            message=f"Fix failed during {failed_during.value}: {error}",
            error=error,
            raw_preview=raw_preview,
            reasoning=session.analysis,
        )


__all__ = ["RepairOrchestrator", "RepairSession", "STAGE_MESSAGES"]
