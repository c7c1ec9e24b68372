"""Repair engine contracts — Pydantic models shared by every stage.

Faults, oracle requests, root-cause analyses, codebase context,
verification reports, repair results, and the stage-update records
streamed to the UI.  Input/output records are frozen; only the
in-flight ``RepairSession`` (see ``orchestrator``) is mutable.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Project files
# ---------------------------------------------------------------------------


class ProjectFile(BaseModel):
    """One ``(path, content)`` entry of the project file set."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1)
    content: str = ""


class FileStructure(BaseModel):
    """Project metadata sent alongside the file set."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    project_type: str = Field(default="react-ts", alias="projectType")
    description: str = ""
    dependencies: dict[str, str] = Field(default_factory=dict)
    dev_dependencies: dict[str, str] = Field(default_factory=dict, alias="devDependencies")


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------


class FaultKind(str, Enum):
    COMPILATION_ERROR = "compilation_error"
    RUNTIME_ERROR = "runtime_error"
    BUILD_FAILURE = "build_failure"
    MODULE_NOT_FOUND = "module_not_found"


# Labels used when describing a fault to the oracle
FAULT_LABELS: dict[FaultKind, str] = {
    FaultKind.COMPILATION_ERROR: "Compilation Error",
    FaultKind.RUNTIME_ERROR: "Runtime Error",
    FaultKind.BUILD_FAILURE: "Build Error",
    FaultKind.MODULE_NOT_FOUND: "Missing Module",
}

_LINE_MENTION_RE = re.compile(r"\bline\b", re.IGNORECASE)


class Fault(BaseModel):
    """A normalised build or runtime problem."""

    model_config = ConfigDict(frozen=True)

    kind: FaultKind
    raw_message: str
    file: str | None = None
    line: int | None = Field(default=None, ge=0)
    column: int | None = Field(default=None, ge=0)
    detected_at: float = Field(..., description="Clock reading when observed")

    def describe(self) -> str:
        """Human-readable one-block description for prompts and logs."""
        text = f"{FAULT_LABELS[self.kind]}: {self.raw_message}"
        if self.line is not None and not _LINE_MENTION_RE.search(self.raw_message):
            text += f"\nLine: {self.line}"
            if self.column is not None:
                text += f", Column: {self.column}"
        if self.file and self.file not in self.raw_message:
            text += f"\nFile: {self.file}"
        return text


class BuildSucceeded(BaseModel):
    """Signal emitted for a clean terminal build event."""

    model_config = ConfigDict(frozen=True)

    observed_at: float


SuppressReason = Literal[
    "cooldown",
    "post_success_transient",
    "already_fixed",
    "repair_in_progress",
]


class Admission(BaseModel):
    """Gate decision for one fault."""

    model_config = ConfigDict(frozen=True)

    accepted: bool
    fingerprint: str
    reason: SuppressReason | None = None


# ---------------------------------------------------------------------------
# Oracle requests / responses
# ---------------------------------------------------------------------------


class OracleRequest(BaseModel):
    """One call to the code-generation oracle."""

    model_config = ConfigDict(frozen=True)

    purpose: Literal["analysis", "fix"]
    system_prompt: str
    messages: list[dict[str, str]]


FixStrategy = Literal["quick_patch", "proper_fix", "refactor"]


class FaultLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str | None = None
    line: int | None = None
    function: str | None = None


class RootCauseAnalysis(BaseModel):
    """Structured output of the analysis stage."""

    model_config = ConfigDict(frozen=True)

    error_type: str = "unknown"
    location: FaultLocation = Field(default_factory=FaultLocation)
    symptom: str = ""
    why_chain: list[str] = Field(default_factory=list)
    fundamental_issue: str = ""
    strategy: FixStrategy = "proper_fix"
    strategy_reasoning: str = ""
    files_to_modify: list[str] = Field(default_factory=list)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    raw: dict[str, Any] = Field(default_factory=dict, description="Parsed oracle record")


class FixProposal(BaseModel):
    """Parsed implementation-stage response."""

    model_config = ConfigDict(frozen=True)

    explanation: str
    files: dict[str, str]
    strategy: str = Field(..., description="Name of the parser that succeeded")


# ---------------------------------------------------------------------------
# Codebase context
# ---------------------------------------------------------------------------


class CodebaseContext(BaseModel):
    """Advisory dependency/impact view handed to the oracle."""

    model_config = ConfigDict(frozen=True)

    total_files: int = Field(default=0, ge=0)
    error_file: str | None = None
    affected_files: list[str] = Field(default_factory=list)
    related_files: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list, description="External modules")
    imports: dict[str, list[str]] = Field(default_factory=dict, description="Path → module refs")
    exports: dict[str, list[str]] = Field(default_factory=dict, description="Path → exported names")


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class VerificationChecks(BaseModel):
    model_config = ConfigDict(frozen=True)

    no_empty_functions: bool = True
    no_todo_comments: bool = True
    no_unguarded_undefined: bool = True


class VerificationReport(BaseModel):
    """Quality-gate results for a proposed patch.  Warnings never block."""

    model_config = ConfigDict(frozen=True)

    files_modified: int = Field(default=0, ge=0)
    checks: VerificationChecks = Field(default_factory=VerificationChecks)
    warnings: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def passed(self) -> bool:
        c = self.checks
        return c.no_empty_functions and c.no_todo_comments and c.no_unguarded_undefined


# ---------------------------------------------------------------------------
# Stages, results, progress records
# ---------------------------------------------------------------------------


class RepairStage(str, Enum):
    ANALYZING = "analyzing"
    ROOT_CAUSE_IDENTIFIED = "root_cause_identified"
    SCANNING_CODEBASE = "scanning_codebase"
    IMPLEMENTING_FIX = "implementing_fix"
    VERIFYING = "verifying"
    COMPLETE = "complete"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STAGES


_TERMINAL_STAGES = frozenset({RepairStage.COMPLETE, RepairStage.FAILED, RepairStage.ABORTED})

STAGE_PROGRESS: dict[RepairStage, int] = {
    RepairStage.ANALYZING: 10,
    RepairStage.ROOT_CAUSE_IDENTIFIED: 30,
    RepairStage.SCANNING_CODEBASE: 40,
    RepairStage.IMPLEMENTING_FIX: 60,
    RepairStage.VERIFYING: 80,
    RepairStage.COMPLETE: 100,
    RepairStage.FAILED: 0,
    RepairStage.ABORTED: 0,
}


class RepairResult(BaseModel):
    """Packaged outcome of a completed session, handed to the file-set owner."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    patch: dict[str, str]
    explanation: str
    analysis: RootCauseAnalysis
    context: CodebaseContext
    verification: VerificationReport

    @property
    def modified_files(self) -> list[str]:
        return list(self.patch)


class StageUpdate(BaseModel):
    """One progress record on the outbound UI stream."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    stage: RepairStage
    message: str
    progress: int = Field(..., ge=0, le=100)
    reasoning: RootCauseAnalysis | None = None
    result: RepairResult | None = None
    error: str | None = None
    raw_preview: str | None = None
    modified_files: list[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal


class PreviewOptions(BaseModel):
    """Live-preview rebuild settings published to the sandbox host."""

    model_config = ConfigDict(frozen=True)

    auto_reload: bool = True
    recompile_mode: Literal["immediate", "delayed"] = "delayed"
    recompile_delay_ms: int = Field(default=500, ge=0)


__all__ = [
    "Admission",
    "BuildSucceeded",
    "CodebaseContext",
    "FAULT_LABELS",
    "Fault",
    "FaultKind",
    "FaultLocation",
    "FileStructure",
    "FixProposal",
    "FixStrategy",
    "OracleRequest",
    "PreviewOptions",
    "ProjectFile",
    "RepairResult",
    "RepairStage",
    "RootCauseAnalysis",
    "STAGE_PROGRESS",
    "StageUpdate",
    "SuppressReason",
    "VerificationChecks",
    "VerificationReport",
]
