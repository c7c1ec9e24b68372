"""Sandbox auto-repair engine — fault detection, gating, and staged repair.

Public API
----------
Session control::

    RepairMonitor  — start_monitoring / handle_event / stop_current_repair

Observer::

    BuildEventObserver  — raw sandbox events → Fault | BuildSucceeded

Gate::

    FaultGate, GateState, fingerprint,

Orchestrator::

    RepairOrchestrator, RepairSession, STAGE_MESSAGES,

Oracle::

    Oracle, collect, build_analysis_request, build_fix_request,

Contracts (Pydantic models)::

    ProjectFile, FileStructure, Fault, FaultKind, BuildSucceeded,
    Admission, OracleRequest, RootCauseAnalysis, FixProposal,
    CodebaseContext, VerificationReport, RepairStage, RepairResult,
    StageUpdate, PreviewOptions,

Codebase analysis::

    analyze_codebase, extract_imports, extract_exports, summarise_context,

Verification::

    verify_patch, apply_patch,

Response parser::

    parse_analysis, parse_fix_response, clean_content, strip_fences,

Cancellation::

    AbortToken,

Errors::

    AutofixError, OracleError, ResponseParseError, RepairAborted,
"""

from autofix.cancellation import AbortToken
from autofix.codebase import (
    analyze_codebase,
    extract_exports,
    extract_imports,
    summarise_context,
)
from autofix.contracts import (
    Admission,
    BuildSucceeded,
    CodebaseContext,
    Fault,
    FaultKind,
    FileStructure,
    FixProposal,
    OracleRequest,
    PreviewOptions,
    ProjectFile,
    RepairResult,
    RepairStage,
    RootCauseAnalysis,
    StageUpdate,
    VerificationReport,
)
from autofix.errors import (
    AutofixError,
    OracleError,
    RepairAborted,
    ResponseParseError,
)
from autofix.gate import FaultGate, GateState, fingerprint
from autofix.monitor import RepairMonitor
from autofix.observer import BuildEventObserver
from autofix.oracle import Oracle, collect
from autofix.orchestrator import STAGE_MESSAGES, RepairOrchestrator, RepairSession
from autofix.prompts import build_analysis_request, build_fix_request
from autofix.response_parser import (
    clean_content,
    parse_analysis,
    parse_fix_response,
    strip_fences,
)
from autofix.verifier import apply_patch, verify_patch

__all__ = [
    # Session control
    "RepairMonitor",
    # Observer
    "BuildEventObserver",
    # Gate
    "FaultGate",
    "GateState",
    "fingerprint",
    # Orchestrator
    "RepairOrchestrator",
    "RepairSession",
    "STAGE_MESSAGES",
    # Oracle
    "Oracle",
    "collect",
    "build_analysis_request",
    "build_fix_request",
    # Contracts
    "Admission",
    "BuildSucceeded",
    "CodebaseContext",
    "Fault",
    "FaultKind",
    "FileStructure",
    "FixProposal",
    "OracleRequest",
    "PreviewOptions",
    "ProjectFile",
    "RepairResult",
    "RepairStage",
    "RootCauseAnalysis",
    "StageUpdate",
    "VerificationReport",
    # Codebase analysis
    "analyze_codebase",
    "extract_exports",
    "extract_imports",
    "summarise_context",
    # Verification
    "apply_patch",
    "verify_patch",
    # Response parser
    "clean_content",
    "parse_analysis",
    "parse_fix_response",
    "strip_fences",
    # Cancellation
    "AbortToken",
    # Errors
    "AutofixError",
    "OracleError",
    "RepairAborted",
    "ResponseParseError",
]
