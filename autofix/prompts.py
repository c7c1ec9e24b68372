"""Oracle request builders for the two repair calls.

``build_analysis_request`` asks for a root-cause analysis (why-chain,
fundamental issue, strategy choice) as JSON.  ``build_fix_request`` asks
for complete replacement contents of every file that must change.
"""

from __future__ import annotations

from collections.abc import Sequence

from autofix.codebase import summarise_context
from autofix.contracts import (
    CodebaseContext,
    Fault,
    FaultKind,
    FileStructure,
    OracleRequest,
    ProjectFile,
    RootCauseAnalysis,
)

ANALYSIS_SYSTEM_PROMPT = """You are an expert debugging specialist with systematic error analysis capabilities.

Follow this framework:
1. ERROR IDENTIFICATION - exact message, type (syntax|runtime|type|module|state), location, trigger.
2. CONTEXT GATHERING - surrounding code, dependencies involved, recent changes.
3. ROOT CAUSE ANALYSIS - ask "why?" until you reach the fundamental issue, not the symptom.
4. FIX STRATEGY - weigh quickPatch, properFix and refactor; select one and explain.
5. IMPLEMENTATION - list every file that needs modification.

Return ONLY a JSON object of this shape:
{
  "errorAnalysis": {
    "identification": {"errorMessage": "", "errorType": "", "location": {"file": "", "line": 0, "function": ""}},
    "rootCause": {"symptom": "", "whyChain": [""], "fundamentalIssue": ""},
    "fixStrategy": {"selected": "quickPatch|properFix|refactor", "reasoning": ""},
    "implementation": {"filesToModify": [{"path": "", "changes": ""}]}
  },
  "confidence": {"rootCauseIdentification": 0.0}
}"""

FIX_SYSTEM_PROMPT = """You are an expert code debugger with deep reasoning capabilities.

You have analyzed this error and identified:
ROOT CAUSE: {root_cause}
FIX STRATEGY: {strategy}

CODEBASE CONTEXT:
{context}

Implement fixes across ALL affected files, not just the one with the error.

RULES:
1. Fix the root cause, not just symptoms.
2. Update every file that depends on changed code.
3. Keep imports and exports consistent across files.
4. Every function must have a complete body; no placeholder comments.
5. Return complete, working content for every modified file.
{extra}
OUTPUT FORMAT:
{{
  "explanation": "What was fixed and why",
  "files": {{
    "/path/to/file.tsx": "complete fixed content"
  }}
}}

Return ONLY valid JSON."""

_MISSING_MODULE_INSTRUCTIONS = """
MISSING DEPENDENCY:
The sandbox has limited package support. Do NOT add packages to dependencies.
Remove the import or simplify the code so the package is no longer needed.
"""


def _render_files(files: Sequence[ProjectFile]) -> str:
    return "\n".join(f"=== {f.path} ===\n{f.content}\n" for f in files)


def build_analysis_request(fault: Fault, files: Sequence[ProjectFile]) -> OracleRequest:
    user = (
        "ANALYZE THIS ERROR:\n\n"
        f"{fault.describe()}\n\n"
        "CURRENT PROJECT FILES:\n"
        f"{_render_files(files)}\n"
        "Return your complete analysis in the JSON format specified."
    )
    return OracleRequest(
        purpose="analysis",
        system_prompt=ANALYSIS_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": user}],
    )


def build_fix_request(
    fault: Fault,
    files: Sequence[ProjectFile],
    file_structure: FileStructure,
    analysis: RootCauseAnalysis,
    context: CodebaseContext,
) -> OracleRequest:
    extra = _MISSING_MODULE_INSTRUCTIONS if fault.kind is FaultKind.MODULE_NOT_FOUND else ""
    system = FIX_SYSTEM_PROMPT.format(
        root_cause=analysis.fundamental_issue or "Unknown",
        strategy=analysis.strategy,
        context=summarise_context(context),
        extra=extra,
    )
    why = "\n".join(f"- {w}" for w in analysis.why_chain) or "- (none given)"
    user = (
        f"ERROR: {fault.describe()}\n\n"
        f"PROJECT: {file_structure.project_type}\n"
        f"WHY CHAIN:\n{why}\n\n"
        f"ALL FILES:\n{_render_files(files)}\n"
        "Based on the reasoning and codebase analysis, implement comprehensive fixes."
    )
    return OracleRequest(
        purpose="fix",
        system_prompt=system,
        messages=[{"role": "user", "content": user}],
    )


__all__ = [
    "ANALYSIS_SYSTEM_PROMPT",
    "FIX_SYSTEM_PROMPT",
    "build_analysis_request",
    "build_fix_request",
]
