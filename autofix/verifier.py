"""Fix applicator & verifier — quality gates and merge for oracle patches.

``verify_patch`` inspects a proposed ``path → content`` patch and reports
suspicious patterns.  Findings are warnings only; they never block a
patch from being offered.

``apply_patch`` merges an accepted patch into a file set.  Paths in the
patch overwrite (or are appended); paths absent from the patch are
returned untouched.  Neither function mutates its inputs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from autofix.contracts import ProjectFile, VerificationChecks, VerificationReport
from autofix.locate import normalise_path

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# function foo(a, b) {}   /   async function foo() { }
_EMPTY_FUNCTION_RE = re.compile(r"\bfunction\s*\*?\s*[\w$]+\s*\([^)]*\)\s*\{\s*\}")
# const foo = (a) => {}   /   const foo = async () => { }
_EMPTY_ARROW_RE = re.compile(
    r"\b(?:const|let|var)\s+[\w$]+\s*=\s*(?:async\s*)?\([^)]*\)\s*(?::\s*[\w<>\[\]|, ]+)?\s*=>\s*\{\s*\}"
)

_PLACEHOLDER_RE = re.compile(
    r"(?://|/\*|\{/\*|#)\s*(?:TODO|FIXME|XXX)\b"
    r"|//\s*(?:\.\.\.\s*)?(?:implement (?:this|me)|rest of (?:the )?code)"
    r"|//\s*\.\.\.\s*$",
    re.IGNORECASE | re.MULTILINE,
)

_UNDEFINED_RE = re.compile(r"\bundefined\b")
_UNDEFINED_GUARD_RE = re.compile(
    r"[!=]==?\s*undefined\b|\bundefined\s*[!=]==?|\btypeof\s+[\w$.]+\s*[!=]==?|\?\?|\?\."
)

# Only script/markup files are scanned for code-level issues
_CODE_EXTENSIONS: tuple[str, ...] = (
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".vue", ".svelte", ".html",
)


def _is_code(path: str) -> bool:
    return path.lower().endswith(_CODE_EXTENSIONS)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def verify_patch(patch: Mapping[str, str]) -> VerificationReport:
    """Run every quality gate over *patch* and collect per-file warnings."""
    no_empty = True
    no_todo = True
    no_undefined = True
    warnings: dict[str, list[str]] = {}

    for path, content in patch.items():
        file_warnings: list[str] = []

        if _PLACEHOLDER_RE.search(content):
            no_todo = False
            file_warnings.append("Contains TODO/FIXME or placeholder comments")

        if _is_code(path):
            if _EMPTY_FUNCTION_RE.search(content) or _EMPTY_ARROW_RE.search(content):
                no_empty = False
                file_warnings.append("Contains empty function")

            if _UNDEFINED_RE.search(content) and not _UNDEFINED_GUARD_RE.search(content):
                no_undefined = False
                file_warnings.append("May have undefined references")

        if file_warnings:
            warnings[path] = file_warnings

    return VerificationReport(
        files_modified=len(patch),
        checks=VerificationChecks(
            no_empty_functions=no_empty,
            no_todo_comments=no_todo,
            no_unguarded_undefined=no_undefined,
        ),
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def apply_patch(files: Sequence[ProjectFile], patch: Mapping[str, str]) -> list[ProjectFile]:
    """Merge *patch* into *files* and return the new file set.

    Patch keys match existing paths with or without a leading ``/``.
    Matched files keep their original path spelling; new paths are
    appended in patch order.
    """
    by_key: dict[str, str] = {normalise_path(p): p for p in patch}
    consumed: set[str] = set()

    merged: list[ProjectFile] = []
    for f in files:
        key = normalise_path(f.path)
        patch_path = by_key.get(key)
        if patch_path is None:
            merged.append(f)
            continue
        consumed.add(key)
        merged.append(ProjectFile(path=f.path, content=patch[patch_path]))

    for path, content in patch.items():
        key = normalise_path(path)
        if key in consumed:
            continue
        consumed.add(key)
        merged.append(ProjectFile(path=path, content=content))

    return merged


__all__ = ["apply_patch", "verify_patch"]
