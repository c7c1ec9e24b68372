"""Codebase context analyzer — heuristic dependency/impact view of a project.

Everything here is lightweight text matching, not module resolution.
The output only feeds the fix prompt, so a wrong or empty context costs
fix quality, never correctness.  With no identifiable error path the
affected/related sets are simply empty.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import PurePosixPath

from autofix.contracts import CodebaseContext, Fault, ProjectFile
from autofix.locate import extract_file_path, normalise_path, strip_source_extension

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# import X from 'mod' / import { a, b } from "mod" / export { x } from 'mod'
_FROM_RE = re.compile(r"""\b(?:import|export)\s[^;'"]*?\bfrom\s*['"]([^'"]+)['"]""")
# import 'side-effect'
_BARE_IMPORT_RE = re.compile(r"""^\s*import\s*['"]([^'"]+)['"]""", re.MULTILINE)
# require('mod') / import('mod')
_CALL_IMPORT_RE = re.compile(r"""\b(?:require|import)\s*\(\s*['"]([^'"]+)['"]\s*\)""")
# CSS @import
_CSS_IMPORT_RE = re.compile(r"""@import\s+(?:url\()?\s*['"]([^'"]+)['"]""")

_EXPORT_RE = re.compile(
    r"^\s*export\s+(?:default\s+)?(?:async\s+)?"
    r"(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)",
    re.MULTILINE,
)
_EXPORT_DEFAULT_ANON_RE = re.compile(r"^\s*export\s+default\s+(?!function|class|async)", re.MULTILINE)

_RELATIVE_MARKERS: tuple[str, ...] = (".", "/")


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------


def extract_imports(content: str) -> list[str]:
    """Module references in *content*, in order of first appearance."""
    refs: list[str] = []
    seen: set[str] = set()
    for pattern in (_FROM_RE, _BARE_IMPORT_RE, _CALL_IMPORT_RE, _CSS_IMPORT_RE):
        for m in pattern.finditer(content):
            ref = m.group(1).strip()
            if ref and ref not in seen:
                seen.add(ref)
                refs.append(ref)
    return refs


def is_internal(ref: str) -> bool:
    """Relative or absolute-path references are internal; everything else is a package."""
    return ref.startswith(_RELATIVE_MARKERS)


def extract_exports(content: str) -> list[str]:
    names = [m.group(1) for m in _EXPORT_RE.finditer(content)]
    if _EXPORT_DEFAULT_ANON_RE.search(content):
        names.append("default")
    return list(dict.fromkeys(names))


def _references_target(imports: list[str], fragment: str, stem: str) -> bool:
    """Textual reverse-dependency test for one file's import list."""
    for ref in imports:
        if not is_internal(ref):
            continue
        cleaned = strip_source_extension(ref)
        if cleaned.endswith(fragment):
            return True
        # './App' from a sibling, '../App' from a child directory
        if PurePosixPath(cleaned).name == stem:
            return True
    return False


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_codebase(files: Sequence[ProjectFile], fault: Fault) -> CodebaseContext:
    """Build the advisory ``CodebaseContext`` for *fault* over *files*."""
    error_file = extract_file_path(fault.raw_message) or fault.file

    target = normalise_path(error_file) if error_file else ""
    fragment = strip_source_extension(target) if target else ""
    stem = PurePosixPath(fragment).name if fragment else ""

    affected: list[str] = []
    related: list[str] = []
    dependencies: set[str] = set()
    imports: dict[str, list[str]] = {}
    exports: dict[str, list[str]] = {}

    for f in files:
        refs = extract_imports(f.content)
        if refs:
            imports[f.path] = refs
        for ref in refs:
            if not is_internal(ref):
                dependencies.add(ref)

        names = extract_exports(f.content)
        if names:
            exports[f.path] = names

        if not target:
            continue

        if target in normalise_path(f.path):
            affected.append(f.path)
            continue

        if fragment in f.content or _references_target(refs, fragment, stem):
            related.append(f.path)

    return CodebaseContext(
        total_files=len(files),
        error_file=error_file,
        affected_files=affected,
        related_files=related,
        dependencies=sorted(dependencies),
        imports=imports,
        exports=exports,
    )


def summarise_context(context: CodebaseContext, *, max_items: int = 20) -> str:
    """Short multi-line digest of *context* for prompt embedding."""

    def _join(items: list[str]) -> str:
        if not items:
            return "(none)"
        shown = items[:max_items]
        more = len(items) - len(shown)
        return ", ".join(shown) + (f" (+{more} more)" if more > 0 else "")

    return "\n".join([
        f"- Total Files: {context.total_files}",
        f"- Error File: {context.error_file or '(unknown)'}",
        f"- Affected Files: {_join(context.affected_files)}",
        f"- Related Files: {_join(context.related_files)}",
        f"- Dependencies: {_join(context.dependencies)}",
    ])


__all__ = [
    "analyze_codebase",
    "extract_exports",
    "extract_imports",
    "is_internal",
    "summarise_context",
]
