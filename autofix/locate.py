"""Source-location heuristics — pull file paths and line numbers out of text.

Bundler and runtime messages rarely agree on a format, so these are
regex heuristics, not parsers.  A miss returns ``None``; callers must
treat every result as advisory.
"""

from __future__ import annotations

import re

SOURCE_EXTENSIONS: tuple[str, ...] = (
    "tsx", "ts", "jsx", "js", "mjs", "cjs", "css", "scss", "json", "html", "vue", "svelte",
)

_EXT_ALT = "|".join(SOURCE_EXTENSIONS)

# A path-like token ending in a known source extension, e.g. ``/src/App.tsx``
# or ``components/Button.jsx``.  Must not be glued to a preceding word char.
_PATH_RE = re.compile(
    rf"(?<![\w@.\-/])(/?(?:[\w@.\-]+/)*[\w@\-][\w@.\-]*\.(?:{_EXT_ALT}))(?![\w\-])",
)

# ``App.tsx:12:5`` / ``App.tsx (12:5)`` / ``App.tsx(12,5)``
_INLINE_POS_RE = re.compile(r"^\s*(?::|\s*\()\s*(\d+)(?:[:,]\s*(\d+))?")
_LINE_WORD_RE = re.compile(r"\bline[:\s]+(\d+)", re.IGNORECASE)
_COLUMN_WORD_RE = re.compile(r"\b(?:column|col)[:\s]+(\d+)", re.IGNORECASE)

# ``import ... from '...'`` fragments should not be mistaken for error paths
_URL_PREFIX_RE = re.compile(r"https?://\S*$")


def extract_file_path(text: str) -> str | None:
    """Return the first source-file path mentioned in *text*, or ``None``."""
    if not text:
        return None
    for m in _PATH_RE.finditer(text):
        if _URL_PREFIX_RE.search(text[: m.start()]):
            continue
        return m.group(1)
    return None


def extract_position(text: str) -> tuple[str | None, int | None, int | None]:
    """Best-effort ``(file, line, column)`` extraction from *text*.

    Inline positions right after the path win over ``Line: N`` phrases.
    """
    if not text:
        return None, None, None

    path: str | None = None
    line: int | None = None
    column: int | None = None

    for m in _PATH_RE.finditer(text):
        if _URL_PREFIX_RE.search(text[: m.start()]):
            continue
        path = m.group(1)
        pos = _INLINE_POS_RE.match(text[m.end():])
        if pos:
            line = int(pos.group(1))
            if pos.group(2):
                column = int(pos.group(2))
        break

    if line is None:
        lm = _LINE_WORD_RE.search(text)
        if lm:
            line = int(lm.group(1))
    if column is None:
        cm = _COLUMN_WORD_RE.search(text)
        if cm:
            column = int(cm.group(1))

    return path, line, column


def strip_source_extension(path: str) -> str:
    """``/src/App.tsx`` → ``src/App`` (the form an importer would spell)."""
    trimmed = path.lstrip("/")
    return re.sub(r"\.(?:tsx?|jsx?|mjs|cjs)$", "", trimmed)


def normalise_path(path: str) -> str:
    """Canonical comparison form: forward slashes, no leading ``./`` or ``/``."""
    p = path.replace("\\", "/").strip()
    while p.startswith("./"):
        p = p[2:]
    return p.lstrip("/")


__all__ = [
    "SOURCE_EXTENSIONS",
    "extract_file_path",
    "extract_position",
    "normalise_path",
    "strip_source_extension",
]
