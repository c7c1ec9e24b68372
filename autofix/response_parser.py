"""Oracle response parsers — structured-first, delimiter fallback.

The oracle is asked for JSON but answers with whatever it likes: fenced
JSON, JSON wrapped in prose, or plain file listings.  Parsing is an
ordered chain of strategies; each returns a result or ``None`` to hand
over to the next one.  When the whole chain comes up empty a
``ResponseParseError`` carrying a preview of the raw text is raised.

Strategies for the implementation stage (in order):

1. ``json_files``   — a JSON object with a ``files`` mapping.
2. ``file_blocks``  — ``=== path ===`` delimited blocks.
3. ``file_markers`` — ``FILE: path`` / ``CONTENT:`` blocks.

All functions are pure string processors — no I/O, no side effects.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from autofix.contracts import FaultLocation, FixProposal, RootCauseAnalysis
from autofix.errors import ResponseParseError

logger = logging.getLogger(__name__)

DEFAULT_EXPLANATION = "Applied fixes based on deep reasoning and codebase analysis"

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z0-9_+-]*\s*$")
_FENCE_CLOSE_RE = re.compile(r"^```\s*$")
_FENCE_LINE_RE = re.compile(r"^```[\w+-]*\s*$", re.MULTILINE)

_EQ_BLOCK_RE = re.compile(r"^===\s*(.+?)\s*===[ \t]*$", re.MULTILINE)
_FILE_MARKER_RE = re.compile(r"^FILE:\s*(.+?)\s*$", re.MULTILINE)
_CONTENT_MARKER_RE = re.compile(r"^CONTENT:\s*\n", re.MULTILINE)

_ARTIFACT_RE = re.compile(r"<ctrl\d+>|<end>|<start>")
_SEPARATOR_LINE_RE = re.compile(r"^-{3,}\s*$", re.MULTILINE)

_STRATEGY_ALIASES: dict[str, str] = {
    "quickpatch": "quick_patch",
    "quick_patch": "quick_patch",
    "quick": "quick_patch",
    "properfix": "proper_fix",
    "proper_fix": "proper_fix",
    "proper": "proper_fix",
    "refactor": "refactor",
}


# ---------------------------------------------------------------------------
# Text cleanup
# ---------------------------------------------------------------------------


def strip_fences(text: str) -> str:
    """Remove the outermost markdown code fence pair from *text*.

    Text before the opening fence and after the closing fence is kept.
    Returns *text* unchanged when no complete fence pair exists.
    """
    if not text:
        return text

    lines = text.split("\n")
    open_idx = next(
        (i for i, line in enumerate(lines) if _FENCE_OPEN_RE.match(line.strip())),
        None,
    )
    if open_idx is None:
        return text

    close_idx = next(
        (i for i in range(len(lines) - 1, open_idx, -1) if _FENCE_CLOSE_RE.match(lines[i].strip())),
        None,
    )
    if close_idx is None:
        return text

    return "\n".join(lines[:open_idx] + lines[open_idx + 1 : close_idx] + lines[close_idx + 1 :])


def clean_content(content: str) -> str:
    """Strip fences, model control artefacts and separator lines from a file body."""
    content = _FENCE_LINE_RE.sub("", content)
    content = _ARTIFACT_RE.sub("", content)
    content = _SEPARATOR_LINE_RE.sub("", content)
    return content.strip()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Find a JSON object embedded in *text*.

    Tries the widest ``{ ... }`` span first, then decodes from each
    ``{`` in turn so trailing prose containing braces does not spoil it.
    """
    if not text:
        return None
    body = strip_fences(text.strip())

    first = body.find("{")
    last = body.rfind("}")
    if first == -1 or last <= first:
        return None

    try:
        parsed = json.loads(body[first : last + 1])
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    pos = first
    while pos != -1:
        try:
            parsed, _ = decoder.raw_decode(body, pos)
        except json.JSONDecodeError:
            pos = body.find("{", pos + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        pos = body.find("{", pos + 1)
    return None


# ---------------------------------------------------------------------------
# Implementation-stage strategies
# ---------------------------------------------------------------------------

FixStrategyParser = Callable[[str], "FixProposal | None"]


def parse_json_files(raw: str) -> FixProposal | None:
    data = extract_json_object(raw)
    if not data:
        return None
    files = data.get("files")
    if not isinstance(files, dict) or not files:
        return None
    cleaned = {str(p).strip(): c for p, c in files.items() if isinstance(c, str) and str(p).strip()}
    if not cleaned:
        return None
    explanation = data.get("explanation")
    return FixProposal(
        explanation=explanation if isinstance(explanation, str) and explanation else DEFAULT_EXPLANATION,
        files=cleaned,
        strategy="json_files",
    )


def _split_blocks(raw: str, header_re: re.Pattern[str]) -> dict[str, str]:
    headers = list(header_re.finditer(raw))
    files: dict[str, str] = {}
    for i, m in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(raw)
        path = m.group(1).strip()
        body = raw[m.end() : end]
        if not path or path.upper().startswith("END"):
            continue
        files[path] = body
    return files


def parse_file_blocks(raw: str) -> FixProposal | None:
    blocks = _split_blocks(raw, _EQ_BLOCK_RE)
    files = {p: clean_content(b) for p, b in blocks.items()}
    files = {p: c for p, c in files.items() if c}
    if not files:
        return None
    return FixProposal(explanation=DEFAULT_EXPLANATION, files=files, strategy="file_blocks")


def parse_file_markers(raw: str) -> FixProposal | None:
    blocks = _split_blocks(raw, _FILE_MARKER_RE)
    files: dict[str, str] = {}
    for path, body in blocks.items():
        body = _CONTENT_MARKER_RE.sub("", body.lstrip("\n"), count=1)
        content = clean_content(body)
        if content:
            files[path] = content
    if not files:
        return None
    return FixProposal(explanation=DEFAULT_EXPLANATION, files=files, strategy="file_markers")


DEFAULT_FIX_STRATEGIES: tuple[FixStrategyParser, ...] = (
    parse_json_files,
    parse_file_blocks,
    parse_file_markers,
)


def parse_fix_response(
    raw: str,
    strategies: Sequence[FixStrategyParser] = DEFAULT_FIX_STRATEGIES,
) -> FixProposal:
    """Run the strategy chain over *raw*; raise when nothing yields files."""
    for strategy in strategies:
        proposal = strategy(raw)
        if proposal is not None:
            if strategy is not strategies[0]:
                logger.info("Fix response parsed by fallback strategy '%s'", proposal.strategy)
            return proposal
    raise ResponseParseError(raw, "fix_response", "no JSON files map and no file-block markers")


# ---------------------------------------------------------------------------
# Analysis stage
# ---------------------------------------------------------------------------


def _normalise_strategy(value: Any) -> str:
    key = re.sub(r"[\s\-]", "", str(value or "")).lower()
    return _STRATEGY_ALIASES.get(key, _STRATEGY_ALIASES.get(key.replace("_", ""), "proper_fix"))


def _coerce_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_analysis(raw: str) -> RootCauseAnalysis:
    """Parse the root-cause analysis record.

    Accepts the nested ``{"errorAnalysis": {...}, "confidence": {...}}``
    layout as well as a flat record with the same field names.
    """
    data = extract_json_object(raw)
    if data is None:
        raise ResponseParseError(raw, "analysis", "no JSON object found")

    analysis = data.get("errorAnalysis") if isinstance(data.get("errorAnalysis"), dict) else data
    ident = analysis.get("identification") or {}
    root = analysis.get("rootCause") or {}
    strategy = analysis.get("fixStrategy") or {}
    impl = analysis.get("implementation") or {}
    if not isinstance(ident, dict) or not isinstance(root, dict):
        raise ResponseParseError(raw, "analysis", "identification/rootCause must be objects")
    if not isinstance(strategy, dict):
        strategy = {"selected": strategy}
    if not isinstance(impl, dict):
        impl = {}

    if not (ident or root or strategy):
        raise ResponseParseError(raw, "analysis", "missing errorAnalysis structure")

    loc = ident.get("location") if isinstance(ident.get("location"), dict) else {}

    files_to_modify: list[str] = []
    targets = impl.get("filesToModify")
    for entry in targets if isinstance(targets, list) else []:
        if isinstance(entry, dict) and entry.get("path"):
            files_to_modify.append(str(entry["path"]))
        elif isinstance(entry, str):
            files_to_modify.append(entry)

    why_chain = root.get("whyChain") or []
    if isinstance(why_chain, str):
        why_chain = [why_chain]
    elif not isinstance(why_chain, list):
        why_chain = []

    confidence = None
    conf = data.get("confidence")
    if isinstance(conf, dict):
        conf = conf.get("rootCauseIdentification", conf.get("overall"))
    if isinstance(conf, (int, float)) and not isinstance(conf, bool) and 0.0 <= conf <= 1.0:
        confidence = float(conf)

    try:
        return RootCauseAnalysis(
            error_type=str(ident.get("errorType") or "unknown"),
            location=FaultLocation(
                file=loc.get("file"),
                line=_coerce_int(loc.get("line")),
                function=loc.get("function"),
            ),
            symptom=str(root.get("symptom") or ""),
            why_chain=[str(w) for w in why_chain if w],
            fundamental_issue=str(root.get("fundamentalIssue") or ""),
            strategy=_normalise_strategy(strategy.get("selected")),
            strategy_reasoning=str(strategy.get("reasoning") or ""),
            files_to_modify=files_to_modify,
            confidence=confidence,
            raw=data,
        )
    except ValidationError as exc:
        raise ResponseParseError(raw, "analysis", str(exc)) from exc


__all__ = [
    "DEFAULT_EXPLANATION",
    "DEFAULT_FIX_STRATEGIES",
    "clean_content",
    "extract_json_object",
    "parse_analysis",
    "parse_file_blocks",
    "parse_file_markers",
    "parse_fix_response",
    "parse_json_files",
    "strip_fences",
]
