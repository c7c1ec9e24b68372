"""Build event observer — reduce heterogeneous sandbox events to one fault type.

The sandbox pushes records of many shapes: compiler diagnostics, bundler
notifications, forwarded console output, and a terminal "done" event.
``BuildEventObserver.observe`` maps each of them to a ``Fault``, a
``BuildSucceeded`` signal, or ``None``.

Two input dialects are accepted:

- the neutral record shape::

      {"kind": "diagnostic", "message": ..., "file": ..., "line": ..., "column": ...}
      {"kind": "notification", "level": "error", "message": ...}
      {"kind": "console", "level": "error", "message": ...}
      {"kind": "done", "failed": bool}

- the in-browser bundler's native messages::

      {"type": "action", "action": "show-error", "message": ..., "path": ..., "line": ...}
      {"type": "action", "action": "notification", "notificationType": "error", "title": ...}
      {"type": "console", "codesandbox": true, "log": [{"method": "error", "data": [...]}]}
      {"type": "done", "compilatonError": bool}

The observer never mutates files and never calls the oracle.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from autofix.contracts import BuildSucceeded, Fault, FaultKind
from autofix.locate import extract_position

logger = logging.getLogger(__name__)

# Console text must contain one of these to count as a fault
_CONSOLE_ERROR_KEYWORDS: tuple[str, ...] = ("Error", "Syntax", "Warning")

_CONSOLE_LEVELS = frozenset({"error", "warn"})

_MODULE_NOT_FOUND_RE = re.compile(
    r"Module not found|Cannot find module|Cannot find package|ERR_MODULE_NOT_FOUND"
    r"|Could not find dependency|Failed to resolve import",
    re.IGNORECASE,
)

_DONE_FAILED_MESSAGE = "Build completed with compilation errors"


class BuildEventObserver:
    """Stateless translator from raw sandbox events to fault signals."""

    def observe(self, event: Mapping[str, Any], now: float) -> Fault | BuildSucceeded | None:
        """Classify one event.

        Returns ``None`` for events that are neither a fault nor a
        clean build (state pings, benign logs, unknown shapes).
        """
        if not isinstance(event, Mapping):
            return None

        kind = str(event.get("kind") or event.get("type") or "")

        if kind == "done":
            return self._from_done(event, now)
        if kind in ("diagnostic", "compile_error"):
            return self._from_diagnostic(event, now)
        if kind == "action":
            action = event.get("action")
            if action == "show-error":
                return self._from_diagnostic(event, now)
            if action == "notification":
                return self._from_notification(event, now)
            return None
        if kind == "notification":
            return self._from_notification(event, now)
        if kind == "console":
            return self._from_console(event, now)
        return None

    # ── source categories ────────────────────────────────────────────

    def _from_done(self, event: Mapping[str, Any], now: float) -> Fault | BuildSucceeded:
        failed = event.get("failed")
        if failed is None:
            failed = event.get("compilatonError")
        if failed is None:
            failed = event.get("compilationError")
        if failed is True:
            return Fault(
                kind=FaultKind.BUILD_FAILURE,
                raw_message=str(event.get("message") or _DONE_FAILED_MESSAGE),
                detected_at=now,
            )
        return BuildSucceeded(observed_at=now)

    def _from_diagnostic(self, event: Mapping[str, Any], now: float) -> Fault:
        message = str(event.get("message") or event.get("title") or "Compilation failed")
        file = event.get("file") or event.get("path")
        line = _as_int(event.get("line"))
        column = _as_int(event.get("column"))

        raw = message
        if line is not None:
            raw += f"\nLine: {line}"
            if column is not None:
                raw += f", Column: {column}"
        if file:
            raw += f"\nFile: {file}"

        kind = FaultKind.COMPILATION_ERROR
        if _MODULE_NOT_FOUND_RE.search(message):
            kind = FaultKind.MODULE_NOT_FOUND
        return _build_fault(kind, raw, now, file=file, line=line, column=column)

    def _from_notification(self, event: Mapping[str, Any], now: float) -> Fault | None:
        level = event.get("level") or event.get("notificationType")
        if level != "error":
            return None
        message = str(event.get("message") or event.get("title") or "Build notification error")
        kind = FaultKind.BUILD_FAILURE
        if _MODULE_NOT_FOUND_RE.search(message):
            kind = FaultKind.MODULE_NOT_FOUND
        return _build_fault(kind, message, now)

    def _from_console(self, event: Mapping[str, Any], now: float) -> Fault | None:
        if "log" in event:
            logs = event["log"]
            if not isinstance(logs, list):
                logs = [logs]
            parts: list[str] = []
            for entry in logs:
                if not isinstance(entry, Mapping) or entry.get("method") not in _CONSOLE_LEVELS:
                    continue
                data = entry.get("data") or []
                if not isinstance(data, list):
                    data = [data]
                parts.append(" ".join(str(d) for d in data))
            message = "\n".join(parts)
        else:
            if event.get("level") not in _CONSOLE_LEVELS:
                return None
            message = str(event.get("message") or "")

        if not message or not any(k in message for k in _CONSOLE_ERROR_KEYWORDS):
            if message:
                logger.debug("Console output without error keywords ignored: %.80s", message)
            return None

        kind = FaultKind.RUNTIME_ERROR
        if _MODULE_NOT_FOUND_RE.search(message):
            kind = FaultKind.MODULE_NOT_FOUND
        return _build_fault(kind, message, now)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n >= 0 else None


def _build_fault(
    kind: FaultKind,
    raw: str,
    now: float,
    *,
    file: Any = None,
    line: int | None = None,
    column: int | None = None,
) -> Fault:
    """Fill any missing location fields from the raw text."""
    found_file, found_line, found_column = extract_position(raw)
    return Fault(
        kind=kind,
        raw_message=raw,
        file=str(file) if file else found_file,
        line=line if line is not None else found_line,
        column=column if column is not None else found_column,
        detected_at=now,
    )


__all__ = ["BuildEventObserver"]
