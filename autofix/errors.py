"""Repair engine error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for serialisation into a ``failed`` stage update,
and has a readable ``__str__`` for logging.
"""

from __future__ import annotations

# Characters of raw oracle output kept for diagnostics on parse failure
RAW_PREVIEW_CHARS = 500


class AutofixError(Exception):
    """Base error for all repair engine failures."""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class OracleError(AutofixError):
    """The code-generation oracle failed (network, non-2xx, broken stream)."""

    def __init__(self, stage: str, cause: BaseException | str) -> None:
        self.stage = stage
        self.cause = cause
        raw = str(cause) or type(cause).__name__
        super().__init__(
            f"Oracle call failed during {stage}: {raw}",
            detail={"stage": stage, "cause": raw},
        )


class ResponseParseError(AutofixError):
    """Oracle output could not be parsed by any strategy."""

    def __init__(self, raw_output: str, parser_name: str, reason: str = "") -> None:
        self.raw_output = raw_output
        self.parser_name = parser_name
        self.reason = reason
        self.raw_preview = raw_output[:RAW_PREVIEW_CHARS]
        msg = f"Parser '{parser_name}' failed to parse oracle output ({len(raw_output)} chars)"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            detail={
                "parser_name": parser_name,
                "raw_output_length": len(raw_output),
                "raw_preview": self.raw_preview,
            },
        )


class RepairAborted(AutofixError):
    """The session's abort token fired.  Not a failure."""

    def __init__(self, reason: str = "user") -> None:
        self.reason = reason
        super().__init__(f"Repair aborted ({reason})", detail={"reason": reason})


__all__ = [
    "AutofixError",
    "OracleError",
    "RAW_PREVIEW_CHARS",
    "RepairAborted",
    "ResponseParseError",
]
