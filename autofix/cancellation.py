"""Cancellation channel — a per-session abort token.

The token is a thin wrapper over ``asyncio.Event``.  Stages poll it with
``raise_if_aborted()`` between steps; long waits (the oracle stream)
race against ``wait()`` so an abort interrupts them immediately.
"""

from __future__ import annotations

import asyncio

from autofix.errors import RepairAborted


class AbortToken:
    """One-shot abort signal shared by a session and its in-flight calls."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    def abort(self, reason: str = "user") -> None:
        """Fire the token.  Repeated calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise RepairAborted(self._reason)


__all__ = ["AbortToken"]
