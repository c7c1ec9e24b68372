"""Oracle protocol and the cancellable stream accumulator.

An oracle is anything with an async ``stream(request)`` method yielding
text chunks.  ``collect`` drains that stream into one string while
watching the session's abort token: if the token fires first, the
stream task is cancelled and ``RepairAborted`` is raised.  Any error the
stream raises is wrapped in ``OracleError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from autofix.cancellation import AbortToken
from autofix.contracts import OracleRequest
from autofix.errors import OracleError, RepairAborted

logger = logging.getLogger(__name__)


@runtime_checkable
class Oracle(Protocol):
    """External code-generation service (provider-agnostic)."""

    def stream(self, request: OracleRequest) -> AsyncIterator[str]: ...


async def collect(oracle: Oracle, request: OracleRequest, token: AbortToken) -> str:
    """Accumulate the oracle's chunk stream for *request*, honouring *token*."""
    token.raise_if_aborted()

    chunks: list[str] = []

    async def _drain() -> None:
        async for chunk in oracle.stream(request):
            if chunk:
                chunks.append(chunk)

    stream_task = asyncio.ensure_future(_drain())
    abort_task = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({stream_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        stream_task.cancel()
        abort_task.cancel()
        raise

    if not stream_task.done():
        stream_task.cancel()
        try:
            await stream_task
        except asyncio.CancelledError:
            pass
        except Exception:  # noqa: BLE001 - the abort outcome wins
            logger.debug("Oracle stream raised while being cancelled", exc_info=True)
        logger.info("Oracle %s call cancelled after %d chunks", request.purpose, len(chunks))
        raise RepairAborted(token.reason)

    abort_task.cancel()

    exc = stream_task.exception() if not stream_task.cancelled() else asyncio.CancelledError()
    if isinstance(exc, asyncio.CancelledError):
        raise OracleError(request.purpose, "stream cancelled")
    if exc is not None:
        raise OracleError(request.purpose, exc) from exc

    if token.aborted:
        raise RepairAborted(token.reason)
    return "".join(chunks)


__all__ = ["Oracle", "collect"]
