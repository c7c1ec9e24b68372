"""LLM client -- multi-provider streaming chat wrapper (Anthropic + OpenAI).

Both providers are consumed as Server-Sent Events and exposed as async
generators of text deltas, which is exactly the shape the repair oracle
protocol expects.  Closing the generator (e.g. when a repair is aborted)
closes the underlying HTTP stream.
"""

import json as _json
import logging
from collections.abc import AsyncIterator

import httpx

from app.config import settings

logger = logging.getLogger(__name__)

# ── Shared HTTP client (connection pooling) ─────────────────────────────────

_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    """Return (or create) the shared httpx client for LLM API calls."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_S)
    return _client


async def close_client() -> None:
    """Close the shared LLM HTTP client.  Called during app shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def _raise_for_status(response: httpx.Response, provider: str) -> None:
    """Read an error body off a streamed response and raise ``ValueError``."""
    error_body = await response.aread()
    try:
        err_data = _json.loads(error_body)
        err_msg = err_data.get("error", {}).get("message", error_body.decode())
    except Exception:
        err_msg = error_body.decode(errors="replace")
    raise ValueError(f"{provider} API {response.status_code}: {err_msg}")


def _sse_payloads(line: str) -> dict | None:
    """Decode one ``data: {...}`` SSE line; ``None`` for anything else."""
    if not line.startswith("data: "):
        return None
    payload = line[6:].strip()
    if not payload or payload == "[DONE]":
        return None
    try:
        return _json.loads(payload)
    except ValueError:
        logger.debug("Skipping malformed SSE payload: %.120s", payload)
        return None


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_API_VERSION = "2023-06-01"


def _anthropic_headers(api_key: str) -> dict:
    """Return standard Anthropic API headers."""
    return {
        "x-api-key": api_key,
        "anthropic-version": ANTHROPIC_API_VERSION,
        "Content-Type": "application/json",
    }


async def stream_anthropic(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 16_384,
) -> AsyncIterator[str]:
    """Stream a Messages API call, yielding each ``text_delta`` as it arrives."""
    body: dict = {
        "model": model,
        "max_tokens": max_tokens,
        "system": system_prompt,
        "messages": messages,
        "stream": True,
    }

    client = _get_client()
    async with client.stream(
        "POST",
        ANTHROPIC_MESSAGES_URL,
        headers=_anthropic_headers(api_key),
        json=body,
    ) as response:
        if response.status_code >= 400:
            await _raise_for_status(response, "Anthropic")

        async for raw_line in response.aiter_lines():
            data = _sse_payloads(raw_line)
            if data is None:
                continue
            event_type = data.get("type", "")

            if event_type == "content_block_delta":
                delta = data.get("delta", {})
                if delta.get("type") == "text_delta":
                    yield delta.get("text", "")

            elif event_type == "message_delta":
                stop_reason = data.get("delta", {}).get("stop_reason")
                if stop_reason == "max_tokens":
                    logger.warning("Anthropic response truncated at max_tokens=%d", max_tokens)

            elif event_type == "error":
                err = data.get("error", {})
                raise ValueError(f"Anthropic API stream error: {err.get('message', err)}")


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


def _openai_headers(api_key: str) -> dict:
    """Return standard OpenAI API headers."""
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


async def stream_openai(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 16_384,
) -> AsyncIterator[str]:
    """Stream a Chat Completions call, yielding each content delta."""
    oai_messages = [{"role": "system", "content": system_prompt}]
    oai_messages.extend(messages)

    body: dict = {
        "model": model,
        "messages": oai_messages,
        "stream": True,
        # Newer OpenAI models reject max_tokens in favour of this.
        "max_completion_tokens": max_tokens,
    }

    client = _get_client()
    async with client.stream(
        "POST",
        OPENAI_CHAT_URL,
        headers=_openai_headers(api_key),
        json=body,
    ) as response:
        if response.status_code >= 400:
            await _raise_for_status(response, "OpenAI")

        async for raw_line in response.aiter_lines():
            data = _sse_payloads(raw_line)
            if data is None:
                continue
            for choice in data.get("choices", []):
                content = (choice.get("delta") or {}).get("content")
                if content:
                    yield content


# ---------------------------------------------------------------------------
# Unified entry point
# ---------------------------------------------------------------------------


async def stream_chat(
    api_key: str,
    model: str,
    system_prompt: str,
    messages: list[dict],
    max_tokens: int = 16_384,
    provider: str = "anthropic",
) -> AsyncIterator[str]:
    """Stream a chat request from the configured LLM provider.

    Parameters
    ----------
    api_key : str
        API key for the chosen provider.
    model : str
        Model identifier.
    system_prompt : str
        System-level instructions for the model.
    messages : list[dict]
        Conversation history as ``[{"role": "user"|"assistant", "content": str}]``.
    max_tokens : int
        Maximum tokens in the response.
    provider : str
        ``"openai"`` or ``"anthropic"`` (default).

    Yields
    ------
    str
        Text deltas in arrival order.
    """
    if not api_key:
        raise ValueError(f"No API key configured for provider '{provider}'")
    if provider == "openai":
        source = stream_openai(api_key, model, system_prompt, messages, max_tokens)
    else:
        source = stream_anthropic(api_key, model, system_prompt, messages, max_tokens)
    try:
        async for chunk in source:
            yield chunk
    finally:
        await source.aclose()
