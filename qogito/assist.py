"""Editing assistance outside the chat loop: inline infill and text transforms."""

import asyncio

from qogito.exceptions import LLMError, NotConnectedError
from qogito.llm import LlamaCppClient
from qogito.llm.types import SystemMessage, UserMessage
from qogito.logging import get_logger

log = get_logger(__name__)

PREFIX_MAX_CHARS = 4000
SUFFIX_MAX_CHARS = 1000

TRANSFORM_SYSTEM_PROMPT = (
    "You are a code editor assistant. Transform the provided text according "
    "to the instruction. Respond with ONLY the transformed text: no "
    "explanations, no markdown code fences, no commentary."
)


def split_around_offset(text: str, offset: int) -> tuple[str, str]:
    """Return the bounded prefix and suffix around a cursor offset."""
    offset = max(0, min(offset, len(text)))
    prefix = text[max(0, offset - PREFIX_MAX_CHARS) : offset]
    suffix = text[offset : offset + SUFFIX_MAX_CHARS]
    return prefix, suffix


async def suggest_completion(
    client: LlamaCppClient,
    completion_url: str,
    text: str,
    offset: int,
    abort_event: asyncio.Event | None = None,
) -> str:
    """Ask the completion server for text to insert at offset.

    Returns an empty string when no completion server is configured or the
    request did not succeed.
    """
    if not completion_url:
        return ""
    prefix, suffix = split_around_offset(text, offset)
    try:
        return await client.infill(completion_url, prefix, suffix, abort_event)
    except LLMError as e:
        log.info("Infill request failed", url=completion_url, error=str(e))
        return ""


async def transform_text(
    client: LlamaCppClient,
    text: str,
    instruction: str,
    abort_event: asyncio.Event | None = None,
) -> str:
    """Rewrite text according to an instruction using the chat model."""
    if not client.is_connected:
        raise NotConnectedError()

    messages = [
        SystemMessage(content=TRANSFORM_SYSTEM_PROMPT),
        UserMessage(content=f"Text:\n{text}\n\nInstruction: {instruction}"),
    ]
    parts: list[str] = []
    await client.complete(messages, [], parts.append, abort_event)
    return "".join(parts)
