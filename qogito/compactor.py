"""Context compaction: replace a near-full history with a model-written summary."""

import asyncio
from typing import Callable

from qogito.exceptions import QogitoError
from qogito.history import Conversation, DisplayEntry
from qogito.llm import LlamaCppClient
from qogito.llm.types import UserMessage
from qogito.logging import get_logger

log = get_logger(__name__)

COMPACTION_INSTRUCTION = (
    "The conversation context is almost full. Please write a complete, dense "
    "summary of everything discussed: goals, decisions, code written, files "
    "changed, and any other context needed to continue seamlessly. Be "
    "comprehensive."
)
COMPACTION_FAILED = "[Compaction failed]"


class ContextCompactor:
    """Summarizes a conversation through the chat endpoint."""

    def __init__(
        self,
        client: LlamaCppClient,
        on_entry: Callable[[DisplayEntry], None] | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ):
        self.client = client
        self.on_entry = on_entry
        self.on_chunk = on_chunk

    async def compact(self, conversation: Conversation, abort_event: asyncio.Event | None = None) -> bool:
        """Summarize and replace both histories.

        Returns:
            True when the histories were replaced. On failure, or when the
            model returned nothing, the histories are left as they were.
        """
        request = list(conversation.messages) + [UserMessage(content=COMPACTION_INSTRUCTION)]
        entry = conversation.add_entry("compaction")
        if self.on_entry:
            self.on_entry(entry)

        parts: list[str] = []

        def collect(chunk: str) -> None:
            parts.append(chunk)
            entry.content += chunk
            if self.on_chunk:
                self.on_chunk(chunk)

        log.info(
            "Compacting context",
            messages=len(conversation.messages),
            tokens=self.client.budget.last_total_tokens,
            n_ctx=self.client.budget.context_size,
        )
        try:
            await self.client.complete(request, [], collect, abort_event)
        except QogitoError as e:
            log.warning("Compaction failed", error=str(e))
            entry.content = COMPACTION_FAILED
            entry.failed = True
            if self.on_entry:
                self.on_entry(entry)
            return False

        summary = "".join(parts)
        if not summary:
            log.info("Compaction produced no summary")
            return False

        conversation.replace_with_summary(summary)
        self.client.budget.reset()
        log.info("Context compacted", summary_chars=len(summary))
        return True
