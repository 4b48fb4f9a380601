"""Conversation state: the display transcript and the canonical message list."""

from dataclasses import dataclass, field
from typing import Literal

from qogito.llm.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
)

DisplayRole = Literal["user", "assistant", "tool_call", "tool", "compaction"]

SUMMARY_PREFIX = "Summary of the conversation so far:\n\n"


@dataclass
class DisplayEntry:
    """One line of the user-visible transcript."""

    role: DisplayRole
    content: str
    error: str | None = None
    failed: bool = False


@dataclass
class Conversation:
    """Both histories of one chat.

    ``transcript`` is what the user sees; ``messages`` is what the server
    receives. They are separate lists and are never derived from each other.
    """

    transcript: list[DisplayEntry] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)

    def ensure_system_prompt(self, prompt: str) -> None:
        """Make the first canonical message the given system prompt."""
        system = SystemMessage(content=prompt)
        if self.messages and isinstance(self.messages[0], SystemMessage):
            self.messages[0] = system
        else:
            self.messages.insert(0, system)

    def add_entry(self, role: DisplayRole, content: str = "") -> DisplayEntry:
        entry = DisplayEntry(role=role, content=content)
        self.transcript.append(entry)
        return entry

    def add_user_message(self, text: str) -> DisplayEntry:
        self.messages.append(UserMessage(content=text))
        return self.add_entry("user", text)

    def add_assistant_message(self, content: str | None, tool_calls: list[ToolCall] | None = None) -> None:
        self.messages.append(AssistantMessage(content=content, tool_calls=list(tool_calls or [])))

    def add_tool_result(self, tool_call_id: str, result: str) -> DisplayEntry:
        self.messages.append(ToolMessage(tool_call_id=tool_call_id, content=result))
        return self.add_entry("tool", result)

    @property
    def last_entry(self) -> DisplayEntry | None:
        return self.transcript[-1] if self.transcript else None

    def drop_last_entry(self) -> None:
        if self.transcript:
            self.transcript.pop()

    def annotate_error(self, message: str) -> None:
        """Attach an error to the most recent transcript entry."""
        entry = self.last_entry
        if entry is None:
            entry = self.add_entry("assistant")
        entry.error = message

    def replace_with_summary(self, summary: str) -> None:
        """Collapse both histories into a single compaction summary."""
        self.transcript = [DisplayEntry(role="compaction", content=summary)]
        self.messages = [SystemMessage(content=SUMMARY_PREFIX + summary)]

    def clear(self) -> None:
        self.transcript.clear()
        self.messages.clear()
