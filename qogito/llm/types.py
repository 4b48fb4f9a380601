"""Protocol data types shared by the client, the agent and the tools."""

import math
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: str  # JSON-encoded object, validated by the executor

    def to_api(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class SystemMessage:
    content: str
    role: str = field(default="system", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class UserMessage:
    content: str
    role: str = field(default="user", init=False)

    def to_api(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class AssistantMessage:
    """Assistant turn; content is None when the turn only produced tool calls."""

    content: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    role: str = field(default="assistant", init=False)

    def to_api(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_api() for call in self.tool_calls]
        return payload


@dataclass
class ToolMessage:
    tool_call_id: str
    content: str
    role: str = field(default="tool", init=False)

    def to_api(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "tool_call_id": self.tool_call_id,
            "content": self.content,
        }


Message = SystemMessage | UserMessage | AssistantMessage | ToolMessage


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema

    def to_api(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class Done:
    """The model finished its turn; all text was delivered through on_chunk."""


@dataclass(frozen=True)
class ToolCalls:
    """The model wants the listed tools executed, in this order."""

    calls: list[ToolCall]


Outcome = Done | ToolCalls


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the active server connection; replaced as a whole."""

    base_url: str = ""
    model_id: str = ""
    display_name: str = ""
    context_size: int = 0
    connected: bool = False


@dataclass
class TokenBudget:
    """Best known token usage of the conversation.

    ``context_size`` of 0 means the server did not report one, which disables
    threshold checks.
    """

    last_total_tokens: int = 0
    context_size: int = 0

    def reset(self) -> None:
        self.last_total_tokens = 0

    def add_estimate(self, chars: int) -> None:
        """Fold streamed text into the estimate (~4 characters per token)."""
        self.last_total_tokens += math.ceil(chars / 4)

    def record_usage(self, total_tokens: int) -> None:
        """Replace the estimate with a server-reported count."""
        self.last_total_tokens = int(total_tokens)

    def is_near_capacity(self, threshold: float = 0.95) -> bool:
        if self.context_size <= 0:
            return False
        return self.last_total_tokens >= self.context_size * threshold
