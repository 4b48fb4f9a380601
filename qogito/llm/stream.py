"""Reduction of a streamed chat-completion response into an outcome."""

import json
from dataclasses import dataclass
from typing import Any, Callable

from qogito.exceptions import ProtocolError
from qogito.llm.types import Done, Outcome, TokenBudget, ToolCall, ToolCalls

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class StreamReducer:
    """Fold ``data:`` records into text callbacks and a terminal outcome.

    Network reads may split records at arbitrary points, so raw text is
    buffered and a record is only handled once its line terminator arrived.
    Tool-call fragments are merged by their ``index``; the final call order
    is ascending index, whatever order the fragments arrived in.
    """

    def __init__(self, on_chunk: Callable[[str], None], budget: TokenBudget):
        self._on_chunk = on_chunk
        self._budget = budget
        self._buffer = ""
        self._pending: dict[int, _PendingToolCall] = {}
        self.outcome: Outcome | None = None
        self.finished = False

    @property
    def has_partial_record(self) -> bool:
        return bool(self._buffer.strip())

    def feed(self, text: str) -> bool:
        """Consume raw stream text.

        Returns:
            True once the done sentinel was seen; later input is ignored.
        """
        if self.finished:
            return True
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            if self._process_line(line):
                self.finished = True
                self._buffer = ""
                return True
        return False

    def result(self) -> Outcome:
        """Most recently determined outcome, Done when none was signalled."""
        if self.outcome is None:
            return Done()
        return self.outcome

    def _process_line(self, line: str) -> bool:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return False
        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == DONE_SENTINEL:
            return True

        try:
            record = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Malformed stream record: {e}") from e
        if not isinstance(record, dict):
            raise ProtocolError("Stream record is not a JSON object")

        self.apply_record(record)
        return False

    def apply_record(self, record: dict[str, Any]) -> None:
        """Apply one decoded stream record.

        Raises:
            ProtocolError: A field has the wrong JSON type.
        """
        usage = record.get("usage")
        if isinstance(usage, dict) and usage.get("total_tokens") is not None:
            total = usage["total_tokens"]
            if isinstance(total, bool) or not isinstance(total, (int, float)):
                raise ProtocolError(f"Invalid usage.total_tokens: {total!r}")
            self._budget.record_usage(int(total))

        choices = _expect(record.get("choices"), list, "choices") or []
        if not choices:
            return
        choice = _expect(choices[0], dict, "choices[0]") or {}
        delta = _expect(choice.get("delta"), dict, "delta") or {}

        content = delta.get("content")
        if isinstance(content, str) and content:
            self._budget.add_estimate(len(content))
            self._on_chunk(content)

        for fragment in _expect(delta.get("tool_calls"), list, "delta.tool_calls") or []:
            self._merge_fragment(_expect(fragment, dict, "tool call fragment") or {})

        finish_reason = choice.get("finish_reason")
        if finish_reason == "stop":
            self.outcome = Done()
        elif finish_reason == "tool_calls":
            self.outcome = ToolCalls(calls=self._materialize_calls())

    def _merge_fragment(self, fragment: dict[str, Any]) -> None:
        index = fragment.get("index", 0)
        if isinstance(index, bool) or not isinstance(index, int):
            raise ProtocolError(f"Invalid tool call index: {index!r}")

        pending = self._pending.setdefault(index, _PendingToolCall())
        call_id = _expect(fragment.get("id"), str, "tool call id")
        if call_id:
            pending.id = call_id
        function = _expect(fragment.get("function"), dict, "tool call function") or {}
        name = _expect(function.get("name"), str, "function.name")
        if name:
            pending.name += name
        arguments = _expect(function.get("arguments"), str, "function.arguments")
        if arguments:
            pending.arguments += arguments

    def _materialize_calls(self) -> list[ToolCall]:
        return [
            ToolCall(id=pending.id, name=pending.name, arguments=pending.arguments)
            for _, pending in sorted(self._pending.items())
        ]


def _expect(value: Any, kind: type, field: str) -> Any:
    """Return value unchanged when it is None or of the given JSON type."""
    if value is None or isinstance(value, kind):
        return value
    raise ProtocolError(f"Invalid {field} in stream record: expected {kind.__name__}, got {type(value).__name__}")
