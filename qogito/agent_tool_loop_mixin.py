"""Tool-call execution helpers for Agent."""

import inspect
from pathlib import Path
from typing import Any

from qogito.exceptions import PermissionDeniedError, WorkspaceUnavailableError
from qogito.llm.types import ToolCall, ToolDefinition
from qogito.logging import get_logger
from qogito.tools.registry import LIST_TOOLS_NAME, RUN_COMMAND_NAME

log = get_logger(__name__)

COMMAND_DENIED = "Command denied by user."


class AgentToolLoopMixin:
    """Run the tool calls of one model response, strictly in order."""

    async def _handle_tool_calls(self, calls: list[ToolCall], tools: list[ToolDefinition]) -> None:
        """Execute each call and record its result in both histories.

        Every failure becomes an ``Error: ...`` result handed back to the
        model; nothing raised by a tool ends the turn.
        """
        active_names = [tool.name for tool in tools]
        for call in calls:
            self._add_entry("tool_call", f"{call.name}({call.arguments})")
            try:
                result = await self._run_tool_call(call, active_names)
            except Exception as e:
                log.error("Tool execution failed", tool=call.name, call_id=call.id, error=str(e))
                result = f"Error: {e}"

            entry = self.conversation.add_tool_result(call.id, result)
            self._emit_entry(entry)

    async def _run_tool_call(self, call: ToolCall, active_names: list[str]) -> str:
        if call.name not in active_names:
            raise PermissionDeniedError(call.name, self.mode)
        if call.name == LIST_TOOLS_NAME:
            return "\n".join(active_names)

        root: Path | None = self.workspace_provider()
        if root is None:
            raise WorkspaceUnavailableError()

        if call.name == RUN_COMMAND_NAME:
            args = self.tools.get(call.name).parse_arguments(call.arguments)
            if not await self._request_approval(args.command):
                log.info("Command denied", command=args.command)
                return COMMAND_DENIED
            return await self.tools.execute(call.name, args.model_dump(), root)

        return await self.tools.execute(call.name, call.arguments, root)

    async def _request_approval(self, command: str) -> bool:
        """Ask the approval callback; no callback means no approval."""
        if self.approval_callback is None:
            return False
        decision: Any = self.approval_callback(command)
        if inspect.isawaitable(decision):
            decision = await decision
        return bool(decision)
