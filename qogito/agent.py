"""Agent orchestration for Qogito."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

from qogito.agent_tool_loop_mixin import AgentToolLoopMixin
from qogito.compactor import ContextCompactor
from qogito.config import Config, get_config
from qogito.exceptions import AbortedError, QogitoError
from qogito.history import Conversation, DisplayEntry, DisplayRole
from qogito.llm import LlamaCppClient, create_client
from qogito.llm.types import Done, ToolDefinition
from qogito.logging import get_logger
from qogito.tools.registry import AgentMode, ToolRegistry, build_default_registry

log = get_logger(__name__)

ApprovalCallback = Callable[[str], bool | Awaitable[bool]]


class Agent(AgentToolLoopMixin):
    """Drives one conversation against a llama.cpp server."""

    def __init__(
        self,
        client: LlamaCppClient,
        registry: ToolRegistry | None = None,
        config: Config | None = None,
        workspace_provider: Callable[[], Path | None] | None = None,
        approval_callback: ApprovalCallback | None = None,
        on_entry: Callable[[DisplayEntry], None] | None = None,
        on_chunk: Callable[[str], None] | None = None,
    ):
        """Initialize the agent.

        Args:
            client: Streaming completion client
            registry: Tool registry; built from config when omitted
            config: Settings; the global config when omitted
            workspace_provider: Returns the workspace root, or None when none is open
            approval_callback: Asked before every run_command; may be async
            on_entry: Called whenever a transcript entry is added
            on_chunk: Called with every streamed text fragment
        """
        self.client = client
        self._config = config
        self.tools = registry or build_default_registry(self.config)
        self.workspace_provider = workspace_provider or self._default_workspace
        self.approval_callback = approval_callback
        self.on_entry = on_entry
        self.on_chunk = on_chunk
        self.conversation = Conversation()
        self.mode: AgentMode = self.config.agent.mode
        self.is_generating = False
        self._abort_event: asyncio.Event | None = None
        self.compactor = ContextCompactor(
            client,
            on_entry=self._emit_entry,
            on_chunk=self._emit_chunk,
        )

    @property
    def config(self) -> Config:
        return self._config or get_config()

    def _default_workspace(self) -> Path | None:
        return self.config.resolved_workspace_path()

    def set_mode(self, mode: str) -> None:
        """Switch between passive and active mode; history is kept."""
        if mode not in ("passive", "active"):
            raise ValueError(f"Unknown mode: {mode}")
        self.mode = mode  # type: ignore[assignment]
        log.info("Mode changed", mode=mode)

    def active_tools(self) -> list[ToolDefinition]:
        return self.tools.resolve_active_tools(self.mode, self.config.agent.allow_run_command)

    def cancel(self) -> None:
        """Abort the turn in flight, if any."""
        if self._abort_event is not None:
            self._abort_event.set()

    def clear(self) -> None:
        """Forget both histories and the token count."""
        self.conversation.clear()
        self.client.budget.reset()

    def _emit_entry(self, entry: DisplayEntry) -> None:
        if not self.on_entry:
            return
        try:
            self.on_entry(entry)
        except Exception as e:
            log.warning("Entry observer failed", error=str(e))

    def _emit_chunk(self, chunk: str) -> None:
        if not self.on_chunk:
            return
        try:
            self.on_chunk(chunk)
        except Exception as e:
            log.warning("Chunk observer failed", error=str(e))

    def _add_entry(self, role: DisplayRole, content: str = "") -> DisplayEntry:
        entry = self.conversation.add_entry(role, content)
        self._emit_entry(entry)
        return entry

    def _should_compact(self, abort_event: asyncio.Event) -> bool:
        if abort_event.is_set():
            return False
        return self.client.budget.is_near_capacity(self.config.agent.compaction_threshold)

    async def handle_user_message(self, text: str) -> None:
        """Run one user turn to completion.

        Client errors end the turn and are attached to the latest transcript
        entry; a cancelled turn keeps whatever was streamed so far.
        """
        self.conversation.ensure_system_prompt(self.config.agent.system_prompt)
        self._emit_entry(self.conversation.add_user_message(text))
        self.is_generating = True
        abort_event = asyncio.Event()
        self._abort_event = abort_event
        tools = self.active_tools()
        log.info("Turn started", mode=self.mode, tools=len(tools))

        try:
            await self._run_turn(tools, abort_event)
        except AbortedError:
            log.info("Turn cancelled")
        except QogitoError as e:
            log.error("Turn failed", error=str(e))
            self.conversation.annotate_error(str(e))
            if self.conversation.last_entry is not None:
                self._emit_entry(self.conversation.last_entry)
        finally:
            self._abort_event = None
            self.is_generating = False
            log.info("Turn finished", tokens=self.client.budget.last_total_tokens)

    async def _run_turn(self, tools: list[ToolDefinition], abort_event: asyncio.Event) -> None:
        while True:
            if self._should_compact(abort_event):
                await self.compactor.compact(self.conversation, abort_event)
                return

            entry = self._add_entry("assistant")
            parts: list[str] = []

            def stream_chunk(chunk: str) -> None:
                parts.append(chunk)
                entry.content += chunk
                self._emit_chunk(chunk)

            outcome = await self.client.complete(
                self.conversation.messages,
                tools,
                stream_chunk,
                abort_event,
            )
            accumulated = "".join(parts)

            if isinstance(outcome, Done):
                self.conversation.add_assistant_message(accumulated)
                break

            if not accumulated:
                self.conversation.drop_last_entry()
            self.conversation.add_assistant_message(accumulated or None, outcome.calls)
            await self._handle_tool_calls(outcome.calls, tools)

        if self._should_compact(abort_event):
            await self.compactor.compact(self.conversation, abort_event)

    async def aclose(self) -> None:
        await self.client.aclose()


def create_agent(config: Config | None = None, **kwargs: Any) -> Agent:
    """Build an agent with a client and registry wired from config."""
    cfg = config or get_config()
    return Agent(client=create_client(cfg), config=cfg, **kwargs)
