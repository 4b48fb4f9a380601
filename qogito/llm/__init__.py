"""llama.cpp server client - streamed chat completions over HTTP."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from pydantic import BaseModel

from qogito.config import Config, get_config
from qogito.exceptions import (
    AbortedError,
    LLMAPIError,
    LLMConnectionError,
    LLMError,
    NotConnectedError,
    ProtocolError,
)
from qogito.llm.stream import StreamReducer
from qogito.llm.types import (
    AssistantMessage,
    ConnectionState,
    Done,
    Message,
    Outcome,
    SystemMessage,
    TokenBudget,
    ToolCall,
    ToolCalls,
    ToolDefinition,
    ToolMessage,
    UserMessage,
)
from qogito.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

_SPLIT_ARCHIVE_MARKER = "-00001-of-"
_MODEL_FILE_SUFFIX = ".gguf"
INFILL_PREDICT_TOKENS = 32


class TransportConfig(BaseModel):
    """HTTP transport settings for one client instance."""

    verify_tls: bool = True
    timeout: float = 120.0

    @classmethod
    def from_config(cls, config: Config) -> "TransportConfig":
        return cls(
            verify_tls=not config.server.allow_self_signed,
            timeout=config.server.timeout,
        )


def shorten_model_name(model_id: str) -> str:
    """Strip a split-archive suffix, else a model-file extension."""
    cut = model_id.find(_SPLIT_ARCHIVE_MARKER)
    if cut == -1:
        cut = model_id.find(_MODEL_FILE_SUFFIX)
    return model_id if cut == -1 else model_id[:cut]


class LlamaCppClient:
    """Client for an OpenAI-compatible llama.cpp server."""

    def __init__(
        self,
        transport: TransportConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            transport: TLS and timeout settings used to build the HTTP client
            http_client: Optional pre-built client (tests inject a mock transport)
        """
        self.transport = transport or TransportConfig()
        self.client = http_client or httpx.AsyncClient(
            timeout=self.transport.timeout,
            verify=self.transport.verify_tls,
            follow_redirects=True,
        )
        self.state = ConnectionState()
        self.budget = TokenBudget()

    @property
    def is_connected(self) -> bool:
        return self.state.connected

    @property
    def display_name(self) -> str:
        return self.state.display_name

    def disconnect(self) -> None:
        """Forget the active connection and the token budget."""
        self.state = ConnectionState()
        self.budget.reset()
        self.budget.context_size = 0

    async def connect(self, url: str) -> ConnectionState:
        """Connect to a server and discover its model and context size.

        Does nothing when already connected or when url is empty. Any failure
        leaves the client fully disconnected.
        """
        if self.state.connected or not url:
            return self.state

        base_url = url.rstrip("/")
        self.disconnect()
        try:
            model_id = await self._fetch_model_id(base_url)
            context_size = await self._fetch_context_size(base_url)
        except httpx.HTTPError as e:
            self.disconnect()
            raise LLMConnectionError(f"Connection to {base_url} failed: {e}") from e
        except LLMError:
            self.disconnect()
            raise

        self.state = ConnectionState(
            base_url=base_url,
            model_id=model_id,
            display_name=shorten_model_name(model_id),
            context_size=context_size,
            connected=True,
        )
        self.budget.context_size = context_size
        log.info("Connected", url=base_url, model=model_id, n_ctx=context_size)
        return self.state

    async def _fetch_model_id(self, base_url: str) -> str:
        response = await self.client.get(f"{base_url}/v1/models")
        if not response.is_success:
            raise LLMAPIError(f"HTTP {response.status_code}", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid model list: {e}") from e

        models = payload.get("data") if isinstance(payload, dict) else None
        first = models[0] if isinstance(models, list) and models else None
        if not isinstance(first, dict) or not first.get("id"):
            raise ProtocolError("No models returned")
        return str(first["id"])

    async def _fetch_context_size(self, base_url: str) -> int:
        """Read n_ctx from /props; 0 when the server does not expose it."""
        response = await self.client.get(f"{base_url}/props")
        if not response.is_success:
            log.debug("Server props unavailable", status=response.status_code)
            return 0
        try:
            payload = response.json()
            n_ctx = payload.get("default_generation_settings", {}).get("n_ctx") or 0
            return int(n_ctx)
        except (ValueError, TypeError, AttributeError) as e:
            log.debug("Could not read n_ctx from props", error=str(e))
            return 0

    @staticmethod
    def _build_chat_body(messages: list[Message], tools: list[ToolDefinition]) -> dict[str, Any]:
        body: dict[str, Any] = {
            "messages": [message.to_api() for message in messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            body["tools"] = [tool.to_api() for tool in tools]
        return body

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        on_chunk: Callable[[str], None],
        abort_event: asyncio.Event | None = None,
    ) -> Outcome:
        """Stream one chat completion.

        Args:
            messages: Canonical history, sent verbatim
            tools: Tool definitions offered to the model (may be empty)
            on_chunk: Receives every streamed text fragment
            abort_event: Setting it aborts the in-flight read

        Returns:
            Done, or ToolCalls ordered by fragment index

        Raises:
            NotConnectedError, LLMAPIError, LLMConnectionError, ProtocolError,
            AbortedError
        """
        state = self.state
        if not state.connected:
            raise NotConnectedError()
        if abort_event is not None and abort_event.is_set():
            raise AbortedError()

        body = self._build_chat_body(messages, tools)
        return await self._run_abortable(
            self._stream_chat(state.base_url, body, on_chunk),
            abort_event,
        )

    async def _stream_chat(
        self,
        base_url: str,
        body: dict[str, Any],
        on_chunk: Callable[[str], None],
    ) -> Outcome:
        url = f"{base_url}/v1/chat/completions"
        reducer = StreamReducer(on_chunk, self.budget)
        received = False
        try:
            log.debug(
                "Requesting chat completion",
                url=url,
                msg_count=len(body["messages"]),
                tool_count=len(body.get("tools", [])),
            )
            async with self.client.stream("POST", url, json=body) as response:
                if not response.is_success:
                    await response.aread()
                    raise LLMAPIError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                async for text in response.aiter_text():
                    if not text:
                        continue
                    received = True
                    if reducer.feed(text):
                        return reducer.result()
        except httpx.HTTPError as e:
            raise LLMConnectionError(f"Completion request failed: {e}") from e

        if not received:
            raise ProtocolError("No response body")
        if reducer.outcome is None:
            log.warning(
                "Stream ended without finish reason, treating as done",
                partial_record=reducer.has_partial_record,
            )
        return reducer.result()

    async def infill(
        self,
        completion_url: str,
        prefix: str,
        suffix: str,
        abort_event: asyncio.Event | None = None,
    ) -> str:
        """Request a fill-in-the-middle suggestion from the completion endpoint."""
        base = completion_url.rstrip("/")
        body = {
            "input_prefix": prefix,
            "input_suffix": suffix,
            "n_predict": INFILL_PREDICT_TOKENS,
            "stream": False,
            "cache_prompt": True,
        }
        return await self._run_abortable(self._post_infill(base, body), abort_event)

    async def _post_infill(self, base: str, body: dict[str, Any]) -> str:
        try:
            response = await self.client.post(f"{base}/infill", json=body)
        except httpx.HTTPError as e:
            raise LLMConnectionError(f"Infill request failed: {e}") from e
        if not response.is_success:
            raise LLMAPIError(f"HTTP {response.status_code}", status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError(f"Invalid infill response: {e}") from e
        content = payload.get("content") if isinstance(payload, dict) else None
        return content if isinstance(content, str) else ""

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            pass

    async def _run_abortable(self, work: Awaitable[T], abort_event: asyncio.Event | None) -> T:
        """Await work, cancelling it and raising AbortedError once abort_event is set."""
        work_task = asyncio.ensure_future(work)
        if abort_event is None:
            return await work_task

        abort_wait_task = asyncio.create_task(abort_event.wait())
        try:
            done, _ = await asyncio.wait(
                {work_task, abort_wait_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work_task in done:
                return work_task.result()

            await self._cancel_task(work_task)
            log.info("Request aborted")
            raise AbortedError()
        except asyncio.CancelledError:
            await self._cancel_task(work_task)
            raise
        finally:
            await self._cancel_task(abort_wait_task)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_client(config: Config | None = None) -> LlamaCppClient:
    """Create a client whose transport follows the configured TLS policy."""
    cfg = config or get_config()
    return LlamaCppClient(transport=TransportConfig.from_config(cfg))


__all__ = [
    "AssistantMessage",
    "ConnectionState",
    "Done",
    "LlamaCppClient",
    "Message",
    "Outcome",
    "StreamReducer",
    "SystemMessage",
    "TokenBudget",
    "ToolCall",
    "ToolCalls",
    "ToolDefinition",
    "ToolMessage",
    "TransportConfig",
    "UserMessage",
    "create_client",
    "shorten_model_name",
]
