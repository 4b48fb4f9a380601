import asyncio
import json

import httpx
import pytest

from qogito.exceptions import (
    AbortedError,
    LLMAPIError,
    LLMConnectionError,
    NotConnectedError,
    ProtocolError,
)
from qogito.llm import LlamaCppClient, TransportConfig, shorten_model_name
from qogito.llm.types import (
    ConnectionState,
    Done,
    ToolCalls,
    ToolDefinition,
    UserMessage,
)


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given network reads."""

    def __init__(self, chunks: list[bytes], stall: asyncio.Event | None = None):
        self._chunks = chunks
        self._stall = stall

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._stall is not None:
            await self._stall.wait()


def _sse(*records: dict, done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(record)}\n\n" for record in records]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def _client(handler) -> LlamaCppClient:
    return LlamaCppClient(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _connected(handler) -> LlamaCppClient:
    client = _client(handler)
    client.state = ConnectionState(
        base_url="http://srv",
        model_id="m",
        display_name="m",
        context_size=1000,
        connected=True,
    )
    client.budget.context_size = 1000
    return client


def _server(models: dict | None = None, props: dict | None = None, props_status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/models":
            return httpx.Response(200, json=models if models is not None else {"data": [{"id": "m"}]})
        if request.url.path == "/props":
            return httpx.Response(props_status, json=props or {})
        return httpx.Response(404)

    return handler


def test_shorten_model_name():
    assert shorten_model_name("Qwen2.5-Coder-7B-Q4_K_M-00001-of-00003.gguf") == "Qwen2.5-Coder-7B-Q4_K_M"
    assert shorten_model_name("llama-3-8b.gguf") == "llama-3-8b"
    assert shorten_model_name("served-model") == "served-model"


@pytest.mark.asyncio
async def test_connect_discovers_model_and_context_size():
    client = _client(
        _server(
            models={"data": [{"id": "llama-3-8b.gguf"}, {"id": "other"}]},
            props={"default_generation_settings": {"n_ctx": 8192}},
        )
    )

    state = await client.connect("http://srv/")

    assert state.connected is True
    assert state.base_url == "http://srv"
    assert state.model_id == "llama-3-8b.gguf"
    assert client.display_name == "llama-3-8b"
    assert state.context_size == 8192
    assert client.budget.context_size == 8192


@pytest.mark.asyncio
async def test_connect_without_props_leaves_context_size_unknown():
    client = _client(_server(props_status=404))

    state = await client.connect("http://srv")

    assert state.connected is True
    assert state.context_size == 0


@pytest.mark.asyncio
async def test_connect_with_empty_model_list_resets_state():
    client = _client(_server(models={"data": []}))

    with pytest.raises(ProtocolError, match="No models returned"):
        await client.connect("http://srv")

    assert client.state == ConnectionState()
    assert client.is_connected is False


@pytest.mark.asyncio
async def test_connect_http_error_status_raises_api_error():
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(LLMAPIError) as exc_info:
        await client.connect("http://srv")

    assert exc_info.value.status_code == 503
    assert client.is_connected is False


@pytest.mark.asyncio
async def test_connect_transport_failure_raises_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(LLMConnectionError):
        await client.connect("http://srv")
    assert client.is_connected is False


@pytest.mark.asyncio
async def test_connect_is_noop_when_connected_or_url_empty():
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(500)

    client = _connected(handler)
    await client.connect("http://elsewhere")
    assert client.state.base_url == "http://srv"

    fresh = _client(handler)
    await fresh.connect("")
    assert calls == []


@pytest.mark.asyncio
async def test_disconnect_clears_state_and_budget():
    client = _connected(lambda request: httpx.Response(404))
    client.budget.last_total_tokens = 500

    client.disconnect()

    assert client.is_connected is False
    assert client.budget.last_total_tokens == 0
    assert client.budget.context_size == 0


@pytest.mark.asyncio
async def test_complete_requires_connection():
    client = _client(lambda request: httpx.Response(200))

    with pytest.raises(NotConnectedError):
        await client.complete([UserMessage(content="hi")], [], lambda _: None)


@pytest.mark.asyncio
async def test_complete_streams_text_and_sends_request_body():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        body = _sse(
            {"choices": [{"delta": {"content": "Hi "}}]},
            {"choices": [{"delta": {"content": "there"}, "finish_reason": "stop"}]},
            {"choices": [], "usage": {"total_tokens": 42}},
        )
        return httpx.Response(200, stream=ChunkedStream([body[:25], body[25:]]))

    client = _connected(handler)
    chunks: list[str] = []

    outcome = await client.complete([UserMessage(content="hello")], [], chunks.append)

    assert outcome == Done()
    assert chunks == ["Hi ", "there"]
    assert client.budget.last_total_tokens == 42
    assert seen["path"] == "/v1/chat/completions"
    assert seen["body"]["stream"] is True
    assert seen["body"]["stream_options"] == {"include_usage": True}
    assert seen["body"]["messages"] == [{"role": "user", "content": "hello"}]
    assert "tools" not in seen["body"]


@pytest.mark.asyncio
async def test_complete_returns_tool_calls_and_sends_tools():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        body = _sse(
            {"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "c1", "function": {"name": "list_tools", "arguments": "{}"}}]}}]},
            {"choices": [{"delta": {}, "finish_reason": "tool_calls"}]},
        )
        return httpx.Response(200, stream=ChunkedStream([body]))

    client = _connected(handler)
    tool = ToolDefinition(name="list_tools", description="d", parameters={"type": "object", "properties": {}})

    outcome = await client.complete([UserMessage(content="x")], [tool], lambda _: None)

    assert isinstance(outcome, ToolCalls)
    assert outcome.calls[0].name == "list_tools"
    assert seen["body"]["tools"][0]["function"]["name"] == "list_tools"


@pytest.mark.asyncio
async def test_complete_error_status_raises_api_error():
    client = _connected(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(LLMAPIError) as exc_info:
        await client.complete([UserMessage(content="x")], [], lambda _: None)

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_complete_empty_body_raises_protocol_error():
    client = _connected(lambda request: httpx.Response(200, stream=ChunkedStream([])))

    with pytest.raises(ProtocolError):
        await client.complete([UserMessage(content="x")], [], lambda _: None)


@pytest.mark.asyncio
async def test_complete_wrongly_shaped_delta_raises_protocol_error():
    body = _sse({"choices": [{"delta": "oops"}]})
    client = _connected(lambda request: httpx.Response(200, stream=ChunkedStream([body])))

    with pytest.raises(ProtocolError):
        await client.complete([UserMessage(content="x")], [], lambda _: None)


@pytest.mark.asyncio
async def test_stream_ending_without_finish_reason_is_done():
    body = _sse({"choices": [{"delta": {"content": "partial"}}]}, done=False)
    client = _connected(lambda request: httpx.Response(200, stream=ChunkedStream([body])))
    chunks: list[str] = []

    outcome = await client.complete([UserMessage(content="x")], [], chunks.append)

    assert outcome == Done()
    assert chunks == ["partial"]


@pytest.mark.asyncio
async def test_complete_aborts_in_flight_read():
    stall = asyncio.Event()
    body = _sse({"choices": [{"delta": {"content": "first"}}]}, done=False)
    client = _connected(lambda request: httpx.Response(200, stream=ChunkedStream([body], stall=stall)))
    abort_event = asyncio.Event()
    chunks: list[str] = []

    def on_chunk(text: str) -> None:
        chunks.append(text)
        abort_event.set()

    with pytest.raises(AbortedError):
        await client.complete([UserMessage(content="x")], [], on_chunk, abort_event)

    assert chunks == ["first"]


@pytest.mark.asyncio
async def test_complete_with_preset_abort_event_sends_nothing():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    client = _connected(handler)
    abort_event = asyncio.Event()
    abort_event.set()

    with pytest.raises(AbortedError):
        await client.complete([UserMessage(content="x")], [], lambda _: None, abort_event)
    assert calls == []


@pytest.mark.asyncio
async def test_infill_posts_prefix_and_suffix():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": "return x"})

    client = _client(handler)

    result = await client.infill("http://fim/", "def f(x):\n    ", "\n")

    assert result == "return x"
    assert seen["url"] == "http://fim/infill"
    assert seen["body"] == {
        "input_prefix": "def f(x):\n    ",
        "input_suffix": "\n",
        "n_predict": 32,
        "stream": False,
        "cache_prompt": True,
    }


@pytest.mark.asyncio
async def test_infill_error_status_raises_api_error():
    client = _client(lambda request: httpx.Response(404))

    with pytest.raises(LLMAPIError):
        await client.infill("http://fim", "a", "b")


def test_transport_config_follows_self_signed_setting():
    from qogito.config import Config

    cfg = Config()
    cfg.server.allow_self_signed = True
    cfg.server.timeout = 5.0

    transport = TransportConfig.from_config(cfg)

    assert transport.verify_tls is False
    assert transport.timeout == 5.0
