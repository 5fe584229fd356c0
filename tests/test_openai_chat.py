"""
Unit tests for the OpenAI Chat Completions streaming backend.

Tests cover:
- SSE line decoding into stream events
- Tool call fragment indexing and completion
- Protocol errors raised as BackendError
- End-to-end streaming against a local aiohttp server
"""

import json

import pytest
from aiohttp import test_utils, web

from relay_agent.config import LLMConfig
from relay_agent.errors import BackendError
from relay_agent.providers import (
    ContentDelta,
    OpenAIChatBackend,
    ResponseCompleted,
    ToolCallDelta,
    ToolCallDone,
)
from relay_agent.providers.openai_chat import ChatStreamDecoder


def sse(chunk):
    return f"data: {json.dumps(chunk)}"


def content_chunk(text, finish_reason=None):
    return {"choices": [{"index": 0, "delta": {"content": text}, "finish_reason": finish_reason}]}


class TestChatStreamDecoder:
    """SSE decoding."""

    def test_content_and_stop(self):
        """Content deltas, then one completion on the finish reason."""
        decoder = ChatStreamDecoder()

        events = decoder.feed_line(sse(content_chunk("Hel")))
        events += decoder.feed_line(sse(content_chunk("lo", finish_reason="stop")))
        events += decoder.feed_line("data: [DONE]")

        assert events == [ContentDelta("Hel"), ContentDelta("lo"), ResponseCompleted("stop")]

    def test_ignores_blank_comment_and_other_fields(self):
        """Keep-alives and non-data fields produce nothing."""
        decoder = ChatStreamDecoder()
        for line in ("", "   ", ": keep-alive", "event: message", "id: 7"):
            assert decoder.feed_line(line) == []

    def test_tool_call_fragments(self):
        """The id on the first fragment is carried to later fragments of the same index."""
        decoder = ChatStreamDecoder()
        first = {"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "id": "call_xyz", "type": "function", "function": {"name": "send-dtmf", "arguments": ""}}
        ]}}]}
        second = {"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": '{"dtmfDigit":'}}
        ]}}]}
        third = {"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": ' "1"}'}}
        ]}}]}
        done = {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]}

        events = []
        for chunk in (first, second, third, done):
            events += decoder.feed_line(sse(chunk))
        events += decoder.feed_line("data: [DONE]")

        assert events == [
            ToolCallDelta(call_id="call_xyz", name="send-dtmf", arguments=""),
            ToolCallDelta(call_id="call_xyz", name=None, arguments='{"dtmfDigit":'),
            ToolCallDelta(call_id="call_xyz", name=None, arguments=' "1"}'),
            ToolCallDone("call_xyz"),
            ResponseCompleted(None),
        ]

    def test_missing_id_gets_index_id(self):
        """Fragments without an id are keyed by index."""
        decoder = ChatStreamDecoder()
        chunk = {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 2, "function": {"name": "x"}}]}}]}

        events = decoder.feed_chunk(chunk)

        assert events == [ToolCallDelta(call_id="call_2", name="x", arguments="")]

    def test_other_choices_ignored(self):
        """Only the first choice is consumed."""
        decoder = ChatStreamDecoder()
        chunk = {"choices": [{"index": 1, "delta": {"content": "alt"}}]}
        assert decoder.feed_chunk(chunk) == []

    def test_done_with_open_call_is_error(self):
        """A stream that ends mid tool call is a protocol failure."""
        decoder = ChatStreamDecoder()
        decoder.feed_chunk({"choices": [{"index": 0, "delta": {"tool_calls": [
            {"index": 0, "id": "call_1", "function": {"name": "end-call"}}
        ]}}]})

        with pytest.raises(BackendError, match="call_1"):
            decoder.feed_line("data: [DONE]")

    def test_error_chunk(self):
        """An in-stream error object is raised."""
        decoder = ChatStreamDecoder()
        with pytest.raises(BackendError, match="overloaded"):
            decoder.feed_line(sse({"error": {"message": "Server overloaded"}}))

    def test_malformed_json(self):
        with pytest.raises(BackendError):
            ChatStreamDecoder().feed_line("data: {not json")

    @pytest.mark.parametrize(
        "chunk",
        [
            {"choices": [None]},
            {"choices": ["stop"]},
            {"choices": {"index": 0}},
            {"choices": [{"index": 0, "delta": "hello"}]},
            {"choices": [{"index": 0, "delta": {"tool_calls": [None]}}]},
            {"choices": [{"index": 0, "delta": {"tool_calls": [{"index": 0, "function": "lookup"}]}}]},
        ],
        ids=["null-choice", "string-choice", "choices-object", "string-delta", "null-fragment", "string-function"],
    )
    def test_malformed_choice_is_backend_error(self, chunk):
        """Wrongly shaped choices surface as BackendError, not AttributeError."""
        with pytest.raises(BackendError):
            ChatStreamDecoder().feed_line(sse(chunk))

    def test_completion_emitted_once(self):
        """finish() after a finish reason adds nothing."""
        decoder = ChatStreamDecoder()
        decoder.feed_chunk(content_chunk("x", finish_reason="length"))
        assert decoder.finish() == []


class TestOpenAIChatBackend:
    """Request building and streaming."""

    def test_payload_with_tools(self):
        """Tools are offered one call at a time."""
        backend = OpenAIChatBackend(LLMConfig(api_key="sk-test", temperature=0.2, max_tokens=300))
        tools = [{"type": "function", "function": {"name": "end-call", "parameters": {}}}]

        payload = backend.build_payload([{"role": "user", "content": "hi"}], tools)

        assert payload["stream"] is True
        assert payload["tools"] == tools
        assert payload["tool_choice"] == "auto"
        assert payload["parallel_tool_calls"] is False
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 300

    def test_payload_without_tools(self):
        backend = OpenAIChatBackend(LLMConfig(api_key="sk-test"))
        payload = backend.build_payload([], None)
        assert "tools" not in payload
        assert "temperature" not in payload

    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        """No key, no request."""
        backend = OpenAIChatBackend(LLMConfig(api_key=None))
        with pytest.raises(BackendError, match="API key"):
            async for _ in backend.stream([{"role": "user", "content": "hi"}]):
                pass

    @pytest.mark.asyncio
    async def test_streams_from_server(self):
        """Events are decoded from a real SSE response."""
        received = {}

        async def completions(request):
            received["body"] = await request.json()
            received["auth"] = request.headers.get("Authorization")
            response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
            await response.prepare(request)
            for chunk in (content_chunk("Hi"), content_chunk(" there", finish_reason="stop")):
                await response.write(f"{sse(chunk)}\n\n".encode())
            await response.write(b"data: [DONE]\n\n")
            await response.write_eof()
            return response

        app = web.Application()
        app.router.add_post("/v1/chat/completions", completions)
        server = test_utils.TestServer(app)
        await server.start_server()
        backend = OpenAIChatBackend(LLMConfig(api_key="sk-test", base_url=str(server.make_url("/v1"))))
        try:
            events = [event async for event in backend.stream([{"role": "user", "content": "hello"}])]
        finally:
            await backend.close()
            await server.close()

        assert events == [ContentDelta("Hi"), ContentDelta(" there"), ResponseCompleted("stop")]
        assert received["auth"] == "Bearer sk-test"
        assert received["body"]["messages"] == [{"role": "user", "content": "hello"}]
        assert received["body"]["stream"] is True

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Non-2xx responses raise BackendError with the status."""
        async def completions(request):
            return web.json_response({"error": {"message": "bad key"}}, status=401)

        app = web.Application()
        app.router.add_post("/v1/chat/completions", completions)
        server = test_utils.TestServer(app)
        await server.start_server()
        backend = OpenAIChatBackend(LLMConfig(api_key="sk-bad", base_url=str(server.make_url("/v1"))))
        try:
            with pytest.raises(BackendError) as exc_info:
                async for _ in backend.stream([]):
                    pass
        finally:
            await backend.close()
            await server.close()

        assert exc_info.value.status == 401
