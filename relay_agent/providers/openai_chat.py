"""
OpenAI Chat Completions streaming backend.

POSTs the conversation with ``stream: true`` and translates the Server-Sent
Events into backend stream events. Tool call fragments are keyed by the
``index`` OpenAI assigns; the call id only appears on the first fragment.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import aiohttp
import structlog

from relay_agent.config import LLMConfig
from relay_agent.errors import BackendError
from relay_agent.providers.base import (
    ContentDelta,
    ResponseCompleted,
    StreamBackend,
    StreamEvent,
    ToolCallDelta,
    ToolCallDone,
)

logger = structlog.get_logger(__name__)

TOOL_FINISH_REASONS = frozenset({"tool_calls", "function_call"})


class ChatStreamDecoder:
    """
    Incremental decoder for one Chat Completions SSE stream.

    Feed it raw lines; it returns the events each line produces.
    ResponseCompleted is produced at most once.
    """

    def __init__(self):
        self._ids: Dict[int, str] = {}
        self._open: List[str] = []
        self.completed = False

    def feed_line(self, line: str) -> List[StreamEvent]:
        line = line.strip()
        if not line or line.startswith(":") or not line.startswith("data:"):
            return []
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return self.finish()
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            raise BackendError(f"Malformed stream chunk: {e.msg}") from e
        return self.feed_chunk(chunk)

    def feed_chunk(self, chunk: Dict[str, Any]) -> List[StreamEvent]:
        if not isinstance(chunk, dict):
            raise BackendError("Stream chunk is not a JSON object")
        if chunk.get("error"):
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise BackendError(f"Backend reported an error: {message}")

        events: List[StreamEvent] = []
        choices = chunk.get("choices") or []
        if not isinstance(choices, list):
            raise BackendError("Stream chunk 'choices' is not a list")
        for choice in choices:
            if not isinstance(choice, dict):
                raise BackendError("Stream chunk choice is not a JSON object")
            if choice.get("index", 0) != 0:
                continue
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                raise BackendError("Stream chunk delta is not a JSON object")

            content = delta.get("content")
            if content:
                events.append(ContentDelta(content))

            for fragment in delta.get("tool_calls") or []:
                if not isinstance(fragment, dict) or not isinstance(fragment.get("function") or {}, dict):
                    raise BackendError("Malformed tool call fragment in stream chunk")
                events.append(self._tool_fragment(fragment))

            finish_reason = choice.get("finish_reason")
            if finish_reason in TOOL_FINISH_REASONS:
                events.extend(ToolCallDone(call_id) for call_id in self._open)
                self._open = []
            elif finish_reason and not self.completed:
                self.completed = True
                events.append(ResponseCompleted(finish_reason))
        return events

    def _tool_fragment(self, fragment: Dict[str, Any]) -> ToolCallDelta:
        index = fragment.get("index", 0)
        call_id = fragment.get("id") or self._ids.get(index) or f"call_{index}"
        if index not in self._ids:
            self._ids[index] = call_id
            self._open.append(call_id)
        function = fragment.get("function") or {}
        return ToolCallDelta(
            call_id=call_id,
            name=function.get("name") or None,
            arguments=function.get("arguments") or "",
        )

    def finish(self) -> List[StreamEvent]:
        """
        End of stream.

        Raises:
            BackendError: If a tool call was opened but never finished
        """
        if self._open:
            open_calls, self._open = self._open, []
            raise BackendError(f"Stream ended before tool call(s) completed: {', '.join(open_calls)}")
        if self.completed:
            return []
        self.completed = True
        return [ResponseCompleted(None)]


class OpenAIChatBackend(StreamBackend):
    """Streaming Chat Completions client over aiohttp. No internal retry."""

    def __init__(
        self,
        config: LLMConfig,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self.config = config
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(
            total=None,
            connect=config.timeout_sec,
            sock_read=config.timeout_sec,
        )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _ensure_session(self) -> None:
        if self._session and not self._session.closed:
            return
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()

    def build_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
        }
        if self.config.temperature is not None:
            payload["temperature"] = self.config.temperature
        if self.config.max_tokens is not None:
            payload["max_tokens"] = self.config.max_tokens
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
            payload["parallel_tool_calls"] = False
        return payload

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        if not self.config.api_key:
            raise BackendError("OpenAI backend requires an API key")

        await self._ensure_session()
        assert self._session
        payload = self.build_payload(messages, tools)
        url = self.config.base_url.rstrip("/") + "/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

        logger.debug(
            "OpenAI chat stream request",
            model=payload["model"],
            messages=len(messages),
            tools_count=len(payload.get("tools", [])),
        )

        decoder = ChatStreamDecoder()
        try:
            async with self._session.post(url, json=payload, headers=headers, timeout=self._timeout) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.error("OpenAI chat stream failed", status=response.status, body_preview=body[:200])
                    raise BackendError(f"OpenAI returned HTTP {response.status}", status=response.status)

                async for raw in response.content:
                    for event in decoder.feed_line(raw.decode("utf-8", errors="replace")):
                        yield event
                for event in decoder.finish():
                    yield event
        except aiohttp.ClientError as e:
            logger.error("OpenAI connection error", error=str(e))
            raise BackendError(f"OpenAI connection error: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error("OpenAI stream timed out", timeout_sec=self.config.timeout_sec)
            raise BackendError("OpenAI stream timed out") from e
