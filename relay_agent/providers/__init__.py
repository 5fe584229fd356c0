"""Streaming model backends."""

from relay_agent.providers.base import (
    ContentDelta,
    ResponseCompleted,
    StreamBackend,
    StreamEvent,
    ToolCallDelta,
    ToolCallDone,
)
from relay_agent.providers.openai_chat import OpenAIChatBackend

__all__ = [
    "ContentDelta",
    "OpenAIChatBackend",
    "ResponseCompleted",
    "StreamBackend",
    "StreamEvent",
    "ToolCallDelta",
    "ToolCallDone",
]
