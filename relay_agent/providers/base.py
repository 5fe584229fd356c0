"""
Abstract streaming model backend.

A backend takes the full conversation (already serialized to chat messages)
and the tool schemas, and yields a sequence of typed events. Consumers stop
iterating to cancel; backends must release the connection when their
generator is closed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from relay_agent.errors import BackendError


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """A fragment of one tool call; name and arguments arrive piecemeal."""
    call_id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


@dataclass(frozen=True)
class ToolCallDone:
    """The model has finished the arguments of the call."""
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ResponseCompleted:
    finish_reason: Optional[str] = "stop"


StreamEvent = Union[ContentDelta, ToolCallDelta, ToolCallDone, ResponseCompleted]


class StreamBackend(ABC):
    """Submit conversation state, receive a cancellable stream of events."""

    @abstractmethod
    def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Start one generation cycle.

        Raises:
            BackendError: On connection or protocol failure (at any point
                during iteration)
        """

    async def close(self) -> None:
        """Release connections. Safe to call more than once."""


__all__ = [
    "BackendError",
    "ContentDelta",
    "ResponseCompleted",
    "StreamBackend",
    "StreamEvent",
    "ToolCallDelta",
    "ToolCallDone",
]
