"""
Conversation state: the ordered record of turns sent to the model backend.

Invariant: a ``tool_call`` entry is always immediately followed by exactly
one ``tool_result`` entry carrying the same correlation id. The pair can only
be appended together (``add_tool_exchange``), so no user turn can ever land
between them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import json
import time

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"

_PLAIN_ROLES = frozenset({SYSTEM, USER, ASSISTANT})


@dataclass(frozen=True)
class ConversationEntry:
    """One turn of the conversation."""
    role: str
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: Optional[str] = None  # raw JSON string as produced by the model
    timestamp: float = field(default_factory=time.time, compare=False)


class ConversationState:
    """Ordered, append-only (apart from reset) list of conversation entries."""

    def __init__(self, instructions: str = ""):
        self._entries: List[ConversationEntry] = []
        self.reset(instructions)

    def reset(self, instructions: str) -> None:
        """Drop everything and start over with a fresh instruction entry."""
        self._entries = [ConversationEntry(role=SYSTEM, content=instructions or "")]

    @property
    def instructions(self) -> str:
        return self._entries[0].content

    @property
    def entries(self) -> Tuple[ConversationEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(tuple(self._entries))

    def append(self, role: str, content: str) -> ConversationEntry:
        """
        Append a plain system/user/assistant turn.

        Raises:
            ValueError: For tool roles (use add_tool_exchange) or unknown roles
        """
        if role not in _PLAIN_ROLES:
            raise ValueError(f"Cannot append role '{role}' directly")
        entry = ConversationEntry(role=role, content=content or "")
        self._entries.append(entry)
        return entry

    def add_tool_exchange(
        self,
        call_id: str,
        name: str,
        arguments: str,
        result: Any,
    ) -> Tuple[ConversationEntry, ConversationEntry]:
        """Append a tool invocation and its matching result as one unit."""
        content = result if isinstance(result, str) else json.dumps(result, default=str)
        call = ConversationEntry(role=TOOL_CALL, tool_call_id=call_id, tool_name=name, arguments=arguments or "{}")
        outcome = ConversationEntry(role=TOOL_RESULT, tool_call_id=call_id, tool_name=name, content=content)
        self._entries.extend((call, outcome))
        return call, outcome

    def clear_messages(self) -> None:
        """Keep only the instruction entry."""
        self._entries = self._entries[:1]

    def to_openai_messages(self) -> List[Dict[str, Any]]:
        """Serialize to Chat Completions ``messages``."""
        messages: List[Dict[str, Any]] = []
        for entry in self._entries:
            if entry.role == TOOL_CALL:
                messages.append({
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [{
                        "id": entry.tool_call_id,
                        "type": "function",
                        "function": {"name": entry.tool_name, "arguments": entry.arguments},
                    }],
                })
            elif entry.role == TOOL_RESULT:
                messages.append({
                    "role": "tool",
                    "tool_call_id": entry.tool_call_id,
                    "content": entry.content,
                })
            else:
                messages.append({"role": entry.role, "content": entry.content})
        return messages
