"""
Base classes for the tool calling system.

A tool receives the structured arguments the model produced and an execution
context, and returns either a plain object (read back by the model) or an
explicitly tagged ToolResult that routes its payload elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import inspect
import json

import structlog

from relay_agent.errors import ToolArgumentsError

logger = structlog.get_logger(__name__)


class ToolCategory(Enum):
    """Where a tool's effect lands."""
    TELEPHONY = "telephony"  # Produces Conversation Relay control messages
    BUSINESS = "business"    # Calls external APIs, result goes back to the model


class ToolResultKind(Enum):
    CONVERSATIONAL = "conversational"
    DIRECT_CONTROL = "direct_control"
    CONTEXT_ERROR = "context_error"


@dataclass(frozen=True)
class ToolResult:
    """
    Tagged result of one tool execution.

    - conversational: payload is serialized into conversation state and the
      model gets a follow-up cycle to talk about it
    - direct_control: payload goes straight to the transport
    - context_error: payload (a description) is added as a system entry
    """
    kind: ToolResultKind
    payload: Any = None

    @classmethod
    def conversational(cls, payload: Any) -> "ToolResult":
        return cls(ToolResultKind.CONVERSATIONAL, payload)

    @classmethod
    def direct_control(cls, payload: Dict[str, Any]) -> "ToolResult":
        return cls(ToolResultKind.DIRECT_CONTROL, payload)

    @classmethod
    def context_error(cls, description: str) -> "ToolResult":
        return cls(ToolResultKind.CONTEXT_ERROR, description)


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str = ""
    required: bool = False
    enum: Optional[List[str]] = None
    default: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description
        }
        if self.enum:
            result["enum"] = self.enum
        if self.default is not None:
            result["default"] = self.default
        return result


@dataclass
class ToolDefinition:
    """
    Provider-agnostic tool definition.

    ``schema`` holds a raw JSON schema when the definition came from a
    manifest; it is emitted as-is so nested schemas survive untouched.
    """
    name: str
    description: str = ""
    category: ToolCategory = ToolCategory.BUSINESS
    parameters: List[ToolParameter] = field(default_factory=list)
    schema: Optional[Dict[str, Any]] = None

    @classmethod
    def from_manifest(cls, entry: Dict[str, Any]) -> "ToolDefinition":
        """
        Build a definition from a catalog entry.

        Accepts both the flat ``{name, description, parameters}`` shape and the
        Chat Completions ``{type: "function", function: {...}}`` shape.

        Raises:
            ValueError: If the entry has no name
        """
        if not isinstance(entry, dict):
            raise ValueError(f"Tool catalog entry must be an object, got {type(entry).__name__}")
        body = entry.get("function") if entry.get("type") == "function" else entry
        if not isinstance(body, dict) or not body.get("name"):
            raise ValueError("Tool catalog entry is missing 'name'")
        schema = body.get("parameters")
        if schema is not None and not isinstance(schema, dict):
            raise ValueError(f"Tool '{body['name']}' parameters must be a JSON schema object")
        return cls(
            name=body["name"],
            description=body.get("description", ""),
            schema=schema or {"type": "object", "properties": {}},
        )

    def parameters_schema(self) -> Dict[str, Any]:
        if self.schema is not None:
            return self.schema
        return {
            "type": "object",
            "properties": {p.name: p.to_dict() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_openai_schema(self) -> Dict[str, Any]:
        """Convert to OpenAI Chat Completions function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            }
        }


class Tool(ABC):
    """
    Abstract base class for all tools.

    Subclasses implement:
    - definition property: default metadata (a catalog entry may override it)
    - execute method: performs the action
    """

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""

    @abstractmethod
    async def execute(
        self,
        parameters: Dict[str, Any],
        context: 'ToolExecutionContext'
    ) -> Any:
        """
        Execute the tool with given parameters and context.

        Returns:
            A plain object (treated as conversational) or a ToolResult.
        """

    def missing_parameters(self, parameters: Dict[str, Any]) -> List[str]:
        """Names of required parameters that are absent or empty."""
        return [
            p.name for p in self.definition.parameters
            if p.required and parameters.get(p.name) in (None, "")
        ]


class FunctionTool(Tool):
    """
    Adapts a plain callable to the Tool interface.

    The callable may be sync or async and may take ``(arguments)`` or
    ``(arguments, context)``.
    """

    def __init__(self, name: str, func: Callable[..., Any], description: str = ""):
        self._func = func
        self._definition = ToolDefinition(name=name, description=description or (func.__doc__ or "").strip())
        self._wants_context = _accepts_context(func)

    @property
    def definition(self) -> ToolDefinition:
        return self._definition

    async def execute(self, parameters: Dict[str, Any], context: 'ToolExecutionContext') -> Any:
        if self._wants_context:
            result = self._func(parameters, context)
        else:
            result = self._func(parameters)
        if inspect.isawaitable(result):
            result = await result
        return result


def _accepts_context(func: Callable[..., Any]) -> bool:
    try:
        params = list(inspect.signature(func).parameters.values())
    except (TypeError, ValueError):
        return False
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 2


def parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse a completed argument buffer.

    An empty buffer means "no arguments".

    Raises:
        ToolArgumentsError: If the buffer is not valid JSON or not an object
    """
    if raw is None or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ToolArgumentsError(f"Tool arguments are not valid JSON: {e.msg} at position {e.pos}") from e
    if not isinstance(value, dict):
        raise ToolArgumentsError(f"Tool arguments must be a JSON object, got {type(value).__name__}")
    return value
