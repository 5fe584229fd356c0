"""
Tool registry - maps tool names to resolved implementations for one session.

A registry is never mutated after a session starts using it: a reconfigure
builds a fresh one from the new catalog and swaps the reference.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import structlog

from relay_agent.core.messages import validate_control_message
from relay_agent.errors import ToolCatalogError
from relay_agent.metrics import TOOL_EXECUTIONS
from relay_agent.tools.base import FunctionTool, Tool, ToolDefinition, ToolResult, ToolResultKind
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

ToolLike = Union[Tool, Callable[..., Any]]


class ToolRegistry:
    """
    Registry for the tools available to one session.

    Keeps insertion order so the schema sent to the model follows the
    catalog order.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}
        self._definitions: Dict[str, ToolDefinition] = {}

    @classmethod
    def from_catalog(
        cls,
        catalog: Iterable[Any],
        available: Mapping[str, ToolLike],
    ) -> "ToolRegistry":
        """
        Build a registry from an ordered tool catalog.

        Args:
            catalog: Manifest entries or ToolDefinition objects
            available: Tool name -> implementation (Tool instance or callable)

        Raises:
            ToolCatalogError: If an entry is malformed or names a tool with no
                implementation
        """
        registry = cls()
        missing = []
        for entry in catalog:
            try:
                definition = entry if isinstance(entry, ToolDefinition) else ToolDefinition.from_manifest(entry)
            except ValueError as e:
                raise ToolCatalogError(str(e)) from e
            impl = available.get(definition.name)
            if impl is None:
                missing.append(definition.name)
                continue
            registry.register(definition.name, impl, definition=definition)
        if missing:
            raise ToolCatalogError(f"No implementation for catalog tools: {', '.join(missing)}")
        logger.info("Tool registry built", tools=registry.list_tools())
        return registry

    def register(self, name: str, tool: ToolLike, definition: Optional[ToolDefinition] = None) -> None:
        """
        Register a tool under ``name``.

        Plain callables are wrapped in FunctionTool. The definition defaults
        to the tool's own.
        """
        if not isinstance(tool, Tool):
            if not callable(tool):
                raise TypeError(f"Tool '{name}' must be a Tool or a callable")
            tool = FunctionTool(name, tool)

        if name in self._tools:
            logger.warning("Tool already registered, overwriting", tool=name)

        self._tools[name] = tool
        self._definitions[name] = definition or tool.definition
        logger.debug("Registered tool", tool=name, category=self._definitions[name].category.value)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> List[str]:
        """
        Get list of all tool names.

        Returns:
            List of tool names
        """
        return list(self._tools.keys())

    def definitions(self) -> List[ToolDefinition]:
        return list(self._definitions.values())

    def to_openai_schema(self) -> List[Dict[str, Any]]:
        """
        Export all tools in OpenAI Chat Completions API format.

        Returns:
            List of tool schemas for OpenAI Chat Completions (nested format)
        """
        return [definition.to_openai_schema() for definition in self._definitions.values()]

    async def execute(
        self,
        name: str,
        arguments: Dict[str, Any],
        context: ToolExecutionContext,
    ) -> ToolResult:
        """
        Execute a tool and classify its result.

        Never raises for tool-level problems: an unknown name, an exception
        from the tool, or an invalid control payload all come back as
        context errors.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Unknown tool requested", tool=name, call_sid=context.call_sid)
            TOOL_EXECUTIONS.labels(tool=name, kind=ToolResultKind.CONTEXT_ERROR.value).inc()
            return ToolResult.context_error(f"Unknown tool: {name}")

        logger.info("Executing tool", tool=name, call_sid=context.call_sid, arguments=arguments)
        try:
            outcome = await tool.execute(arguments, context)
        except Exception as e:
            logger.error("Tool execution failed", tool=name, call_sid=context.call_sid, error=str(e), exc_info=True)
            TOOL_EXECUTIONS.labels(tool=name, kind=ToolResultKind.CONTEXT_ERROR.value).inc()
            return ToolResult.context_error(f"Tool {name} failed: {e}")

        result = outcome if isinstance(outcome, ToolResult) else ToolResult.conversational(outcome)

        if result.kind is ToolResultKind.DIRECT_CONTROL:
            try:
                result = ToolResult.direct_control(validate_control_message(result.payload))
            except ValueError as e:
                logger.error("Tool returned an invalid control message", tool=name, error=str(e))
                result = ToolResult.context_error(f"Tool {name} produced an invalid control message")

        TOOL_EXECUTIONS.labels(tool=name, kind=result.kind.value).inc()
        logger.info("Tool executed", tool=name, call_sid=context.call_sid, kind=result.kind.value)
        return result
