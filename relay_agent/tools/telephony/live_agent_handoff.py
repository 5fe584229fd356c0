"""
Live Agent Handoff Tool - end the AI leg so the call can be routed to a human.

Emits the end message during execution and still reports back to the model,
which may say a closing line before the transport tears the session down.
"""

from typing import Any, Dict

import structlog

from relay_agent.core.messages import end_call_message
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class LiveAgentHandoffTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="live-agent-handoff",
            description=(
                "Transfer the caller to a live agent when they ask for a human or "
                "the request is outside what you can handle."
            ),
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(
                    name="summary",
                    type="string",
                    description="Summary of the conversation so far, for the receiving agent",
                    required=True,
                )
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        summary = parameters.get("summary") or ""
        logger.info("Live agent handoff requested", call_sid=context.call_sid)
        await context.emit_control(end_call_message("live-agent-handoff", summary))
        return {
            "success": True,
            "message": "Live agent handoff initiated",
            "summary": summary,
        }
