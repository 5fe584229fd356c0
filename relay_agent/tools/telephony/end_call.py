"""
End Call Tool - hang up through the Conversation Relay transport.
"""

from typing import Any, Dict

import structlog

from relay_agent.core.messages import end_call_message
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class EndCallTool(Tool):
    """
    End the current call.

    The end message goes straight to the transport; the model does not get a
    follow-up turn to comment on it.
    """

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="end-call",
            description=(
                "End the call once the caller is done. Always confirm there is nothing "
                "else you can help with before using this tool."
            ),
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(
                    name="summary",
                    type="string",
                    description="Short summary of the conversation, passed on with the hang-up",
                    required=True,
                )
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> ToolResult:
        reason = context.get_config_value("end-call.reason", "Ending the call")
        logger.info("End call requested", call_sid=context.call_sid)
        return ToolResult.direct_control(
            end_call_message("end-call", reason, conversationSummary=parameters.get("summary"))
        )
