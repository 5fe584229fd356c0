"""
Send DTMF Tool - play touch-tones into the call (e.g. to drive an IVR).
"""

from typing import Any, Dict

import structlog

from relay_agent.core.messages import SendDigitsMessage
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter, ToolResult
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class SendDTMFTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="send-dtmf",
            description="Send DTMF digits into the call.",
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(
                    name="dtmfDigit",
                    type="string",
                    description="Digits to send: 0-9, * and #, 'w' for a half-second pause",
                    required=True,
                )
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> ToolResult:
        digits = str(parameters.get("dtmfDigit") or parameters.get("digits") or "")
        if not digits:
            return ToolResult.context_error("send-dtmf called without any digits")
        logger.info("Sending DTMF", call_sid=context.call_sid, digits=digits)
        return ToolResult.direct_control(SendDigitsMessage(digits=digits).to_dict())
