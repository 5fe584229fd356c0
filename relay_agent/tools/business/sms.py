"""
Send SMS Tool - text the caller (or another number) through Twilio.
"""

from typing import Any, Dict

import structlog

from relay_agent.errors import ExternalServiceError
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class SendSMSTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="send-sms",
            description="Send an SMS message to a phone number.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="to", type="string", description="Destination number in E.164 format", required=True),
                ToolParameter(name="message", type="string", description="Text of the message", required=True),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        missing = self.missing_parameters(parameters)
        if missing:
            return {"success": False, "message": f"Missing required parameters: {', '.join(missing)}"}

        twilio = context.get_service("twilio")
        if twilio is None or not twilio.messaging_configured:
            logger.error("Twilio messaging is not configured", call_sid=context.call_sid)
            return {"success": False, "message": "Missing required Twilio credentials"}

        to = parameters["to"]
        try:
            await twilio.send_sms(to, parameters["message"])
        except ExternalServiceError as e:
            return {"success": False, "message": f"SMS send failed: {e}"}
        return {"success": True, "message": "SMS sent successfully", "recipient": to}
