"""
Verification Tools - one-time passcodes through Twilio Verify.
"""

from typing import Any, Dict

import structlog

from relay_agent.errors import ExternalServiceError
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)

CREDENTIALS_MISSING = "Missing required Twilio credentials"


class SendVerificationTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="send-verification",
            description="Send a one-time verification code to the caller by SMS or voice call.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="to", type="string", description="Phone number in E.164 format", required=True),
                ToolParameter(
                    name="channel",
                    type="string",
                    description="Delivery channel",
                    enum=["sms", "call"],
                    default="sms",
                ),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        to = parameters.get("to")
        if not to:
            return {"success": False, "message": "A phone number is required to send a verification code"}

        twilio = context.get_service("twilio")
        if twilio is None or not twilio.verify_configured:
            logger.error("Twilio Verify is not configured", call_sid=context.call_sid)
            return {"success": False, "message": CREDENTIALS_MISSING}

        channel = parameters.get("channel") or "sms"
        try:
            verification = await twilio.start_verification(to, channel)
        except ExternalServiceError as e:
            return {"success": False, "message": f"Verification send failed: {e}"}
        return {
            "success": True,
            "message": f"Verification code sent successfully via {channel}",
            "recipient": to,
            "channel": channel,
            "verification_sid": verification.get("sid"),
        }


class CheckVerificationTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="check-verification",
            description="Check the verification code the caller read back.",
            category=ToolCategory.BUSINESS,
            parameters=[
                ToolParameter(name="to", type="string", description="Phone number the code was sent to", required=True),
                ToolParameter(name="code", type="string", description="Code supplied by the caller", required=True),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        missing = self.missing_parameters(parameters)
        if missing:
            return {
                "success": False,
                "message": f"Missing required parameters: {', '.join(missing)}",
                "verified": False,
            }

        twilio = context.get_service("twilio")
        if twilio is None or not twilio.verify_configured:
            logger.error("Twilio Verify is not configured", call_sid=context.call_sid)
            return {"success": False, "message": CREDENTIALS_MISSING, "verified": False}

        to = parameters["to"]
        try:
            check = await twilio.check_verification(to, str(parameters["code"]))
        except ExternalServiceError as e:
            return {"success": False, "message": f"Verification check failed: {e}", "verified": False}

        verified = check.get("status") == "approved"
        return {
            "success": True,
            "message": "Verification successful" if verified else "Verification failed - invalid code",
            "verified": verified,
            "recipient": to,
            "status": check.get("status"),
        }
