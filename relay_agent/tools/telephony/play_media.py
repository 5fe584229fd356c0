"""
Play Media Tool - play an audio file into the call.
"""

from typing import Any, Dict

import structlog

from relay_agent.core.messages import PlayMessage
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class PlayMediaTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="play-media",
            description="Play an audio file from a URL to the caller.",
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(name="source", type="string", description="URL of the audio file", required=True),
                ToolParameter(name="loop", type="integer", description="Number of times to play; 0 loops forever"),
                ToolParameter(name="preemptible", type="boolean", description="Later text can cut the audio short"),
                ToolParameter(name="interruptible", type="boolean", description="Caller speech stops the audio"),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        source = parameters.get("source")
        if not source:
            logger.warning("Play media called without a source", call_sid=context.call_sid)
            return {"success": False, "message": "Source URL is required to play media", "source": ""}

        message = PlayMessage(
            source=source,
            loop=parameters.get("loop"),
            preemptible=parameters.get("preemptible"),
            interruptible=parameters.get("interruptible"),
        )
        await context.emit_control(message)
        logger.info("Media playback started", call_sid=context.call_sid, source=source)
        return {
            "success": True,
            "message": "Media playback initiated successfully",
            **{k: v for k, v in message.to_dict().items() if k != "type"},
        }
