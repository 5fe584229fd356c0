"""
Switch Language Tool - change text-to-speech and/or transcription language.
"""

from typing import Any, Dict

import structlog

from relay_agent.core.messages import LanguageMessage
from relay_agent.tools.base import Tool, ToolCategory, ToolDefinition, ToolParameter
from relay_agent.tools.context import ToolExecutionContext

logger = structlog.get_logger(__name__)


class SwitchLanguageTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="switch-language",
            description="Switch the spoken and/or recognised language, e.g. when the caller asks to speak Spanish.",
            category=ToolCategory.TELEPHONY,
            parameters=[
                ToolParameter(name="ttsLanguage", type="string", description="Language code for speech output, e.g. es-ES"),
                ToolParameter(name="transcriptionLanguage", type="string", description="Language code for speech recognition"),
            ]
        )

    async def execute(self, parameters: Dict[str, Any], context: ToolExecutionContext) -> Dict[str, Any]:
        tts = parameters.get("ttsLanguage") or None
        transcription = parameters.get("transcriptionLanguage") or None
        if not tts and not transcription:
            return {
                "success": False,
                "message": "At least one language parameter (ttsLanguage or transcriptionLanguage) must be provided",
            }

        await context.emit_control(LanguageMessage(ttsLanguage=tts, transcriptionLanguage=transcription))
        logger.info("Language switched", call_sid=context.call_sid, tts=tts, transcription=transcription)
        result = {"success": True, "message": "Language switched successfully"}
        if tts:
            result["ttsLanguage"] = tts
        if transcription:
            result["transcriptionLanguage"] = transcription
        return result
