"""
Unit tests for the telephony tools.

These tools act on the call itself: some return a direct-control message,
others emit one through the context and report back to the model.
"""

import json

import pytest

from relay_agent.tools import ToolCategory, ToolResultKind
from relay_agent.tools.telephony import (
    EndCallTool,
    LiveAgentHandoffTool,
    PlayMediaTool,
    SendDTMFTool,
    SwitchLanguageTool,
)


class TestEndCallTool:
    """Test suite for end call tool."""

    @pytest.fixture
    def tool(self):
        return EndCallTool()

    def test_definition(self, tool):
        """Test tool definition is valid."""
        definition = tool.definition

        assert definition.name == "end-call"
        assert definition.category is ToolCategory.TELEPHONY
        assert [p.name for p in definition.parameters] == ["summary"]
        assert definition.parameters[0].required is True

    @pytest.mark.asyncio
    async def test_returns_end_message(self, tool, tool_context):
        """The end message is returned for direct delivery, not emitted."""
        result = await tool.execute({"summary": "Password reset done"}, tool_context)

        assert result.kind is ToolResultKind.DIRECT_CONTROL
        assert result.payload["type"] == "end"
        assert json.loads(result.payload["handoffData"]) == {
            "reasonCode": "end-call",
            "reason": "Caller is done",
            "conversationSummary": "Password reset done",
        }
        assert tool_context.emitted == []

    @pytest.mark.asyncio
    async def test_default_reason(self, tool, tool_context):
        """Without configuration the generic reason is used."""
        tool_context.config = {}

        result = await tool.execute({}, tool_context)

        handoff = json.loads(result.payload["handoffData"])
        assert handoff == {"reasonCode": "end-call", "reason": "Ending the call"}


class TestSendDTMFTool:
    """Test suite for DTMF tool."""

    @pytest.fixture
    def tool(self):
        return SendDTMFTool()

    @pytest.mark.asyncio
    async def test_send_digits(self, tool, tool_context):
        """Digits become a sendDigits control message."""
        result = await tool.execute({"dtmfDigit": "1w2#"}, tool_context)

        assert result.kind is ToolResultKind.DIRECT_CONTROL
        assert result.payload == {"type": "sendDigits", "digits": "1w2#"}

    @pytest.mark.asyncio
    async def test_numeric_digits_accepted(self, tool, tool_context):
        """Models sometimes send digits as a number."""
        result = await tool.execute({"dtmfDigit": 42}, tool_context)
        assert result.payload == {"type": "sendDigits", "digits": "42"}

    @pytest.mark.asyncio
    async def test_no_digits(self, tool, tool_context):
        """Nothing to send is a context error."""
        result = await tool.execute({}, tool_context)

        assert result.kind is ToolResultKind.CONTEXT_ERROR
        assert "without any digits" in result.payload


class TestLiveAgentHandoffTool:
    """Test suite for live agent handoff tool."""

    @pytest.mark.asyncio
    async def test_emits_end_and_reports(self, tool_context):
        """The handoff end message is emitted and the model is told it happened."""
        result = await LiveAgentHandoffTool().execute({"summary": "Billing dispute"}, tool_context)

        assert result == {
            "success": True,
            "message": "Live agent handoff initiated",
            "summary": "Billing dispute",
        }
        assert len(tool_context.emitted) == 1
        handoff = json.loads(tool_context.emitted[0]["handoffData"])
        assert handoff == {"reasonCode": "live-agent-handoff", "reason": "Billing dispute"}

    @pytest.mark.asyncio
    async def test_requires_emitter(self):
        """Without a control emitter the tool cannot hand off."""
        from relay_agent.tools import ToolExecutionContext

        with pytest.raises(RuntimeError):
            await LiveAgentHandoffTool().execute({"summary": "x"}, ToolExecutionContext())


class TestPlayMediaTool:
    """Test suite for play media tool."""

    @pytest.fixture
    def tool(self):
        return PlayMediaTool()

    @pytest.mark.asyncio
    async def test_play(self, tool, tool_context):
        """A play message is emitted with only the options given."""
        result = await tool.execute(
            {"source": "https://example.com/hold.mp3", "loop": 0, "interruptible": True},
            tool_context,
        )

        assert tool_context.emitted == [
            {"type": "play", "source": "https://example.com/hold.mp3", "loop": 0, "interruptible": True}
        ]
        assert result["success"] is True
        assert result["source"] == "https://example.com/hold.mp3"
        assert "preemptible" not in result

    @pytest.mark.asyncio
    async def test_missing_source(self, tool, tool_context):
        """Without a source nothing is emitted."""
        result = await tool.execute({}, tool_context)

        assert result == {"success": False, "message": "Source URL is required to play media", "source": ""}
        assert tool_context.emitted == []


class TestSwitchLanguageTool:
    """Test suite for switch language tool."""

    @pytest.fixture
    def tool(self):
        return SwitchLanguageTool()

    @pytest.mark.asyncio
    async def test_switch_both(self, tool, tool_context):
        """Both languages are switched together."""
        result = await tool.execute({"ttsLanguage": "es-ES", "transcriptionLanguage": "es-US"}, tool_context)

        assert tool_context.emitted == [
            {"type": "language", "ttsLanguage": "es-ES", "transcriptionLanguage": "es-US"}
        ]
        assert result == {
            "success": True,
            "message": "Language switched successfully",
            "ttsLanguage": "es-ES",
            "transcriptionLanguage": "es-US",
        }

    @pytest.mark.asyncio
    async def test_switch_tts_only(self, tool, tool_context):
        """Unset languages are left out of the control message."""
        await tool.execute({"ttsLanguage": "fr-FR"}, tool_context)

        assert tool_context.emitted == [{"type": "language", "ttsLanguage": "fr-FR"}]

    @pytest.mark.asyncio
    async def test_requires_a_language(self, tool, tool_context):
        """At least one language must be given."""
        result = await tool.execute({}, tool_context)

        assert result["success"] is False
        assert tool_context.emitted == []
