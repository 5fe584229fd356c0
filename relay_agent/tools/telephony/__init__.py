"""Tools that act on the call itself through Conversation Relay control messages."""

from relay_agent.tools.telephony.end_call import EndCallTool
from relay_agent.tools.telephony.live_agent_handoff import LiveAgentHandoffTool
from relay_agent.tools.telephony.play_media import PlayMediaTool
from relay_agent.tools.telephony.send_dtmf import SendDTMFTool
from relay_agent.tools.telephony.switch_language import SwitchLanguageTool

__all__ = [
    "EndCallTool",
    "LiveAgentHandoffTool",
    "PlayMediaTool",
    "SendDTMFTool",
    "SwitchLanguageTool",
]
