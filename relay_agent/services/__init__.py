"""REST clients for the external systems the business tools and call webhooks talk to."""

from relay_agent.services.servicenow import ServiceNowClient
from relay_agent.services.twilio import TwilioClient
from relay_agent.services.voice import VoiceCallClient, conversation_relay_twiml

__all__ = ["ServiceNowClient", "TwilioClient", "VoiceCallClient", "conversation_relay_twiml"]
