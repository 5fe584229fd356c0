"""
Twilio Programmable Voice through the twilio SDK: TwiML that connects a call
to this server's Conversation Relay endpoint, and outbound call placement.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import structlog
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client
from twilio.twiml.voice_response import Connect, VoiceResponse

from relay_agent.config import RelayVoiceConfig, TwilioConfig
from relay_agent.errors import ExternalServiceError

logger = structlog.get_logger(__name__)

CALL_REFERENCE_PARAMETER = "callReference"

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]

# RelayVoiceConfig field -> <ConversationRelay> keyword (the SDK camel-cases it)
RELAY_ATTRIBUTES = (
    "voice",
    "tts_provider",
    "transcription_provider",
    "language",
    "welcome_greeting",
    "dtmf_detection",
    "interrupt_by_dtmf",
    "interruptible",
    "debug",
)


def public_host(base_url: str) -> str:
    """'https://relay.example.com/' -> 'relay.example.com'."""
    host = base_url.strip()
    for scheme in ("https://", "http://", "wss://", "ws://"):
        if host.startswith(scheme):
            host = host[len(scheme):]
            break
    return host.rstrip("/")


def relay_attributes(options: RelayVoiceConfig) -> Dict[str, str]:
    attributes = {}
    for key in RELAY_ATTRIBUTES:
        value = getattr(options, key)
        if value is None:
            continue
        attributes[key] = ("true" if value else "false") if isinstance(value, bool) else str(value)
    return attributes


def conversation_relay_twiml(
    ws_url: str,
    *,
    call_reference: Optional[str] = None,
    options: Optional[RelayVoiceConfig] = None,
) -> str:
    """
    Build the TwiML that hands a call to the Conversation Relay WebSocket.

    The call reference travels as a custom parameter, which arrives in the
    setup message and selects the parameter data registered for the call.
    """
    response = VoiceResponse()
    connect = Connect()
    relay = connect.conversation_relay(url=ws_url, **relay_attributes(options or RelayVoiceConfig()))
    if call_reference:
        relay.parameter(name=CALL_REFERENCE_PARAMETER, value=call_reference)
    response.append(connect)
    return str(response)


class VoiceCallClient:
    """
    Places outbound calls with the twilio REST client.

    The SDK is blocking, so each request runs in a worker thread. The client
    is created on first use.
    """

    def __init__(
        self,
        config: TwilioConfig,
        *,
        client_factory: Optional[Callable[[str, str], Any]] = None,
    ):
        self.config = config
        self._client_factory = client_factory or Client
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(self.config.account_sid and self.config.auth_token and self.config.from_number)

    def _get_client(self):
        if self._client is None:
            self._client = self._client_factory(self.config.account_sid, self.config.auth_token)
        return self._client

    async def place_call(
        self,
        to: str,
        twiml: str,
        *,
        record: bool = True,
        status_callback: Optional[str] = None,
    ) -> str:
        """
        Dial ``to`` from the configured number and run ``twiml`` once answered.

        Returns:
            The new call's SID

        Raises:
            ExternalServiceError: When calling is not configured or Twilio rejects the call
        """
        if not self.configured:
            raise ExternalServiceError("Twilio voice calling is not configured")

        params: Dict[str, Any] = {"to": to, "from_": self.config.from_number, "twiml": twiml, "record": record}
        if status_callback:
            params["status_callback"] = status_callback
            params["status_callback_event"] = STATUS_CALLBACK_EVENTS

        try:
            call = await asyncio.to_thread(self._get_client().calls.create, **params)
        except TwilioRestException as e:
            logger.error("Outbound call rejected", to=to, status=e.status, code=e.code, error=e.msg)
            raise ExternalServiceError(f"Twilio API error: {e.status} {e.msg}", status=e.status) from e

        logger.info("Outbound call placed", to=to, call_sid=call.sid, status=call.status)
        return call.sid

    async def close(self) -> None:
        # the SDK opens a connection per request
        self._client = None
