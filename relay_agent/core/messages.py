"""
Conversation Relay wire messages.

Inbound events arrive as JSON objects with a ``type`` discriminator.
Outbound messages travel on two logical channels multiplexed onto the same
WebSocket: conversational text tokens and direct-control instructions.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator


# -----------------------------------------------------------------------------
# Inbound events
# -----------------------------------------------------------------------------


class InboundEvent(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str


class SetupEvent(InboundEvent):
    type: Literal["setup"] = "setup"
    sessionId: Optional[str] = None
    callSid: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    direction: Optional[str] = None
    customParameters: Dict[str, Any] = Field(default_factory=dict)


class PromptEvent(InboundEvent):
    type: Literal["prompt"] = "prompt"
    voicePrompt: str = ""
    lang: Optional[str] = None
    last: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_voice_text(cls, data: Any):
        if isinstance(data, dict) and "voicePrompt" not in data and "voiceText" in data:
            data = dict(data, voicePrompt=data["voiceText"])
        return data


class InterruptEvent(InboundEvent):
    type: Literal["interrupt"] = "interrupt"
    utteranceUntilInterrupt: str = ""
    durationUntilInterruptMs: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_partial_utterance(cls, data: Any):
        if isinstance(data, dict) and "utteranceUntilInterrupt" not in data and "partialUtterance" in data:
            data = dict(data, utteranceUntilInterrupt=data["partialUtterance"])
        return data


class DTMFEvent(InboundEvent):
    type: Literal["dtmf"] = "dtmf"
    digit: str = ""


class InfoEvent(InboundEvent):
    type: Literal["info"] = "info"


class ErrorEvent(InboundEvent):
    type: Literal["error"] = "error"
    description: str = ""


class UnknownEvent(InboundEvent):
    """Anything with an unrecognised (or missing) type tag."""


INBOUND_EVENT_TYPES = {
    "setup": SetupEvent,
    "prompt": PromptEvent,
    "interrupt": InterruptEvent,
    "dtmf": DTMFEvent,
    "info": InfoEvent,
    "error": ErrorEvent,
}

# Inbound types that count as conversational activity for the inactivity monitor
QUALIFYING_EVENT_TYPES = frozenset({"prompt", "interrupt", "dtmf"})


def parse_inbound(data: Any) -> InboundEvent:
    """
    Parse a decoded JSON object into a typed inbound event.

    Unrecognised type tags (and payloads that are not objects) produce an
    UnknownEvent rather than raising, so the session can log and continue.

    Raises:
        ValidationError: If a recognised event has fields of the wrong type
    """
    if not isinstance(data, dict):
        return UnknownEvent(type="<invalid>", payload=data)
    event_type = data.get("type")
    model = INBOUND_EVENT_TYPES.get(event_type) if isinstance(event_type, str) else None
    if model is None:
        return UnknownEvent(**dict(data, type=str(event_type)))
    return model.model_validate(data)


# -----------------------------------------------------------------------------
# Outbound messages
# -----------------------------------------------------------------------------


class OutboundMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TextMessage(OutboundMessage):
    type: Literal["text"] = "text"
    token: str
    last: bool = False
    lang: Optional[str] = None
    interruptible: Optional[bool] = None
    preemptible: Optional[bool] = None


class EndMessage(OutboundMessage):
    type: Literal["end"] = "end"
    handoffData: str = ""


class SendDigitsMessage(OutboundMessage):
    type: Literal["sendDigits"] = "sendDigits"
    digits: str


class PlayMessage(OutboundMessage):
    type: Literal["play"] = "play"
    source: str
    loop: Optional[int] = None
    preemptible: Optional[bool] = None
    interruptible: Optional[bool] = None


class LanguageMessage(OutboundMessage):
    type: Literal["language"] = "language"
    ttsLanguage: Optional[str] = None
    transcriptionLanguage: Optional[str] = None


ControlMessage = Annotated[
    Union[EndMessage, SendDigitsMessage, PlayMessage, LanguageMessage],
    Field(discriminator="type"),
]

_control_adapter = TypeAdapter(ControlMessage)


def validate_control_message(payload: Any) -> Dict[str, Any]:
    """
    Validate a direct-control payload against the closed set of control types.

    Accepts either a dict or an OutboundMessage instance and returns the
    JSON-ready dict.

    Raises:
        ValueError: If the payload is not a recognised control message
    """
    if isinstance(payload, OutboundMessage):
        payload = payload.to_dict()
    try:
        message = _control_adapter.validate_python(payload)
    except ValidationError as e:
        raise ValueError(f"Invalid control message: {e.errors(include_url=False)}") from e
    return message.to_dict()


def text_token(token: str, last: bool = False) -> Dict[str, Any]:
    return TextMessage(token=token, last=last).to_dict()


def end_call_message(reason_code: str, reason: str, **extra: Any) -> Dict[str, Any]:
    """
    Build an ``end`` message. The transport expects handoffData as a JSON string.
    """
    handoff = {"reasonCode": reason_code, "reason": reason}
    handoff.update({k: v for k, v in extra.items() if v is not None})
    return EndMessage(handoffData=json.dumps(handoff)).to_dict()


def validate_outbound_message(payload: Any) -> Dict[str, Any]:
    """
    Validate any message we may send to the transport: a text token or a
    control message.

    Raises:
        ValueError: If the payload is neither
    """
    if isinstance(payload, OutboundMessage):
        payload = payload.to_dict()
    if isinstance(payload, dict) and payload.get("type") == "text":
        try:
            return TextMessage.model_validate(payload).to_dict()
        except ValidationError as e:
            raise ValueError(f"Invalid text message: {e.errors(include_url=False)}") from e
    return validate_control_message(payload)
