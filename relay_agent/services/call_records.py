"""
Text written about a call after the fact: ServiceNow work notes for
transcripts and recordings, and the status summary a live conversation is
told about.
"""

from typing import Any, Dict, Mapping, Optional

# Status callback fields passed on to the model, in this order
STATUS_FIELDS = (
    "CallStatus",
    "AnsweredBy",
    "CallDuration",
    "SipResponseCode",
    "ErrorCode",
    "ErrorMessage",
)


def status_update(payload: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Summarize a Twilio status callback for insertion into the conversation.

    Returns None when the callback carries neither a call status nor an
    answering-machine result; nothing is inserted for those.
    """
    if not (payload.get("CallStatus") or payload.get("AnsweredBy")):
        return None
    update: Dict[str, Any] = {"event": "callStatus"}
    for key in STATUS_FIELDS:
        value = payload.get(key)
        if value not in (None, ""):
            update[key[0].lower() + key[1:]] = value
    return update


def transcript_notes(payload: Mapping[str, Any]) -> str:
    return "\n".join([
        "=== CALL TRANSCRIPT ===",
        f"Call SID: {payload.get('CallSid')}",
        f"Call Duration: {payload.get('CallDuration')} seconds",
        f"Call Time: {payload.get('CallStartTime')} to {payload.get('CallEndTime')}",
        f"From: {payload.get('From')}",
        f"To: {payload.get('To')}",
        "",
        "FULL TRANSCRIPT:",
        str(payload.get("TranscriptText")),
        "",
        "=== END TRANSCRIPT ===",
        "Generated by Twilio Voice Intelligence",
    ])


def recording_download_url(recording_url: str) -> str:
    return f"{recording_url}.mp3"


def recording_notes(payload: Mapping[str, Any]) -> str:
    recording_url = str(payload.get("RecordingUrl"))
    return "\n".join([
        "=== CALL RECORDING ===",
        f"Recording SID: {payload.get('RecordingSid')}",
        f"Call SID: {payload.get('CallSid')}",
        f"Recording Duration: {payload.get('RecordingDuration')} seconds",
        f"Recording Date: {payload.get('DateCreated')}",
        f"From: {payload.get('From')}",
        f"To: {payload.get('To')}",
        "",
        "RECORDING DOWNLOAD:",
        recording_download_url(recording_url),
        "",
        "NOTE: This recording can be downloaded using Twilio API credentials.",
        f"Access the recording at: {recording_url}",
        "",
        "=== END RECORDING INFO ===",
        "Generated by Twilio Recording Webhook",
    ])
