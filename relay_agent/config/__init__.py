"""
Configuration for the Conversation Relay agent.

Pydantic v2 models for validation and type safety, loaded from a YAML file
with environment variable expansion. Credentials are injected from the
environment only (see security.py).
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
import structlog

from relay_agent.config.loaders import resolve_config_path, load_yaml_with_env_expansion
from relay_agent.config.security import (
    inject_llm_credentials,
    inject_servicenow_credentials,
    inject_twilio_credentials,
)
from relay_agent.config.validation import validate_config
from relay_agent.config.defaults import (
    apply_assets_defaults,
    apply_inactivity_defaults,
    apply_server_defaults,
)

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/relay-agent.yaml"


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    ws_path: str = Field(default="/conversation-relay")
    # Public host Twilio reaches this server on (e.g. "relay.example.com");
    # None -> the Host header of the incoming request
    public_base_url: Optional[str] = None
    # Parameter data registered ahead of a call, and kept after it ends
    call_reference_ttl_sec: Optional[float] = Field(default=3600.0)
    call_reference_max_entries: Optional[int] = Field(default=1000)


class RelayVoiceConfig(BaseModel):
    """Attributes of the <ConversationRelay> noun in generated TwiML; None is omitted."""
    voice: Optional[str] = Field(default="en-AU-Journey-D")
    tts_provider: Optional[str] = None
    transcription_provider: Optional[str] = Field(default="deepgram")
    language: Optional[str] = None
    welcome_greeting: Optional[str] = None
    dtmf_detection: Optional[bool] = Field(default=True)
    interrupt_by_dtmf: Optional[bool] = Field(default=True)
    interruptible: Optional[bool] = None
    debug: Optional[bool] = None
    record_calls: bool = Field(default=True)


class LLMConfig(BaseModel):
    api_key: Optional[str] = None
    base_url: str = Field(default="https://api.openai.com/v1")
    model: str = Field(default="gpt-4o-mini")
    temperature: Optional[float] = Field(default=None)
    max_tokens: Optional[int] = Field(default=None)
    # Connect/first-byte timeout; the stream itself has no total deadline
    timeout_sec: float = Field(default=30.0)
    # Model rounds after conversational tool results, per caller turn
    max_follow_ups: Optional[int] = Field(default=8)  # None -> unlimited


class InactivityConfig(BaseModel):
    reminder_seconds: float = Field(default=20.0)
    max_retries: int = Field(default=3)
    poll_interval_sec: float = Field(default=1.0)


class AssetsConfig(BaseModel):
    directory: Optional[str] = None  # None -> packaged relay_agent/assets
    context_file: str = Field(default="defaultContext.md")
    tool_manifest_file: str = Field(default="defaultToolManifest.json")


class TwilioConfig(BaseModel):
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    verify_service_sid: Optional[str] = None
    from_number: Optional[str] = None
    base_url: str = Field(default="https://api.twilio.com/2010-04-01")
    verify_base_url: str = Field(default="https://verify.twilio.com/v2")
    timeout_sec: float = Field(default=10.0)


class ServiceNowConfig(BaseModel):
    instance_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_sec: float = Field(default=10.0)


class LoggingConfig(BaseModel):
    level: str = Field(default="info")  # debug|info|warning|error|critical


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    inactivity: InactivityConfig = Field(default_factory=InactivityConfig)
    relay: RelayVoiceConfig = Field(default_factory=RelayVoiceConfig)
    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)
    servicenow: ServiceNowConfig = Field(default_factory=ServiceNowConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    # Free-form per-tool settings, read by tools via ToolExecutionContext.get_config_value
    tools: Dict[str, Any] = Field(default_factory=dict)


def load_config(path: Optional[str] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Path to YAML configuration file (absolute or relative to project root).
              Defaults to $RELAY_CONFIG or config/relay-agent.yaml.
        allow_missing: When True a missing file yields an all-defaults config.

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If the file doesn't exist and allow_missing is False
        yaml.YAMLError: If YAML parsing fails
    """
    # Phase 1: Load YAML file with environment variable expansion
    path = resolve_config_path(path or os.getenv("RELAY_CONFIG", DEFAULT_CONFIG_PATH))
    try:
        config_data = load_yaml_with_env_expansion(path)
    except FileNotFoundError:
        if not allow_missing:
            raise
        logger.info("Configuration file not found; using defaults", path=path)
        config_data = {}

    # Phase 2: Security - Inject credentials from environment variables only
    inject_llm_credentials(config_data)
    inject_twilio_credentials(config_data)
    inject_servicenow_credentials(config_data)

    # Phase 3: Apply default values
    apply_server_defaults(config_data)
    apply_inactivity_defaults(config_data)
    apply_assets_defaults(config_data)

    # Phase 4: Validate and return
    return AppConfig(**config_data)


__all__ = [
    'AppConfig',
    'AssetsConfig',
    'InactivityConfig',
    'LLMConfig',
    'LoggingConfig',
    'RelayVoiceConfig',
    'ServerConfig',
    'ServiceNowConfig',
    'TwilioConfig',
    'load_config',
    'validate_config',
]
