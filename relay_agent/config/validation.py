"""
Startup validation for configuration.

Errors block startup, warnings are logged but non-blocking.
"""

import os
from typing import List, Tuple

from relay_agent.core.assets import AssetLoader
from relay_agent.errors import AssetError


def validate_config(config) -> Tuple[List[str], List[str]]:
    """
    Validate an AppConfig before serving calls.

    Returns:
        (errors, warnings): Lists of validation errors and warnings
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.llm.api_key:
        errors.append("No model backend API key configured (need OPENAI_API_KEY)")

    if not 1 <= config.server.port <= 65535:
        errors.append(f"Server port {config.server.port} out of valid range (1-65535)")

    if config.inactivity.reminder_seconds <= 0:
        errors.append("inactivity.reminder_seconds must be positive")
    if config.inactivity.max_retries < 1:
        errors.append("inactivity.max_retries must be at least 1")

    loader = AssetLoader(config.assets.directory)
    try:
        loader.load(config.assets.context_file, config.assets.tool_manifest_file)
    except AssetError as e:
        errors.append(f"Default assets unusable: {e}")

    if not (config.twilio.account_sid and config.twilio.auth_token):
        warnings.append("Twilio credentials not set; SMS and verification tools will report failures")
    if not (config.servicenow.instance_url and config.servicenow.username and config.servicenow.password):
        warnings.append("ServiceNow credentials not set; ticket and customer tools will report failures")

    if os.getenv('LOG_LEVEL', 'info').lower() == 'debug':
        warnings.append("Debug logging enabled (caller speech and tool arguments are logged)")

    return errors, warnings
