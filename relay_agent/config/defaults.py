"""
Default value application for configuration.

This module handles:
- Server bind defaults (host, port, public base URL)
- Inactivity monitor thresholds with environment variable overrides
- Default instruction/tool manifest asset names
"""

import os
from typing import Any, Dict


def apply_server_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply HTTP/WebSocket server defaults from environment variables.

    Environment variables:
    - RELAY_HOST: Bind address (default: 0.0.0.0)
    - PORT: Listen port (default: 3000)
    - SERVER_BASE_URL: Public host used in generated TwiML (default: request Host header)
    """
    server_cfg = config_data.get('server', {}) or {}

    server_cfg.setdefault('host', os.getenv('RELAY_HOST', '0.0.0.0'))
    try:
        server_cfg.setdefault('port', int(os.getenv('PORT', '3000')))
    except ValueError:
        server_cfg['port'] = 3000

    base_url = os.getenv('SERVER_BASE_URL')
    if base_url:
        server_cfg.setdefault('public_base_url', base_url)

    config_data['server'] = server_cfg


def apply_inactivity_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply inactivity monitor thresholds with environment variable overrides.

    Environment variables (optional overrides):
    - SILENCE_SECONDS_THRESHOLD: Seconds of silence before a reminder (default: 20)
    - SILENCE_RETRY_THRESHOLD: Reminder count before the call is ended (default: 3)
    """
    inactivity_cfg = config_data.get('inactivity', {}) or {}

    try:
        if 'SILENCE_SECONDS_THRESHOLD' in os.environ:
            inactivity_cfg['reminder_seconds'] = float(os.environ['SILENCE_SECONDS_THRESHOLD'])

        if 'SILENCE_RETRY_THRESHOLD' in os.environ:
            inactivity_cfg['max_retries'] = int(os.environ['SILENCE_RETRY_THRESHOLD'])
    except ValueError:
        # Ignore invalid conversions; keep YAML values
        pass

    config_data['inactivity'] = inactivity_cfg


def apply_assets_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply default instruction and tool manifest asset names.

    Environment variables:
    - LLM_CONTEXT: Instruction file name (default: defaultContext.md)
    - LLM_MANIFEST: Tool manifest file name (default: defaultToolManifest.json)
    """
    assets_cfg = config_data.get('assets', {}) or {}

    assets_cfg.setdefault('context_file', os.getenv('LLM_CONTEXT', 'defaultContext.md'))
    assets_cfg.setdefault('tool_manifest_file', os.getenv('LLM_MANIFEST', 'defaultToolManifest.json'))

    config_data['assets'] = assets_cfg
