"""
Security-critical configuration injection.

SECURITY POLICY:
- API keys, auth tokens and passwords MUST NEVER be in YAML files
- All credentials MUST come from environment variables only
- YAML values for credential fields are overwritten (or cleared) here
"""

import os
from typing import Any, Dict


def _section(config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config_data.get(name)
    return dict(value) if isinstance(value, dict) else {}


def inject_llm_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject the model backend API key from the environment ONLY.

    Environment variables:
    - OPENAI_API_KEY
    """
    llm_cfg = _section(config_data, 'llm')
    llm_cfg['api_key'] = os.getenv('OPENAI_API_KEY') or None
    config_data['llm'] = llm_cfg


def inject_twilio_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject Twilio credentials used by the SMS and verification tools.

    Environment variables:
    - ACCOUNT_SID
    - AUTH_TOKEN
    - VERIFY_SERVICE_SID
    - TWILIO_FROM_NUMBER (may also be set in YAML; it is not a secret)
    """
    twilio_cfg = _section(config_data, 'twilio')
    twilio_cfg['account_sid'] = os.getenv('ACCOUNT_SID') or None
    twilio_cfg['auth_token'] = os.getenv('AUTH_TOKEN') or None
    twilio_cfg['verify_service_sid'] = os.getenv('VERIFY_SERVICE_SID') or None
    from_number = os.getenv('TWILIO_FROM_NUMBER')
    if from_number:
        twilio_cfg['from_number'] = from_number
    config_data['twilio'] = twilio_cfg


def inject_servicenow_credentials(config_data: Dict[str, Any]) -> None:
    """
    Inject ServiceNow credentials used by the ticketing tools.

    Environment variables:
    - SERVICENOW_INSTANCE_URL (or SERVICENOW_INSTANCE as a bare instance name)
    - SERVICENOW_USERNAME
    - SERVICENOW_PASSWORD
    """
    sn_cfg = _section(config_data, 'servicenow')
    instance = os.getenv('SERVICENOW_INSTANCE_URL') or os.getenv('SERVICENOW_INSTANCE')
    if instance:
        sn_cfg['instance_url'] = instance
    sn_cfg['username'] = os.getenv('SERVICENOW_USERNAME') or None
    sn_cfg['password'] = os.getenv('SERVICENOW_PASSWORD') or None
    config_data['servicenow'] = sn_cfg
