"""
Unit tests for config.security module.

Tests cover:
- Model backend API key injection (environment variables only)
- Twilio credential injection
- ServiceNow credential injection
"""

import pytest

from relay_agent.config.security import (
    inject_llm_credentials,
    inject_servicenow_credentials,
    inject_twilio_credentials,
)

CREDENTIAL_VARS = (
    "OPENAI_API_KEY", "ACCOUNT_SID", "AUTH_TOKEN", "VERIFY_SERVICE_SID", "TWILIO_FROM_NUMBER",
    "SERVICENOW_INSTANCE_URL", "SERVICENOW_INSTANCE", "SERVICENOW_USERNAME", "SERVICENOW_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)


class TestInjectLLMCredentials:
    """Tests for inject_llm_credentials function."""

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        config_data = {"llm": {"model": "gpt-4o-mini"}}
        inject_llm_credentials(config_data)

        assert config_data["llm"] == {"model": "gpt-4o-mini", "api_key": "sk-env"}

    def test_yaml_api_key_ignored(self):
        """A key written into YAML is discarded."""
        config_data = {"llm": {"api_key": "sk-from-yaml"}}
        inject_llm_credentials(config_data)

        assert config_data["llm"]["api_key"] is None

    def test_missing_section(self):
        config_data = {}
        inject_llm_credentials(config_data)
        assert config_data["llm"] == {"api_key": None}


class TestInjectTwilioCredentials:
    """Tests for inject_twilio_credentials function."""

    def test_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCOUNT_SID", "AC123")
        monkeypatch.setenv("AUTH_TOKEN", "tok")
        monkeypatch.setenv("VERIFY_SERVICE_SID", "VA123")
        config_data = {"twilio": {"timeout_sec": 5}}
        inject_twilio_credentials(config_data)

        assert config_data["twilio"] == {
            "timeout_sec": 5,
            "account_sid": "AC123",
            "auth_token": "tok",
            "verify_service_sid": "VA123",
        }

    def test_yaml_token_cleared(self):
        config_data = {"twilio": {"auth_token": "yaml-secret"}}
        inject_twilio_credentials(config_data)
        assert config_data["twilio"]["auth_token"] is None

    def test_from_number_yaml_or_env(self, monkeypatch):
        """The sender number is not a secret: YAML is kept unless the env sets one."""
        config_data = {"twilio": {"from_number": "+15550001111"}}
        inject_twilio_credentials(config_data)
        assert config_data["twilio"]["from_number"] == "+15550001111"

        monkeypatch.setenv("TWILIO_FROM_NUMBER", "+15559998888")
        inject_twilio_credentials(config_data)
        assert config_data["twilio"]["from_number"] == "+15559998888"


class TestInjectServiceNowCredentials:
    """Tests for inject_servicenow_credentials function."""

    def test_instance_name(self, monkeypatch):
        """A bare instance name is accepted."""
        monkeypatch.setenv("SERVICENOW_INSTANCE", "dev12345")
        monkeypatch.setenv("SERVICENOW_USERNAME", "admin")
        monkeypatch.setenv("SERVICENOW_PASSWORD", "pw")
        config_data = {}
        inject_servicenow_credentials(config_data)

        assert config_data["servicenow"] == {"instance_url": "dev12345", "username": "admin", "password": "pw"}

    def test_url_preferred(self, monkeypatch):
        monkeypatch.setenv("SERVICENOW_INSTANCE_URL", "https://acme.service-now.com")
        monkeypatch.setenv("SERVICENOW_INSTANCE", "other")
        config_data = {}
        inject_servicenow_credentials(config_data)

        assert config_data["servicenow"]["instance_url"] == "https://acme.service-now.com"

    def test_yaml_password_cleared(self):
        config_data = {"servicenow": {"instance_url": "https://acme.service-now.com", "password": "yaml"}}
        inject_servicenow_credentials(config_data)

        assert config_data["servicenow"]["password"] is None
        assert config_data["servicenow"]["instance_url"] == "https://acme.service-now.com"
