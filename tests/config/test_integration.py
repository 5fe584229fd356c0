"""
Integration tests for config loading.

Tests cover:
- Loading the shipped YAML configuration
- Missing files and defaults
- Startup validation errors and warnings
"""

from pathlib import Path

import pytest

from relay_agent.config import AppConfig, load_config, validate_config

SHIPPED_CONFIG = Path(__file__).resolve().parents[2] / "config" / "relay-agent.yaml"


class TestConfigLoading:
    """Integration tests for load_config with real YAML files."""

    @pytest.fixture(autouse=True)
    def setup_env(self, monkeypatch):
        """Set up required environment variables for tests."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
        monkeypatch.setenv("ACCOUNT_SID", "AC_test")
        monkeypatch.setenv("AUTH_TOKEN", "test_token")
        for name in ("PORT", "SILENCE_SECONDS_THRESHOLD", "SILENCE_RETRY_THRESHOLD", "LLM_CONTEXT",
                     "LLM_MANIFEST", "RELAY_CONFIG", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

    def test_load_shipped_config(self):
        """Should successfully load config/relay-agent.yaml."""
        config = load_config(str(SHIPPED_CONFIG), allow_missing=False)

        assert isinstance(config, AppConfig)
        assert config.llm.api_key == "sk-test-key"
        assert config.twilio.account_sid == "AC_test"
        assert config.server.port == 3000
        assert config.inactivity.reminder_seconds == 20
        assert config.inactivity.max_retries == 3
        assert config.tools["end-call"]["reason"] == "Ending the call"

    def test_port_from_env(self, monkeypatch):
        """The shipped file reads PORT with a default."""
        monkeypatch.setenv("PORT", "8443")
        config = load_config(str(SHIPPED_CONFIG))
        assert config.server.port == 8443

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))

        assert config.server.ws_path == "/conversation-relay"
        assert config.assets.context_file == "defaultContext.md"

    def test_missing_file_strict(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "absent.yaml"), allow_missing=False)

    def test_relay_config_env(self, tmp_path, monkeypatch):
        """RELAY_CONFIG points at the file when no path is given."""
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("llm:\n  model: gpt-4.1-mini\n")
        monkeypatch.setenv("RELAY_CONFIG", str(config_file))

        assert load_config().llm.model == "gpt-4.1-mini"


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid_config(self):
        config = AppConfig(llm={"api_key": "sk-test"})
        errors, warnings = validate_config(config)

        assert errors == []
        assert any("Twilio" in w for w in warnings)
        assert any("ServiceNow" in w for w in warnings)

    def test_missing_api_key(self):
        errors, _ = validate_config(AppConfig())
        assert any("OPENAI_API_KEY" in e for e in errors)

    def test_bad_values(self):
        config = AppConfig(
            llm={"api_key": "sk-test"},
            server={"port": 70000},
            inactivity={"reminder_seconds": 0, "max_retries": 0},
        )
        errors, _ = validate_config(config)

        assert len(errors) == 3

    def test_missing_assets(self, tmp_path):
        config = AppConfig(llm={"api_key": "sk-test"}, assets={"directory": str(tmp_path)})
        errors, _ = validate_config(config)

        assert any("Default assets unusable" in e for e in errors)
