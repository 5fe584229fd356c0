"""
Unit tests for config.defaults module.

Tests cover:
- Server bind defaults with environment overrides
- Inactivity thresholds with environment overrides
- Default asset names
"""

import pytest

from relay_agent.config.defaults import (
    apply_assets_defaults,
    apply_inactivity_defaults,
    apply_server_defaults,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("RELAY_HOST", "PORT", "SERVER_BASE_URL", "SILENCE_SECONDS_THRESHOLD", "SILENCE_RETRY_THRESHOLD",
                 "LLM_CONTEXT", "LLM_MANIFEST"):
        monkeypatch.delenv(name, raising=False)


class TestApplyServerDefaults:
    """Tests for apply_server_defaults function."""

    def test_default_values_when_no_env(self):
        """Should use hardcoded defaults when no env vars set."""
        config_data = {}
        apply_server_defaults(config_data)

        assert config_data['server'] == {'host': '0.0.0.0', 'port': 3000}

    def test_env_port(self, monkeypatch):
        """PORT fills in the port when YAML leaves it out."""
        monkeypatch.setenv('PORT', '8081')
        config_data = {}
        apply_server_defaults(config_data)

        assert config_data['server']['port'] == 8081

    def test_yaml_values_kept(self, monkeypatch):
        """YAML values are not overwritten."""
        monkeypatch.setenv('PORT', '8081')
        config_data = {'server': {'host': '127.0.0.1', 'port': 9000}}
        apply_server_defaults(config_data)

        assert config_data['server'] == {'host': '127.0.0.1', 'port': 9000}

    def test_env_public_base_url(self, monkeypatch):
        """SERVER_BASE_URL sets the public host only when YAML leaves it out."""
        monkeypatch.setenv('SERVER_BASE_URL', 'relay.example.com')
        config_data = {}
        apply_server_defaults(config_data)
        assert config_data['server']['public_base_url'] == 'relay.example.com'

        config_data = {'server': {'public_base_url': 'yaml.example.com'}}
        apply_server_defaults(config_data)
        assert config_data['server']['public_base_url'] == 'yaml.example.com'

    def test_invalid_port_env(self, monkeypatch):
        """A non-numeric PORT falls back to 3000."""
        monkeypatch.setenv('PORT', 'abc')
        config_data = {}
        apply_server_defaults(config_data)

        assert config_data['server']['port'] == 3000


class TestApplyInactivityDefaults:
    """Tests for apply_inactivity_defaults function."""

    def test_no_env_keeps_yaml(self):
        config_data = {'inactivity': {'reminder_seconds': 15}}
        apply_inactivity_defaults(config_data)

        assert config_data['inactivity'] == {'reminder_seconds': 15}

    def test_env_overrides(self, monkeypatch):
        """Silence thresholds from the environment win over YAML."""
        monkeypatch.setenv('SILENCE_SECONDS_THRESHOLD', '12.5')
        monkeypatch.setenv('SILENCE_RETRY_THRESHOLD', '2')
        config_data = {'inactivity': {'reminder_seconds': 20, 'max_retries': 3}}
        apply_inactivity_defaults(config_data)

        assert config_data['inactivity'] == {'reminder_seconds': 12.5, 'max_retries': 2}

    def test_invalid_env_ignored(self, monkeypatch):
        monkeypatch.setenv('SILENCE_SECONDS_THRESHOLD', 'soon')
        config_data = {'inactivity': {'reminder_seconds': 20}}
        apply_inactivity_defaults(config_data)

        assert config_data['inactivity']['reminder_seconds'] == 20

    def test_null_section(self):
        """A YAML section left empty becomes a dict."""
        config_data = {'inactivity': None}
        apply_inactivity_defaults(config_data)

        assert config_data['inactivity'] == {}


class TestApplyAssetsDefaults:
    """Tests for apply_assets_defaults function."""

    def test_defaults(self):
        config_data = {}
        apply_assets_defaults(config_data)

        assert config_data['assets'] == {
            'context_file': 'defaultContext.md',
            'tool_manifest_file': 'defaultToolManifest.json',
        }

    def test_env_names(self, monkeypatch):
        monkeypatch.setenv('LLM_CONTEXT', 'billing.md')
        monkeypatch.setenv('LLM_MANIFEST', 'billingTools.json')
        config_data = {}
        apply_assets_defaults(config_data)

        assert config_data['assets']['context_file'] == 'billing.md'
        assert config_data['assets']['tool_manifest_file'] == 'billingTools.json'
