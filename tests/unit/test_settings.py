"""
Tests for pydantic-settings configuration loading.
"""

import pytest

from dynaproxy.config.settings import InferenceConfig, LoggingConfig, Settings, load_settings


class TestDefaults:
    def test_defaults(self):
        settings = Settings()

        assert settings.server.port == 3000
        assert settings.server.status_path == "/proxy-status"
        assert str(settings.routes.config_path) == "nginclaude-proxy.conf"
        assert settings.inference.provider == "anthropic"
        assert settings.inference.timeout_seconds == 30.0
        assert settings.upstream.connect_timeout_seconds == 10.0


class TestEnvironment:
    """DYNAPROXY_ prefix with double-underscore nesting"""

    def test_nested_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DYNAPROXY_SERVER__PORT", "8080")
        monkeypatch.setenv("DYNAPROXY_INFERENCE__PROVIDER", "ollama")
        monkeypatch.setenv("DYNAPROXY_INFERENCE__TIMEOUT_SECONDS", "5")

        settings = load_settings()

        assert settings.server.port == 8080
        assert settings.inference.provider == "ollama"
        assert settings.inference.timeout_seconds == 5.0

    def test_invalid_env_value_reports_field(self, monkeypatch):
        monkeypatch.setenv("DYNAPROXY_SERVER__PORT", "99999")

        with pytest.raises(ValueError) as exc_info:
            load_settings()

        assert "Configuration validation failed" in str(exc_info.value)
        assert "server.port" in str(exc_info.value)


class TestYaml:
    def test_loads_yaml_file(self, temp_dir):
        path = temp_dir / "settings.yaml"
        path.write_text(
            "server:\n"
            "  port: 9000\n"
            "  name: edge-proxy\n"
            "routes:\n"
            "  config_path: /etc/proxy.conf\n"
            "inference:\n"
            "  provider: static\n"
            "  static_response: http://localhost:8001/\n"
        )

        settings = load_settings(path)

        assert settings.server.port == 9000
        assert settings.server.name == "edge-proxy"
        assert str(settings.routes.config_path) == "/etc/proxy.conf"
        assert settings.inference.static_response == "http://localhost:8001/"

    def test_empty_yaml_gives_defaults(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")

        assert load_settings(path).server.port == 3000

    def test_missing_yaml_raises(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_settings(temp_dir / "nope.yaml")


class TestValidation:
    def test_status_path_must_be_absolute(self):
        with pytest.raises(ValueError):
            Settings(server={"status_path": "proxy-status"})

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            InferenceConfig(provider="openai")

    def test_placeholder_api_key_rejected(self):
        with pytest.raises(ValueError, match="placeholder"):
            InferenceConfig(api_key="changeme")

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValueError):
            LoggingConfig(level="verbose")
