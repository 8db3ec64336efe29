"""
Tests for settings loading: defaults, YAML profile and DOCK_* overrides.
"""

import pytest

from config import DEFAULT_SYSTEM_PROMPT, load_settings

_ENV_VARS = [
    "DOCK_PROFILE_PATH", "DOCK_MODEL_API_KEY", "OPENAI_API_KEY", "DOCK_MODEL_BASE_URL",
    "DOCK_MODEL", "DOCK_MAX_TOOL_LOOPS", "DOCK_MAX_TAIL_MESSAGES", "DOCK_PORT",
    "DOCK_CORS_ORIGINS", "DOCK_LOG_LEVEL", "DOCK_SHELL_CWD", "DOCK_DATA_DIR",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:

    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.model.api_key == ""
        assert not settings.model.configured
        assert settings.model.base_url == "https://api.openai.com/v1"
        assert settings.context.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert settings.context.max_context_chars == 12000
        assert settings.context.max_tail_messages == 12
        assert settings.context.max_tool_loops == 4
        assert settings.server.port == 3000
        assert settings.server.max_body_bytes == 65536

    def test_profile_values(self, tmp_path):
        profile = tmp_path / "profile.yaml"
        profile.write_text(
            "model:\n"
            "  default_model: local-llm\n"
            "  base_url: http://localhost:1234/v1\n"
            "context:\n"
            "  max_tool_loops: 2\n"
            "  unknown_key: ignored\n"
        )
        settings = load_settings(profile)
        assert settings.model.default_model == "local-llm"
        assert settings.model.base_url == "http://localhost:1234/v1"
        assert settings.context.max_tool_loops == 2

    def test_profile_path_from_env(self, tmp_path, monkeypatch):
        profile = tmp_path / "custom.yaml"
        profile.write_text("server:\n  port: 4100\n")
        monkeypatch.setenv("DOCK_PROFILE_PATH", str(profile))
        assert load_settings().server.port == 4100

    def test_invalid_yaml_falls_back(self, tmp_path):
        profile = tmp_path / "profile.yaml"
        profile.write_text("model: [unclosed\n")
        assert load_settings(profile).model.default_model == "gpt-4o-mini"

    def test_env_overrides_profile(self, tmp_path, monkeypatch):
        profile = tmp_path / "profile.yaml"
        profile.write_text("model:\n  default_model: from-profile\n")
        monkeypatch.setenv("DOCK_MODEL", "from-env")
        monkeypatch.setenv("DOCK_MODEL_API_KEY", "sk-env")
        monkeypatch.setenv("DOCK_MODEL_BASE_URL", "http://proxy.test/v1/")
        settings = load_settings(profile)
        assert settings.model.default_model == "from-env"
        assert settings.model.configured
        assert settings.model.base_url == "http://proxy.test/v1"

    def test_openai_key_accepted(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        assert load_settings(tmp_path / "absent.yaml").model.api_key == "sk-openai"

    def test_invalid_int_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCK_MAX_TOOL_LOOPS", "lots")
        monkeypatch.setenv("DOCK_PORT", "80.5")
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.context.max_tool_loops == 4
        assert settings.server.port == 3000

    def test_tail_messages_at_least_one(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCK_MAX_TAIL_MESSAGES", "0")
        assert load_settings(tmp_path / "absent.yaml").context.max_tail_messages == 1

    def test_cors_origins_list(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCK_CORS_ORIGINS", "http://a.test, http://b.test,")
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.server.cors_origins == ["http://a.test", "http://b.test"]

    def test_shell_cwd_defaults_to_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCK_DATA_DIR", str(tmp_path / "d"))
        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.shell_cwd == tmp_path / "d"
