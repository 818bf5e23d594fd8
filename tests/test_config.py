"""
Configuration Tests
===================

Tests for YAML loading and environment overrides.
"""

import pytest

from gif_alchemy.config import Settings, load_config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable load_config reads."""
    for name in (
        "GIF_ALCHEMY_CONFIG",
        "GIF_ALCHEMY_API_KEY",
        "GEMINI_API_KEY",
        "API_KEY",
        "GIF_ALCHEMY_MODEL",
        "GIF_ALCHEMY_USE_REMOTE",
        "GIF_ALCHEMY_CONCURRENCY",
        "GIF_ALCHEMY_MAX_FRAMES",
        "GIF_ALCHEMY_MAX_WIDTH",
        "GIF_ALCHEMY_PORT",
        "GIF_ALCHEMY_LOG_LEVEL",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Tests for defaults and loading."""

    def test_defaults(self):
        settings = Settings()
        assert settings.processing.max_frames == 50
        assert settings.processing.max_width == 300
        assert settings.processing.concurrency == 2
        assert settings.remote.max_retries == 3
        assert settings.projects.max_projects == 10
        assert settings.defaults.modes[0].value == "remove-bg"
        assert not settings.remote.is_available

    def test_yaml_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "processing:\n"
            "  max_width: 120\n"
            "  concurrency: 4\n"
            "defaults:\n"
            "  modes: [recolor]\n"
            "  replacement_color: '#FFFFFF'\n"
        )

        settings = load_config(str(path))

        assert settings.processing.max_width == 120
        assert settings.processing.concurrency == 4
        assert settings.defaults.replacement_color == "#FFFFFF"

    def test_env_overrides_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("processing:\n  max_frames: 20\n")
        clean_env.setenv("GIF_ALCHEMY_MAX_FRAMES", "30")
        clean_env.setenv("PORT", "9000")

        settings = load_config(str(path))

        assert settings.processing.max_frames == 30
        assert settings.server.port == 9000

    def test_api_key_fallbacks(self, clean_env, tmp_path):
        clean_env.setenv("API_KEY", "third")
        clean_env.setenv("GEMINI_API_KEY", "second")

        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.remote.api_key == "second"
        assert settings.remote.is_available

    def test_remote_switch(self, clean_env, tmp_path):
        clean_env.setenv("GIF_ALCHEMY_API_KEY", "key")
        clean_env.setenv("GIF_ALCHEMY_USE_REMOTE", "false")

        settings = load_config(str(tmp_path / "missing.yaml"))

        assert settings.remote.api_key == "key"
        assert not settings.remote.is_available
