"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, BackendConfig, PersonaConfig, PromptsConfig, load_config


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "mode": "flash",
            "persona": "default",
            "output_dir": "./output",
            "run_timeout_sec": 120,
        },
        "backend": {
            "sdk": "gemini",
            "api_key_env": "TEST_GEMINI_KEY",
            "timeout_sec": 60,
            "max_tokens": 4096,
            "models": {"flash": "gemini-2.5-flash", "pro": "gemini-2.5-pro", "image": "img-model"},
        },
        "prompts": {
            "draft": "Draft it.",
            "refine": "Refine it.",
            "synthesize": "Synthesize it.",
            "title": "Title it.",
        },
        "personas": {
            "default": {"instruction": "You are helpful.", "default_mode": "quick"},
            "terse": "Answer in one line.",
        },
    }
    settings.update(overrides)
    return settings


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(_settings()), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.mode == "flash"
    assert config.defaults.persona == "default"
    assert config.defaults.run_timeout_sec == 120.0
    assert config.defaults.persona_scope == "all"
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_backend(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.backend, BackendConfig)
    assert config.backend.models["pro"] == "gemini-2.5-pro"
    assert config.backend.base_url is None
    assert config.backend.image_models == {"img-model"}


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert config.prompts.synthesize == "Synthesize it."


def test_load_config_personas_accept_string_or_mapping(minimal_settings):
    config = load_config(minimal_settings)
    assert config.personas["default"] == PersonaConfig("default", "You are helpful.", "quick")
    assert config.personas["terse"].instruction == "Answer in one line."
    assert config.personas["terse"].default_mode is None


def test_load_config_api_key_present(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_GEMINI_KEY", "test-key")
    assert load_config(minimal_settings).api_key_available is True


def test_load_config_api_key_missing(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_GEMINI_KEY", raising=False)
    assert load_config(minimal_settings).api_key_available is False


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_load_config_rejects_bad_persona_scope(tmp_path: Path):
    settings = _settings()
    settings["defaults"]["persona_scope"] = "draft"
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    with pytest.raises(ValueError, match="persona_scope"):
        load_config(path)


def test_load_config_optional_sections(tmp_path: Path):
    """Run timeout and personas are optional."""
    settings = _settings()
    del settings["defaults"]["run_timeout_sec"]
    del settings["personas"]
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    config = load_config(path)
    assert config.defaults.run_timeout_sec is None
    assert config.personas == {}


def test_bundled_settings_load():
    config = load_config()
    assert {"flash", "pro", "image"} <= set(config.backend.models)
    assert config.defaults.persona in config.personas
