"""Tests for environment-driven settings."""

import pytest

from carb_estimator.config import DEFAULT_BASE_URL, DEFAULT_MODEL, DEFAULT_SETTINGS_PATH, Settings

ENV_VARS = [
    "OPENAI_BASE_URL",
    "OPENAI_MODEL",
    "OPENAI_API_KEY",
    "CARB_ESTIMATOR_SETTINGS_PATH",
    "CARB_ESTIMATOR_REQUEST_TIMEOUT",
    "CARB_ESTIMATOR_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env()

    assert settings.openai_base_url == DEFAULT_BASE_URL
    assert settings.openai_model == DEFAULT_MODEL
    assert settings.openai_api_key is None
    assert settings.settings_path == DEFAULT_SETTINGS_PATH
    assert settings.request_timeout is None
    assert settings.log_level == "INFO"


def test_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENAI_BASE_URL", "https://proxy.example/v1/")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("CARB_ESTIMATOR_SETTINGS_PATH", str(tmp_path / "s.json"))
    monkeypatch.setenv("CARB_ESTIMATOR_REQUEST_TIMEOUT", "45")
    monkeypatch.setenv("CARB_ESTIMATOR_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.openai_base_url == "https://proxy.example/v1"
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.openai_api_key == "sk-env"
    assert settings.settings_path == tmp_path / "s.json"
    assert settings.request_timeout == 45.0
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("value", ["0", "-3", "soon"])
def test_invalid_timeout_is_rejected(monkeypatch, value):
    monkeypatch.setenv("CARB_ESTIMATOR_REQUEST_TIMEOUT", value)
    with pytest.raises(ValueError):
        Settings.from_env()
