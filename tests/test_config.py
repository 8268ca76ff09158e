from pathlib import Path

import pytest
from pytest import MonkeyPatch

from taskpilot.core.config import DEFAULT_CORS_ORIGINS, ConfigurationError, load_settings


def _to_sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.as_posix()}"


@pytest.fixture(autouse=True)
def _reset_required_env(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "APP_ENV",
        "DEBUG",
        "TESTING",
        "JWT_SECRET",
        "LOG_FORMAT",
        "CORS_ALLOW_ORIGINS",
        "AI_STREAM_ENABLED",
        "AI_HISTORY_LIMIT",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", _to_sqlite_url(tmp_path / "config-test.db"))


def test_load_settings_for_test_env(monkeypatch: MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("APP_ENV", "test")
    db_url = _to_sqlite_url(tmp_path / "test-env.db")
    monkeypatch.setenv("DATABASE_URL", db_url)

    settings = load_settings()

    assert settings.app_env == "test"
    assert settings.testing is True
    assert settings.debug is True
    assert settings.database_url == db_url
    assert settings.db_auto_init is False
    assert settings.db_auto_seed is False


def test_load_settings_for_development_env_defaults(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.delenv("DB_AUTO_INIT", raising=False)
    monkeypatch.delenv("DB_AUTO_SEED", raising=False)

    settings = load_settings()

    assert settings.db_auto_init is True
    assert settings.db_auto_seed is True
    assert settings.log_format == "console"
    assert settings.ai_stream_enabled is True
    assert settings.ai_history_limit == 10
    assert settings.openai_model == "gpt-4o-mini"
    assert settings.openai_max_tokens == 500


def test_production_requires_jwt_secret(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")

    with pytest.raises(ConfigurationError, match="JWT_SECRET"):
        load_settings()

    monkeypatch.setenv("JWT_SECRET", "production-signing-secret")
    settings = load_settings()

    assert settings.app_env == "production"
    assert settings.debug is False
    assert settings.db_auto_init is False
    assert settings.log_format == "json"
    assert settings.jwt_secret == "production-signing-secret"


def test_unknown_app_env_falls_back_to_development(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")

    assert load_settings().app_env == "development"


def test_load_settings_parses_cors_origins(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv(
        "CORS_ALLOW_ORIGINS",
        " https://app.example.com, ,https://admin.example.com ",
    )
    settings = load_settings()
    assert settings.cors_allow_origins == ["https://app.example.com", "https://admin.example.com"]

    monkeypatch.setenv("CORS_ALLOW_ORIGINS", " , ")
    settings = load_settings()
    assert settings.cors_allow_origins == list(DEFAULT_CORS_ORIGINS)


def test_load_settings_parses_assistant_flags(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("AI_STREAM_ENABLED", "off")
    monkeypatch.setenv("AI_HISTORY_LIMIT", "4")
    monkeypatch.setenv("OPENAI_API_KEY", "  ")
    monkeypatch.setenv("OPENAI_TEMPERATURE", "invalid")

    settings = load_settings()

    assert settings.ai_stream_enabled is False
    assert settings.ai_history_limit == 4
    assert settings.openai_api_key is None
    assert settings.openai_temperature == 1.0


def test_load_settings_normalizes_log_format(monkeypatch: MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "CONSOLE")
    settings = load_settings()
    assert settings.log_format == "console"

    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOG_FORMAT", "unsupported")
    settings = load_settings()
    assert settings.log_format == "json"
