from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ConfigurationError(Exception):
    """Raised when the environment describes an unusable configuration."""


def _load_env_file() -> None:
    env_file = Path(os.getenv("TASKPILOT_ENV_FILE", ".env"))
    if env_file.exists():
        load_dotenv(env_file, override=False)


_load_env_file()

Environment = Literal["development", "test", "production"]
LogFormat = Literal["json", "console"]

DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)

DEFAULT_CREATOR_NOTE = (
    "You were created by the TaskPilot team. When asked about your creator, respond "
    "naturally and with a little humour. When the user asks for the creator's profile "
    "or shows interest, share the profile URL directly as a markdown link."
)


class Settings(BaseModel):
    app_name: str = Field(default="TaskPilot API")
    app_env: Environment = Field(default="development")
    debug: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    testing: bool = Field(default=False)
    frontend_url: str = Field(default="http://localhost:5173")
    database_url: str = Field(default="sqlite:///./taskpilot.db")
    sqlalchemy_echo: bool | None = Field(default=None)  # None = auto (debug mode)
    db_auto_init: bool = Field(default=True)
    db_auto_seed: bool = Field(default=True)
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="json")
    log_file: str | None = Field(default=None)
    jwt_secret: str = Field(default="change-me-taskpilot-secret", min_length=8)
    jwt_algorithm: str = Field(default="HS256")
    jwt_ttl_minutes: int = Field(default=60, ge=1)
    jwt_refresh_ttl_minutes: int = Field(default=20160, ge=1)
    password_reset_ttl_minutes: int = Field(default=60, ge=1)
    admin_email: str | None = Field(default=None)
    admin_password: str | None = Field(default=None)
    admin_name: str = Field(default="Administrator")
    ai_provider: str = Field(default="openai")
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    openai_model: str = Field(default="gpt-4o-mini")
    openai_max_tokens: int = Field(default=500, ge=1)
    openai_temperature: float = Field(default=1.0, ge=0, le=2)
    openai_timeout_s: float = Field(default=30.0, gt=0)
    ai_stream_enabled: bool = Field(default=True)
    ai_history_limit: int = Field(default=10, ge=0, le=100)
    creator_name: str = Field(default="The TaskPilot Team")
    creator_linkedin: str = Field(default="https://www.linkedin.com/company/taskpilot/")
    creator_note: str = Field(default=DEFAULT_CREATOR_NOTE)
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=False)
    mail_from: str = Field(default="TaskPilot <no-reply@taskpilot.local>")
    cors_allow_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    cors_allow_credentials: bool = Field(default=True)


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _to_bool_or_none(value: str | None) -> bool | None:
    """Parse boolean from env var, return None if not set (for auto behavior)."""
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return None


def _to_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _to_float(value: str | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized if normalized else None


def _normalize_env(value: str | None) -> Environment:
    if value is None:
        return "development"
    lowered = value.strip().lower()
    if lowered == "development":
        return "development"
    if lowered == "test":
        return "test"
    if lowered == "production":
        return "production"
    return "development"


def _normalize_log_format(value: str | None, app_env: Environment) -> LogFormat:
    if value is not None:
        lowered = value.strip().lower()
        if lowered == "console":
            return "console"
        if lowered == "json":
            return "json"
    return "console" if app_env == "development" else "json"


def _parse_csv_list(value: str | None, *, default: list[str]) -> list[str]:
    if value is None:
        return list(default)
    items = [part.strip() for part in value.split(",")]
    normalized = [item for item in items if item]
    return normalized or list(default)


def load_settings() -> Settings:
    app_env = _normalize_env(os.getenv("APP_ENV"))
    default_debug = app_env != "production"
    default_testing = app_env == "test"
    default_db_auto_init = app_env == "development"
    default_db_auto_seed = app_env == "development"
    default_database_url = (
        "sqlite:///./taskpilot_test.db" if app_env == "test" else "sqlite:///./taskpilot.db"
    )

    jwt_secret = os.getenv("JWT_SECRET")
    if app_env == "production" and not _optional_text(jwt_secret):
        raise ConfigurationError("JWT_SECRET must be set when APP_ENV=production.")

    return Settings(
        app_name=os.getenv("APP_NAME", "TaskPilot API"),
        app_env=app_env,
        debug=_to_bool(os.getenv("DEBUG"), default=default_debug),
        host=os.getenv("HOST", "127.0.0.1"),
        port=_to_int(os.getenv("PORT"), default=8000),
        testing=_to_bool(os.getenv("TESTING"), default=default_testing),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        database_url=os.getenv("DATABASE_URL", default_database_url),
        sqlalchemy_echo=_to_bool_or_none(os.getenv("SQLALCHEMY_ECHO")),
        db_auto_init=_to_bool(os.getenv("DB_AUTO_INIT"), default=default_db_auto_init),
        db_auto_seed=_to_bool(os.getenv("DB_AUTO_SEED"), default=default_db_auto_seed),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=_normalize_log_format(os.getenv("LOG_FORMAT"), app_env),
        log_file=_optional_text(os.getenv("LOG_FILE")),
        jwt_secret=_optional_text(jwt_secret) or "change-me-taskpilot-secret",
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_ttl_minutes=_to_int(os.getenv("JWT_TTL_MINUTES"), default=60),
        jwt_refresh_ttl_minutes=_to_int(os.getenv("JWT_REFRESH_TTL_MINUTES"), default=20160),
        password_reset_ttl_minutes=_to_int(
            os.getenv("PASSWORD_RESET_TTL_MINUTES"),
            default=60,
        ),
        admin_email=_optional_text(os.getenv("ADMIN_EMAIL")),
        admin_password=_optional_text(os.getenv("ADMIN_PASSWORD")),
        admin_name=os.getenv("ADMIN_NAME", "Administrator"),
        ai_provider=os.getenv("AI_PROVIDER", "openai"),
        openai_api_key=_optional_text(os.getenv("OPENAI_API_KEY")),
        openai_base_url=_optional_text(os.getenv("OPENAI_BASE_URL")),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_max_tokens=_to_int(os.getenv("OPENAI_MAX_TOKENS"), default=500),
        openai_temperature=_to_float(os.getenv("OPENAI_TEMPERATURE"), default=1.0),
        openai_timeout_s=_to_float(os.getenv("OPENAI_TIMEOUT_S"), default=30.0),
        ai_stream_enabled=_to_bool(os.getenv("AI_STREAM_ENABLED"), default=True),
        ai_history_limit=_to_int(os.getenv("AI_HISTORY_LIMIT"), default=10),
        creator_name=os.getenv("CREATOR_NAME", "The TaskPilot Team"),
        creator_linkedin=os.getenv(
            "CREATOR_LINKEDIN",
            "https://www.linkedin.com/company/taskpilot/",
        ),
        creator_note=os.getenv("CREATOR_NOTE", DEFAULT_CREATOR_NOTE),
        smtp_host=_optional_text(os.getenv("SMTP_HOST")),
        smtp_port=_to_int(os.getenv("SMTP_PORT"), default=587),
        smtp_username=_optional_text(os.getenv("SMTP_USERNAME")),
        smtp_password=_optional_text(os.getenv("SMTP_PASSWORD")),
        smtp_use_tls=_to_bool(os.getenv("SMTP_USE_TLS"), default=False),
        mail_from=os.getenv("MAIL_FROM", "TaskPilot <no-reply@taskpilot.local>"),
        cors_allow_origins=_parse_csv_list(
            os.getenv("CORS_ALLOW_ORIGINS"),
            default=list(DEFAULT_CORS_ORIGINS),
        ),
        cors_allow_credentials=_to_bool(
            os.getenv("CORS_ALLOW_CREDENTIALS"),
            default=True,
        ),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
