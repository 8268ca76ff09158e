from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pytest import MonkeyPatch
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from taskpilot.api.dependencies import get_completion_provider, get_mail_sender
from taskpilot.core.config import get_settings
from taskpilot.db.engine import create_engine_from_url, dispose_engine
from taskpilot.db.seed import seed_categories, seed_roles
from taskpilot.main import create_app
from tests.shared import ApiTestContext, RecordingMailSender


def _to_sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.as_posix()}"


@pytest.fixture
def db_engine(tmp_path: Path, monkeypatch: MonkeyPatch) -> Iterator[Engine]:
    """Temporary SQLite database with every table, the roles and default categories."""
    db_url = _to_sqlite_url(tmp_path / "taskpilot-test.db")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("JWT_SECRET", "test-secret-for-jwt-signing")
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    get_settings.cache_clear()
    dispose_engine()

    engine = create_engine_from_url(db_url)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_roles(session)
        seed_categories(session)

    yield engine

    engine.dispose()
    dispose_engine()
    get_settings.cache_clear()


@pytest.fixture
def api_context(db_engine: Engine) -> Iterator[ApiTestContext]:
    app = create_app()
    mailer = RecordingMailSender()
    with TestClient(app) as client:
        context = ApiTestContext(client=client, engine=db_engine, mailer=mailer)
        app.dependency_overrides[get_completion_provider] = lambda: context.provider
        app.dependency_overrides[get_mail_sender] = lambda: context.mailer
        yield context
    app.dependency_overrides.clear()
