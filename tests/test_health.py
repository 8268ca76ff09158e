from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pytest import MonkeyPatch
from sqlalchemy import inspect
from sqlmodel import Session, select

from taskpilot.core.config import get_settings
from taskpilot.db.engine import create_engine_from_url, dispose_engine
from taskpilot.db.models import Category, Role, User
from taskpilot.main import create_app


def _to_sqlite_url(path: Path) -> str:
    return f"sqlite:///{path.as_posix()}"


@pytest.fixture
def development_db(tmp_path: Path, monkeypatch: MonkeyPatch) -> Iterator[str]:
    db_url = _to_sqlite_url(tmp_path / "nested" / "health.db")
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("LOG_FORMAT", "json")
    monkeypatch.setenv("SQLALCHEMY_ECHO", "false")
    monkeypatch.delenv("DB_AUTO_INIT", raising=False)
    monkeypatch.delenv("DB_AUTO_SEED", raising=False)
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    get_settings.cache_clear()
    dispose_engine()

    yield db_url

    dispose_engine()
    get_settings.cache_clear()


def test_healthz(development_db: str) -> None:
    with TestClient(create_app()) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    payload = response.json()
    assert payload == {"status": "ok", "service": "TaskPilot API", "env": "development"}
    assert response.headers["X-Trace-ID"]


def test_readyz_checks_database(development_db: str) -> None:
    with TestClient(create_app()) as client:
        response = client.get("/readyz")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"configuration": "ok", "database": "ok"},
    }


def test_trace_id_header_is_echoed(development_db: str) -> None:
    with TestClient(create_app()) as client:
        response = client.get("/healthz", headers={"X-Trace-ID": "trace-from-client"})

    assert response.headers["X-Trace-ID"] == "trace-from-client"


def test_startup_auto_initializes_database_in_development(
    development_db: str,
    monkeypatch: MonkeyPatch,
) -> None:
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "admin-password")
    get_settings.cache_clear()

    with TestClient(create_app()) as client:
        assert client.get("/readyz").status_code == 200
        login = client.post(
            "/auth/login",
            json={"email": "root@example.com", "password": "admin-password"},
        )
        assert login.status_code == 200, login.text
        me = client.get(
            "/auth/me",
            headers={"Authorization": f"Bearer {login.json()['access_token']}"},
        )
        assert me.json()["data"]["roles"] == ["admin", "user"]

    engine = create_engine_from_url(development_db)
    try:
        table_names = set(inspect(engine).get_table_names())
        assert {
            "alembic_version",
            "users",
            "roles",
            "user_roles",
            "categories",
            "tasks",
            "conversations",
            "messages",
            "password_reset_tokens",
            "revoked_tokens",
        } <= table_names
        with Session(engine) as session:
            assert {role.name for role in session.exec(select(Role)).all()} == {"user", "admin"}
            assert [category.name for category in session.exec(select(Category)).all()] == [
                "Work",
                "Personal",
                "Shopping",
                "Health",
            ]
            assert len(session.exec(select(User)).all()) == 1
    finally:
        engine.dispose()


def test_restart_does_not_duplicate_seed_data(development_db: str) -> None:
    for _ in range(2):
        with TestClient(create_app()) as client:
            assert client.get("/readyz").status_code == 200
        dispose_engine()

    engine = create_engine_from_url(development_db)
    try:
        with Session(engine) as session:
            assert len(session.exec(select(Category)).all()) == 4
            assert len(session.exec(select(Role)).all()) == 2
    finally:
        engine.dispose()
