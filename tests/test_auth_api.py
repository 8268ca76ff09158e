from __future__ import annotations

from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

from sqlmodel import Session

from taskpilot.core.config import get_settings
from taskpilot.db.models import PasswordResetToken
from taskpilot.db.repositories import ConversationRepository
from taskpilot.security import issue_access_token
from tests.shared import DEFAULT_PASSWORD, ApiTestContext, auth_headers


def _register_payload(**overrides: str) -> dict[str, str]:
    payload = {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "password": DEFAULT_PASSWORD,
        "password_confirmation": DEFAULT_PASSWORD,
    }
    payload.update(overrides)
    return payload


def test_register_returns_bearer_token_and_creates_conversation(
    api_context: ApiTestContext,
) -> None:
    response = api_context.client.post("/auth/register", json=_register_payload())

    assert response.status_code == 200
    payload = response.json()
    assert payload["token_type"] == "bearer"
    assert payload["expires_in"] == 3600
    with Session(api_context.engine) as session:
        user_id = api_context.user_id("ada@example.com")
        assert ConversationRepository(session).get_for_user(user_id) is not None

    profile = api_context.client.get("/auth/me", headers=auth_headers(payload["access_token"]))
    assert profile.status_code == 200
    assert profile.json()["data"]["email"] == "ada@example.com"
    assert profile.json()["data"]["roles"] == ["user"]


def test_register_rejects_duplicate_email_case_insensitively(
    api_context: ApiTestContext,
) -> None:
    api_context.register()

    response = api_context.client.post(
        "/auth/register",
        json=_register_payload(email="ADA@example.com"),
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "EMAIL_ALREADY_REGISTERED"


def test_email_is_validated_and_normalized(api_context: ApiTestContext) -> None:
    client = api_context.client
    registered = client.post(
        "/auth/register",
        json=_register_payload(email="  Ada.Lovelace@Example.COM "),
    )
    assert registered.status_code == 200, registered.text
    assert api_context.user_id("ada.lovelace@example.com") is not None

    login = client.post(
        "/auth/login",
        json={"email": "ADA.LOVELACE@example.com", "password": DEFAULT_PASSWORD},
    )
    assert login.status_code == 200

    for invalid in ("ada@", "ada lovelace@example.com", "@example.com"):
        response = client.post("/auth/forgot-password", json={"email": invalid})
        assert response.status_code == 422
        issues = response.json()["error"]["issues"]
        assert [issue["field"] for issue in issues] == ["body.email"]


def test_register_validates_password_confirmation(api_context: ApiTestContext) -> None:
    mismatch = api_context.client.post(
        "/auth/register",
        json=_register_payload(password_confirmation="something-else"),
    )
    short = api_context.client.post(
        "/auth/register",
        json=_register_payload(password="short", password_confirmation="short"),
    )
    bad_email = api_context.client.post(
        "/auth/register",
        json=_register_payload(email="not-an-email"),
    )

    assert mismatch.status_code == 422
    assert short.status_code == 422
    assert bad_email.status_code == 422


def test_login_rejects_wrong_password(api_context: ApiTestContext) -> None:
    api_context.register()

    response = api_context.client.post(
        "/auth/login",
        json={"email": "ada@example.com", "password": "wrong-password"},
    )

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "The provided credentials are incorrect."


def test_logout_revokes_token(api_context: ApiTestContext) -> None:
    headers = api_context.register()

    response = api_context.client.post("/auth/logout", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Successfully logged out."}
    assert api_context.client.get("/auth/me", headers=headers).status_code == 401


def test_refresh_accepts_expired_token_inside_window(api_context: ApiTestContext) -> None:
    api_context.register()
    user_id = api_context.user_id("ada@example.com")
    expired = issue_access_token(
        user_id=user_id,
        roles=["user"],
        settings=get_settings(),
        now=datetime.now(UTC) - timedelta(hours=2),
    )
    headers = auth_headers(expired.access_token)
    assert api_context.client.get("/auth/me", headers=headers).status_code == 401

    refreshed = api_context.client.post("/auth/refresh", headers=headers)

    assert refreshed.status_code == 200
    new_headers = auth_headers(refreshed.json()["access_token"])
    assert api_context.client.get("/auth/me", headers=new_headers).status_code == 200
    assert api_context.client.post("/auth/refresh", headers=headers).status_code == 401


def test_refresh_rejects_token_past_refresh_window(api_context: ApiTestContext) -> None:
    api_context.register()
    user_id = api_context.user_id("ada@example.com")
    stale = issue_access_token(
        user_id=user_id,
        roles=["user"],
        settings=get_settings(),
        now=datetime.now(UTC) - timedelta(days=30),
    )

    response = api_context.client.post("/auth/refresh", headers=auth_headers(stale.access_token))

    assert response.status_code == 401


def test_invalid_tokens_are_rejected_uniformly(api_context: ApiTestContext) -> None:
    client = api_context.client

    for headers in (
        {},
        {"Authorization": "Bearer not-a-jwt"},
        {"Authorization": "Basic abc"},
    ):
        response = client.get("/auth/me", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Unauthenticated."


def test_password_reset_flow(api_context: ApiTestContext) -> None:
    client = api_context.client
    api_context.register()

    requested = client.post("/auth/forgot-password", json={"email": "ada@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})

    assert requested.status_code == 200
    assert unknown.json() == requested.json()
    assert len(api_context.mailer.sent) == 1
    message = api_context.mailer.sent[0]
    assert message.subject == "Reset Password Notification"
    reset_url = next(word for word in message.text_body.split() if "reset-password" in word)
    query = parse_qs(urlparse(reset_url).query)
    token = query["token"][0]
    assert query["email"] == ["ada@example.com"]

    wrong = client.post(
        "/auth/reset-password",
        json={
            "email": "ada@example.com",
            "token": "wrong-token",
            "password": "brand-new-password",
            "password_confirmation": "brand-new-password",
        },
    )
    assert wrong.status_code == 422

    reset = client.post(
        "/auth/reset-password",
        json={
            "email": "ada@example.com",
            "token": token,
            "password": "brand-new-password",
            "password_confirmation": "brand-new-password",
        },
    )
    assert reset.status_code == 200
    api_context.login("ada@example.com", "brand-new-password")

    reused = client.post(
        "/auth/reset-password",
        json={
            "email": "ada@example.com",
            "token": token,
            "password": "another-password",
            "password_confirmation": "another-password",
        },
    )
    assert reused.status_code == 422


def test_expired_reset_token_is_rejected(api_context: ApiTestContext) -> None:
    client = api_context.client
    api_context.register()
    client.post("/auth/forgot-password", json={"email": "ada@example.com"})
    reset_url = next(
        word for word in api_context.mailer.sent[0].text_body.split() if "reset-password" in word
    )
    token = parse_qs(urlparse(reset_url).query)["token"][0]
    with Session(api_context.engine) as session:
        record = session.get(PasswordResetToken, "ada@example.com")
        assert record is not None
        record.created_at = datetime.now(UTC) - timedelta(hours=2)
        session.add(record)
        session.commit()

    response = client.post(
        "/auth/reset-password",
        json={
            "email": "ada@example.com",
            "token": token,
            "password": "brand-new-password",
            "password_confirmation": "brand-new-password",
        },
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_RESET_TOKEN"


def test_change_password_requires_current_password(api_context: ApiTestContext) -> None:
    client = api_context.client
    headers = api_context.register()

    wrong = client.post(
        "/auth/change-password",
        json={
            "current_password": "not-my-password",
            "password": "brand-new-password",
            "password_confirmation": "brand-new-password",
        },
        headers=headers,
    )
    changed = client.post(
        "/auth/change-password",
        json={
            "current_password": DEFAULT_PASSWORD,
            "password": "brand-new-password",
            "password_confirmation": "brand-new-password",
        },
        headers=headers,
    )

    assert wrong.status_code == 422
    assert changed.status_code == 200
    api_context.login("ada@example.com", "brand-new-password")
