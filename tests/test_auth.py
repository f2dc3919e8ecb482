# tests/test_auth.py
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from jose import jwt

from app.core.errors import InternalServerError
from tests.conftest import admin_headers, bearer, login, random_username, register

PROFILE = "/api/v1/auth/profile"
REFRESH = "/api/v1/auth/refresh-token"


def expired_access_token(settings, user):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user["id"],
        "username": user["username"],
        "email": user["email"],
        "role": user["role"],
        "type": "access",
        "iat": now - timedelta(minutes=30),
        "exp": now - timedelta(minutes=15),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_register_success_and_defaults(client):
    username = random_username()
    body = register(client, username=username)

    assert body["success"] is True
    assert body["user"]["username"] == username
    assert body["user"]["email"] == f"{username}@example.com"
    assert body["user"]["role"] == "user"
    assert body["access_token"] and body["refresh_token"]

    me = client.get(PROFILE, headers=bearer(body["access_token"]))
    assert me.status_code == 200
    assert me.json()["user"]["id"] == body["user"]["id"]


@pytest.mark.parametrize("field,value", [
    ("password", "short"),
    ("email", "not-an-email"),
    ("username", "ab"),
])
def test_register_invalid_input(client, field, value):
    payload = {
        "username": random_username(),
        "email": "someone@example.com",
        "password": "secret1",
        "confirm_password": "secret1",
    }
    payload[field] = value
    if field == "password":
        payload["confirm_password"] = value
    r = client.post("/api/v1/auth/register", json=payload)
    assert r.status_code == 422
    assert r.json()["kind"] == "validation_error"


def test_register_password_mismatch(client):
    r = client.post("/api/v1/auth/register", json={
        "username": random_username(),
        "email": "mismatch@example.com",
        "password": "secret1",
        "confirm_password": "secret2",
    })
    assert r.status_code == 422


def test_register_missing_fields(client):
    r1 = client.post("/api/v1/auth/register", json={"password": "secret1"})
    assert r1.status_code == 422
    r2 = client.post("/api/v1/auth/register", json={"username": random_username()})
    assert r2.status_code == 422


def test_duplicate_register(client):
    username = random_username()
    register(client, username=username)

    r = client.post("/api/v1/auth/register", json={
        "username": username,
        "email": "other@example.com",
        "password": "secret1",
        "confirm_password": "secret1",
    })
    assert r.status_code == 400
    assert r.json()["error_en"] == "Username or email already exists"

    r = client.post("/api/v1/auth/register", json={
        "username": random_username(),
        "email": f"{username}@example.com",
        "password": "secret1",
        "confirm_password": "secret1",
    })
    assert r.status_code == 400


def test_login_with_username_or_email(client):
    username = random_username()
    register(client, username=username)

    r1 = login(client, username)
    assert r1.status_code == 200
    r2 = login(client, f"{username}@example.com")
    assert r2.status_code == 200
    assert r2.json()["user"]["username"] == username

    profile = client.get(PROFILE, headers=bearer(r2.json()["access_token"])).json()
    assert profile["user"]["last_login"] is not None


def test_login_nonexistent_user(client):
    r = login(client, "nouser", "whatever")
    assert r.status_code == 401
    assert r.json()["error_en"] == "Invalid username or password"


def test_login_wrong_password(client):
    username = random_username()
    register(client, username=username)
    r = login(client, username, "wrongpass1")
    assert r.status_code == 401


def test_access_profile_without_token(client):
    r = client.get(PROFILE)
    assert r.status_code == 401
    body = r.json()
    assert body["kind"] == "authentication_error"
    assert body["error_en"] == "Access token is required"
    assert body["error"]
    assert r.headers["WWW-Authenticate"] == "Bearer"


def test_access_profile_with_garbage_token(client):
    r = client.get(PROFILE, headers=bearer("badtoken"))
    assert r.status_code == 401
    assert r.json()["kind"] == "authentication_error"


def test_refresh_token_cannot_be_used_as_access_token(client):
    body = register(client)
    r = client.get(PROFILE, headers=bearer(body["refresh_token"]))
    assert r.status_code == 401


def test_profile_for_missing_user(client):
    ghost = SimpleNamespace(id=uuid.uuid4().hex, username="ghost", email="g@x.com", role="user")
    token = client.app.state.token_service.issue_access_token(ghost)
    r = client.get(PROFILE, headers=bearer(token))
    assert r.status_code == 404
    assert r.json()["kind"] == "not_found"


def test_refresh_invalid_token(client):
    r = client.post(REFRESH, json={"refresh_token": "badtoken"})
    assert r.status_code == 401
    assert r.json()["kind"] == "authentication_error"


def test_refresh_requires_token(client):
    r = client.post(REFRESH, json={})
    assert r.status_code == 400
    assert r.json()["error_en"] == "Refresh token is required"


def test_refresh_accepts_camel_case_field(client):
    body = register(client)
    r = client.post(REFRESH, json={"refreshToken": body["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["access_token"]


def test_logout_accepts_camel_case_field(client):
    body = register(client)
    r = client.post(
        "/api/v1/auth/logout",
        headers=bearer(body["access_token"]),
        json={"refreshToken": body["refresh_token"]},
    )
    assert r.status_code == 200
    assert client.post(REFRESH, json={"refreshToken": body["refresh_token"]}).status_code == 401


def test_expired_access_token_then_refresh(client, settings):
    body = register(client, username="alice", email="a@x.com", password="secret1")
    access, refresh = body["access_token"], body["refresh_token"]

    assert client.get(PROFILE, headers=bearer(access)).status_code == 200

    stale = expired_access_token(settings, body["user"])
    r = client.get(PROFILE, headers=bearer(stale))
    assert r.status_code == 401

    r = client.post(REFRESH, json={"refresh_token": refresh})
    assert r.status_code == 200
    new_access = r.json()["access_token"]

    retried = client.get(PROFILE, headers=bearer(new_access))
    assert retried.status_code == 200
    assert retried.json()["user"]["username"] == "alice"


def test_second_login_supersedes_first_refresh_token(client):
    username = random_username()
    register(client, username=username)

    first = login(client, username).json()["refresh_token"]
    second = login(client, username).json()["refresh_token"]
    assert first != second

    r1 = client.post(REFRESH, json={"refresh_token": first})
    assert r1.status_code == 401
    r2 = client.post(REFRESH, json={"refresh_token": second})
    assert r2.status_code == 200


def test_refresh_token_is_reusable_until_superseded(client):
    body = register(client)
    for _ in range(2):
        r = client.post(REFRESH, json={"refresh_token": body["refresh_token"]})
        assert r.status_code == 200


def test_change_password_revokes_refresh_token(client):
    username = random_username()
    body = register(client, username=username)
    headers = bearer(body["access_token"])

    r = client.post("/api/v1/auth/change-password", headers=headers, json={
        "current_password": "secret1",
        "new_password": "secret2",
        "confirm_password": "secret2",
    })
    assert r.status_code == 200
    assert r.json()["message_en"] == "Password changed successfully"

    assert client.post(REFRESH, json={"refresh_token": body["refresh_token"]}).status_code == 401
    assert login(client, username, "secret1").status_code == 401
    assert login(client, username, "secret2").status_code == 200
    # access tokens issued before the change stay valid until they expire
    assert client.get(PROFILE, headers=headers).status_code == 200


def test_change_password_keeps_old_password_when_revocation_fails(client, monkeypatch):
    username = random_username()
    body = register(client, username=username)
    store = client.app.state.revocation_store
    monkeypatch.setattr(store, "delete", AsyncMock(side_effect=InternalServerError()))

    r = client.post("/api/v1/auth/change-password", headers=bearer(body["access_token"]), json={
        "current_password": "secret1",
        "new_password": "secret2",
        "confirm_password": "secret2",
    })
    assert r.status_code == 500
    assert r.json()["kind"] == "internal_error"

    # nothing changed: the live refresh token still matches the unchanged password
    assert client.post(REFRESH, json={"refresh_token": body["refresh_token"]}).status_code == 200
    assert login(client, username, "secret2").status_code == 401
    assert login(client, username, "secret1").status_code == 200


@pytest.mark.parametrize("payload,expected", [
    ({"current_password": "secret1", "new_password": "secret2", "confirm_password": "other22"}, 400),
    ({"current_password": "secret1", "new_password": "abc", "confirm_password": "abc"}, 400),
    ({"current_password": "", "new_password": "secret2", "confirm_password": "secret2"}, 400),
    ({"current_password": "wrong11", "new_password": "secret2", "confirm_password": "secret2"}, 401),
])
def test_change_password_rejections(client, payload, expected):
    body = register(client)
    r = client.post(
        "/api/v1/auth/change-password",
        headers=bearer(body["access_token"]),
        json=payload,
    )
    assert r.status_code == expected
    # refresh token untouched when the change is rejected
    assert client.post(REFRESH, json={"refresh_token": body["refresh_token"]}).status_code == 200


def test_logout_revokes_refresh_token(client):
    body = register(client)
    headers = bearer(body["access_token"])

    r = client.post("/api/v1/auth/logout", headers=headers, json={"refresh_token": body["refresh_token"]})
    assert r.status_code == 200
    assert r.json()["message_en"] == "Logout successful"

    assert client.post(REFRESH, json={"refresh_token": body["refresh_token"]}).status_code == 401

    again = client.post("/api/v1/auth/logout", headers=headers, json={"refresh_token": body["refresh_token"]})
    assert again.status_code == 200


def test_logout_invalid_token(client):
    r = client.post(
        "/api/v1/auth/logout",
        headers=bearer("badtoken"),
        json={"refresh_token": "whatever"},
    )
    assert r.status_code == 401


def test_logout_requires_refresh_token(client):
    body = register(client)
    r = client.post("/api/v1/auth/logout", headers=bearer(body["access_token"]), json={})
    assert r.status_code == 400


def test_update_profile(client):
    body = register(client)
    other = register(client)
    headers = bearer(body["access_token"])

    r = client.put(PROFILE, headers=headers, json={
        "first_name": "Sara",
        "last_name": "Ahmadi",
        "email": "NEW@Example.com",
    })
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["first_name"] == "Sara"
    assert user["last_name"] == "Ahmadi"
    assert user["email"] == "new@example.com"

    clash = client.put(PROFILE, headers=headers, json={"email": other["user"]["email"]})
    assert clash.status_code == 400
    assert clash.json()["error_en"] == "Email already in use"


def test_protected_admin_endpoint(client):
    body = register(client)
    r1 = client.get("/healthz", headers=bearer(body["access_token"]))
    assert r1.status_code == 403
    assert r1.json()["kind"] == "authorization_error"


    r2 = client.get("/healthz", headers=admin_headers(client))
    assert r2.status_code == 200
    assert r2.json()["status"] == "ok"


def test_request_id_is_echoed(client):
    r = client.get("/", headers={"X-Request-ID": "req-test-1"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "req-test-1"
    assert r.json()["message_en"] == "Welcome to Rah-e Ayandeh API"


def test_unknown_route_is_bilingual(client):
    r = client.get("/api/v1/nowhere")
    assert r.status_code == 404
    assert r.json()["error_en"] == "Route not found"
