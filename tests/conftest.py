import uuid
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        log_level="WARNING",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        revocation_backend="memory",
        cache_backend="memory",
        jwt_secret="test-access-secret",
        jwt_refresh_secret="test-refresh-secret",
    )


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


def random_username():
    return f"user_{uuid.uuid4().hex[:8]}"


def register(client, username=None, email=None, password="secret1"):
    username = username or random_username()
    email = email or f"{username}@example.com"
    r = client.post(
        "/api/v1/auth/register",
        json={
            "username": username,
            "email": email,
            "password": password,
            "confirm_password": password,
        },
    )
    assert r.status_code == 201, r.text
    return r.json()


def login(client, username, password="secret1"):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def admin_headers(client):
    identity = SimpleNamespace(
        id=uuid.uuid4().hex,
        username="admin",
        email="admin@example.com",
        role="admin",
    )
    return bearer(client.app.state.token_service.issue_access_token(identity))
