"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

import os
import tempfile
import uuid
from types import SimpleNamespace
from typing import Any, Optional

# The app module builds its engines at import time: point them at a
# throwaway SQLite file before anything from crm_api is imported.
_IMPORT_DB_DIR = tempfile.mkdtemp(prefix="crm-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_IMPORT_DB_DIR}/import.db"
os.environ.pop("DATABASE_SERVICE_URL", None)
os.environ.setdefault("CRM_JSON_LOGS", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from crm_api.auth.privileged import PrivilegedAccessClient
from crm_api.auth.session_auth import get_auth_client, get_privileged_client
from crm_api.db.engine import build_engine, build_sessionmaker
from crm_api.db.models import Base
from crm_api.db.session import get_db
from crm_api.main import app


class FakeAuthAPI:
    """In-memory stand-in for ``supabase.Client.auth``.

    Tokens map to users; unknown tokens raise like the real client does.
    """

    def __init__(self) -> None:
        self.users_by_token: dict[str, Any] = {}
        self.users_by_email: dict[str, Any] = {}
        self.passwords: dict[str, str] = {}
        self.otp_tokens: dict[str, Any] = {}
        self.confirm_email = True
        self.sign_up_error: Optional[Exception] = None
        self.sign_up_calls: list[dict] = []
        self.sign_out_calls = 0

    def add_user(self, user_id: Optional[str] = None, email: Optional[str] = None, name: str = "Test User") -> tuple[Any, str]:
        user_id = user_id or str(uuid.uuid4())
        user = SimpleNamespace(
            id=user_id,
            email=email or f"{user_id[:8]}@example.com",
            user_metadata={"full_name": name},
        )
        token = f"token-{user_id}"
        self.users_by_token[token] = user
        self.users_by_email[user.email] = user
        return user, token

    def _session_for(self, user: Any) -> SimpleNamespace:
        token = f"token-{user.id}"
        self.users_by_token[token] = user
        return SimpleNamespace(access_token=token, refresh_token=f"refresh-{user.id}", expires_at=1_900_000_000)

    def get_user(self, jwt: str) -> SimpleNamespace:
        user = self.users_by_token.get(jwt)
        if user is None:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=user)

    def sign_up(self, credentials: dict) -> SimpleNamespace:
        self.sign_up_calls.append(credentials)
        if self.sign_up_error is not None:
            raise self.sign_up_error
        if credentials["email"] in self.users_by_email:
            raise Exception("User already registered")

        data = credentials.get("options", {}).get("data", {})
        user, _ = self.add_user(email=credentials["email"], name=data.get("full_name", ""))
        self.passwords[user.email] = credentials["password"]

        if self.confirm_email:
            # confirmation required: no session until the link is followed
            for token in [t for t, u in self.users_by_token.items() if u is user]:
                del self.users_by_token[token]
            otp = f"otp-{user.id}"
            self.otp_tokens[otp] = user
            return SimpleNamespace(user=user, session=None)
        return SimpleNamespace(user=user, session=self._session_for(user))

    def sign_in_with_password(self, credentials: dict) -> SimpleNamespace:
        user = self.users_by_email.get(credentials["email"])
        if user is None or self.passwords.get(user.email) != credentials["password"]:
            raise Exception("Invalid login credentials")
        return SimpleNamespace(user=user, session=self._session_for(user))

    def verify_otp(self, params: dict) -> SimpleNamespace:
        user = self.otp_tokens.pop(params["token_hash"], None)
        if user is None:
            raise Exception("Token has expired or is invalid")
        return SimpleNamespace(user=user, session=self._session_for(user))

    def sign_out(self) -> None:
        self.sign_out_calls += 1


class FakeSupabase:
    def __init__(self) -> None:
        self.auth = FakeAuthAPI()


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file database per test (file, so threads share it)."""
    test_engine = build_engine(f"sqlite:///{tmp_path / 'crm.db'}")
    Base.metadata.create_all(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(test_engine)
        test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return build_sessionmaker(engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def privileged_client(session_factory) -> PrivilegedAccessClient:
    return PrivilegedAccessClient(session_factory)


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def client(session_factory, fake_supabase, privileged_client):
    """TestClient with database, Supabase and privileged client overridden."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_client] = lambda: fake_supabase
    app.dependency_overrides[get_privileged_client] = lambda: privileged_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_a(fake_supabase) -> dict[str, str]:
    """Signed-in user A (organization provisioned on first request)."""
    user, token = fake_supabase.auth.add_user(name="Alice Smith")
    return {"user_id": user.id, "headers": bearer(token)}


@pytest.fixture
def user_b(fake_supabase) -> dict[str, str]:
    """Signed-in user B, in a different organization from A."""
    user, token = fake_supabase.auth.add_user(name="Bob Jones")
    return {"user_id": user.id, "headers": bearer(token)}


@pytest.fixture
def org_a(client, user_a) -> str:
    resp = client.post("/api/auth/ensure-org", headers=user_a["headers"])
    assert resp.status_code == 200
    return resp.json()["data"]["orgId"]


@pytest.fixture
def org_b(client, user_b) -> str:
    resp = client.post("/api/auth/ensure-org", headers=user_b["headers"])
    assert resp.status_code == 200
    return resp.json()["data"]["orgId"]


@pytest.fixture
def default_pipeline(client, user_a, org_a) -> dict:
    resp = client.post(
        "/api/pipelines",
        json={"name": "Sales", "stages": ["Lead", "Qualified", "Won"]},
        headers=user_a["headers"],
    )
    assert resp.status_code == 201
    return resp.json()["data"]
