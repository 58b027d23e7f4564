from __future__ import annotations

import json
from collections.abc import Generator
from dataclasses import replace
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.config import Settings

SUPABASE_URL = "https://project.supabase.test"
TOKEN_URL = "https://oauth2.googleapis.com/token"
FCM_BASE_URL = "https://fcm.googleapis.com"


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def base_settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        supabase_url=SUPABASE_URL,
        supabase_anon_key="anon-key",
        firebase_project_id="",
        firebase_client_email="",
        firebase_private_key="",
        fcm_batch_size=10,
        simulation_delay_seconds=0,
        oauth_token_url=TOKEN_URL,
        fcm_base_url=FCM_BASE_URL,
    )


@pytest.fixture
def live_settings(base_settings, private_key_pem) -> Settings:
    # Stored the way it is pasted into an env var: escaped newlines.
    return replace(
        base_settings,
        firebase_project_id="demo-project",
        firebase_client_email="relay@demo-project.iam.gserviceaccount.com",
        firebase_private_key=private_key_pem.replace("\n", "\\n"),
    )


class FakeUpstream:
    """Plays the auth service, the OAuth2 token endpoint and FCM."""

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict | str = {"access_token": "ya29.test-token", "expires_in": 3600, "token_type": "Bearer"}
        self.auth_status = 200
        self.fcm_failures: dict[str, tuple[int, str]] = {}
        self.topic_failure: tuple[int, str] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        url = str(request.url)
        if url.startswith(SUPABASE_URL):
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": "caller-1", "email": "caller@example.com"})
        if url == TOKEN_URL:
            if isinstance(self.token_body, str):
                return httpx.Response(self.token_status, text=self.token_body)
            return httpx.Response(self.token_status, json=self.token_body)
        if url.startswith(FCM_BASE_URL):
            message = json.loads(request.content)["message"]
            if "topic" in message and self.topic_failure:
                status, body = self.topic_failure
                return httpx.Response(status, text=body)
            failure = self.fcm_failures.get(message.get("token", ""))
            if failure:
                status, body = failure
                return httpx.Response(status, text=body)
            return httpx.Response(200, json={"name": "projects/demo-project/messages/1"})
        return httpx.Response(404, text="unexpected url")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, prefix: str) -> list[httpx.Request]:
        return [call for call in self.calls if str(call.url).startswith(prefix)]

    def token_form(self) -> dict[str, list[str]]:
        return parse_qs(self.calls_to(TOKEN_URL)[0].content.decode())

    def sent_messages(self) -> list[dict]:
        return [json.loads(call.content)["message"] for call in self.calls_to(FCM_BASE_URL)]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def test_engine(tmp_path):
    from src.models.db import Base
    from src.models import tables  # noqa: F401

    db_file = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_file}", connect_args={"check_same_thread": False}, future=True)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session_local(test_engine):
    return sessionmaker(bind=test_engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db_session(db_session_local):
    db = db_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_ctx(test_engine, db_session_local, monkeypatch, upstream, base_settings) -> Generator[dict, None, None]:
    import src.models.db as db_module

    monkeypatch.setattr(db_module, "engine", test_engine, raising=False)
    monkeypatch.setattr(db_module, "SessionLocal", db_session_local, raising=False)

    from src.api.routes import get_http_transport
    from src.app import app
    from src.config import get_settings

    ctx = {"settings": base_settings}
    app.dependency_overrides[get_settings] = lambda: ctx["settings"]
    app.dependency_overrides[get_http_transport] = lambda: upstream.transport

    with TestClient(app) as client:
        ctx.update({"client": client, "session_local": db_session_local, "upstream": upstream})
        yield ctx

    app.dependency_overrides.clear()
