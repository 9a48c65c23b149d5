"""
Pytest configuration for auth_broker. Each test builds its own app from an explicit
Settings value, so nothing here depends on the process environment.
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from auth_broker.config import Settings
from auth_broker.flow_store import PendingFlow
from auth_broker.main import create_app

BASE_URL = "https://proxy.example.com"
CLIENT_SECRET = "gh-secret-must-never-reach-the-browser-0123456789"
SIGNING_KEY = "flow-signing-key-for-tests-0123456789abcdef"
ALLOWED_ORIGIN = "https://example.github.io/admin"


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "client_id": "abc",
            "client_secret": CLIENT_SECRET,
            "allowed_origin": ALLOWED_ORIGIN,
            "flow_signing_key": SIGNING_KEY,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_client(make_settings):
    def _make(**overrides) -> TestClient:
        return TestClient(create_app(make_settings(**overrides)), base_url=BASE_URL)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def seed_flow():
    """Store a PendingFlow in the client's app and put its credential in the cookie jar."""

    def _seed(client: TestClient, state: str, *, origin: str = "https://example.github.io", age_seconds: int = 0):
        app = client.app
        settings = app.state.settings
        issued = datetime.now(timezone.utc) - timedelta(seconds=age_seconds)
        flow = PendingFlow(
            state=state,
            bound_origin=origin,
            issued_at=issued,
            expires_at=issued + timedelta(seconds=settings.flow_ttl_seconds),
        )
        credential = app.state.flow_store.save(flow)
        client.cookies.set(settings.cookie_name, credential, domain="proxy.example.com", path="/")
        return credential

    return _seed


def provider_response(payload=None, *, status_code: int = 200, text: str | None = None) -> httpx.Response:
    """Canned GitHub token endpoint response."""
    request = httpx.Request("POST", "https://github.com/login/oauth/access_token")
    if text is not None:
        return httpx.Response(status_code, text=text, request=request)
    return httpx.Response(status_code, json=payload, request=request)


@pytest.fixture
def github_response():
    return provider_response
