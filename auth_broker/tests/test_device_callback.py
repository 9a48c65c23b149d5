"""
Tests for POST /auth/github/callback (device code exchange, JSON relay).
"""
from unittest.mock import patch

import httpx

from auth_broker.provider import DEVICE_GRANT_TYPE


def test_device_code_exchanged_for_token(client, github_response):
    with patch("auth_broker.provider.httpx.post", return_value=github_response({"access_token": "T"})) as post:
        r = client.post("/auth/github/callback", json={"token": "dev-123"})
    assert r.status_code == 200
    assert r.json() == {"token": "T", "provider": "github"}
    _, kwargs = post.call_args
    assert kwargs["data"]["device_code"] == "dev-123"
    assert kwargs["data"]["grant_type"] == DEVICE_GRANT_TYPE
    assert kwargs["data"]["client_secret"] == client.app.state.settings.client_secret


def test_expired_device_code_is_400(client, github_response):
    with patch("auth_broker.provider.httpx.post", return_value=github_response({"error": "expired_token"})):
        r = client.post("/auth/github/callback", json={"token": "dev-123"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "expired_token"
    assert body["error_description"] == "expired_token"
    assert "token" not in body


def test_pending_authorization_is_400_with_provider_message(client, github_response):
    payload = {
        "error": "authorization_pending",
        "error_description": "The authorization request is still pending.",
    }
    with patch("auth_broker.provider.httpx.post", return_value=github_response(payload)):
        r = client.post("/auth/github/callback", json={"token": "dev-123"})
    assert r.status_code == 400
    assert r.json()["error"] == "authorization_pending"
    assert "pending" in r.json()["error_description"]


def test_missing_device_code_never_calls_provider(client):
    with patch("auth_broker.provider.httpx.post") as post:
        empty = client.post("/auth/github/callback", json={})
        not_json = client.post("/auth/github/callback", content=b"not json", headers={"Content-Type": "application/json"})
        wrong_type = client.post("/auth/github/callback", json={"token": 42})
    for r in (empty, not_json, wrong_type):
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_request"
    post.assert_not_called()


def test_transport_failure_is_502(client):
    with patch("auth_broker.provider.httpx.post", side_effect=httpx.ConnectError("connection refused")):
        r = client.post("/auth/github/callback", json={"token": "dev-123"})
    assert r.status_code == 502
    assert r.json()["error"] == "provider_unavailable"
    assert "connection refused" not in r.text


def test_disallowed_origin_is_rejected_before_exchange(client):
    with patch("auth_broker.provider.httpx.post") as post:
        r = client.post(
            "/auth/github/callback",
            json={"token": "dev-123"},
            headers={"Origin": "https://evil.example"},
        )
    assert r.status_code == 400
    assert r.json()["error"] == "origin_not_allowed"
    post.assert_not_called()


def test_allowed_origin_gets_cors_headers(client, github_response):
    with patch("auth_broker.provider.httpx.post", return_value=github_response({"access_token": "T"})):
        r = client.post(
            "/auth/github/callback",
            json={"token": "dev-123"},
            headers={"Origin": "https://example.github.io"},
        )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "https://example.github.io"
    assert r.headers["access-control-allow-credentials"] == "true"


def test_secret_never_in_error_body(client, github_response):
    with patch("auth_broker.provider.httpx.post", return_value=github_response({"error": "incorrect_client_credentials"})):
        r = client.post("/auth/github/callback", json={"token": "dev-123"})
    assert client.app.state.settings.client_secret not in r.text
