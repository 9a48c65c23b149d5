"""
Back-channel calls to GitHub: authorization code and device code exchange, device code request.
The client secret leaves the process only in the token endpoint request body.
Failures are raised as ProviderDenied or TransportError; callers decide how to relay them.
"""
import logging

import httpx

from auth_broker.config import Settings
from auth_broker.errors import ConfigError, ProviderDenied, TransportError

logger = logging.getLogger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


def _require_credentials(settings: Settings, *, secret: bool = True) -> None:
    if not settings.client_id:
        raise ConfigError("GITHUB_CLIENT_ID is not configured")
    if secret and not settings.client_secret:
        raise ConfigError("GITHUB_CLIENT_SECRET is not configured")


def _post_json(url: str, data: dict, timeout: float) -> dict:
    """POST a form to the provider and return its JSON object. Single attempt, no retries."""
    try:
        r = httpx.post(url, data=data, headers={"Accept": "application/json"}, timeout=timeout)
    except httpx.TimeoutException as e:
        logger.warning("Provider request to %s timed out: %s", url, type(e).__name__)
        raise TransportError("Identity provider did not respond in time")
    except httpx.HTTPError as e:
        logger.warning("Provider request to %s failed: %s", url, type(e).__name__)
        raise TransportError("Could not reach the identity provider")

    try:
        payload = r.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        logger.warning("Malformed response from %s (HTTP %s)", url, r.status_code)
        raise TransportError("Malformed response from the identity provider")

    if payload.get("error"):
        error = str(payload["error"])
        message = str(payload.get("error_description") or error)
        logger.info("Provider denied request to %s: %s", url, error)
        raise ProviderDenied(message, error=error)
    if r.status_code >= 500:
        logger.warning("Provider returned HTTP %s from %s", r.status_code, url)
        raise TransportError(f"Identity provider returned HTTP {r.status_code}")
    if r.status_code >= 400:
        raise ProviderDenied(f"Identity provider returned HTTP {r.status_code}")
    return payload


def _access_token_from(payload: dict) -> str:
    token = payload.get("access_token")
    if not isinstance(token, str) or not token:
        raise ProviderDenied("No access token in provider response", error="no_access_token")
    return token


def exchange_code(settings: Settings, code: str, redirect_uri: str) -> str:
    """Authorization code -> access token."""
    _require_credentials(settings)
    payload = _post_json(
        settings.token_endpoint,
        {
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        },
        settings.provider_timeout_seconds,
    )
    return _access_token_from(payload)


def exchange_device_code(settings: Settings, device_code: str) -> str:
    """Device code -> access token. Pending authorization comes back as ProviderDenied."""
    _require_credentials(settings)
    payload = _post_json(
        settings.token_endpoint,
        {
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "device_code": device_code,
            "grant_type": DEVICE_GRANT_TYPE,
        },
        settings.provider_timeout_seconds,
    )
    return _access_token_from(payload)


def request_device_code(settings: Settings, scope: str) -> dict:
    """
    Start a device flow. Returns device_code, user_code, verification_uri, expires_in, interval.
    Public call: only the client id is sent.
    """
    _require_credentials(settings, secret=False)
    payload = _post_json(
        settings.device_code_endpoint,
        {"client_id": settings.client_id, "scope": scope},
        settings.provider_timeout_seconds,
    )
    if not payload.get("device_code"):
        raise ProviderDenied("No device code in provider response", error="no_device_code")
    return payload
