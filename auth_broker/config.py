"""
Broker configuration. Built once from the environment and passed to create_app;
components read it from app.state via get_settings, never from os.environ.
No secret values are ever logged from here.
"""
import os
from dataclasses import dataclass
from enum import Enum

from fastapi import Request

PROVIDER = "github"


class FlowMode(str, Enum):
    """postMessage payload convention expected by the relying application."""

    OBJECT = "object"  # {token, provider}
    STRING = "string"  # "authorization:github:success:<token>"


class GrantMode(str, Enum):
    """What GET /auth initiates."""

    WEB = "web"
    DEVICE = "device"


class FlowStoreKind(str, Enum):
    COOKIE = "cookie"
    DATABASE = "database"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_str(name: str) -> str | None:
    return (os.environ.get(name) or "").strip() or None


@dataclass(frozen=True)
class Settings:
    client_id: str | None = None
    client_secret: str | None = None
    # Relying application origin as configured (may carry a path; OriginPolicy strips it)
    allowed_origin: str | None = None
    # Explicit opt-in: accept any Origin (development only)
    allow_any_origin: bool = False
    require_origin: bool = False
    # Absolute callback URI; when unset it is derived from the request host
    redirect_uri: str | None = None
    default_scope: str = "repo"
    provider_base_url: str = "https://github.com"
    flow_mode: FlowMode = FlowMode.OBJECT
    grant_mode: GrantMode = GrantMode.WEB
    flow_store: FlowStoreKind = FlowStoreKind.COOKIE
    flow_database_url: str = "sqlite:///./auth_broker.db"
    flow_signing_key: str | None = None
    flow_ttl_seconds: int = 600
    cookie_name: str = "oauth_flow"
    cookie_secure: bool = True
    provider_timeout_seconds: float = 10.0
    repo_full_name: str | None = None
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read the process environment once (at startup)."""
        return cls(
            client_id=_env_str("GITHUB_CLIENT_ID"),
            client_secret=_env_str("GITHUB_CLIENT_SECRET"),
            allowed_origin=_env_str("ALLOWED_ORIGIN"),
            allow_any_origin=_env_bool("ALLOW_ANY_ORIGIN", False),
            require_origin=_env_bool("REQUIRE_ORIGIN", False),
            redirect_uri=_env_str("OAUTH_REDIRECT_URI"),
            default_scope=_env_str("OAUTH_SCOPE") or "repo",
            provider_base_url=(_env_str("GITHUB_BASE_URL") or "https://github.com").rstrip("/"),
            flow_mode=FlowMode((_env_str("FLOW_MODE") or "object").lower()),
            grant_mode=GrantMode((_env_str("GRANT_MODE") or "web").lower()),
            flow_store=FlowStoreKind((_env_str("FLOW_STORE") or "cookie").lower()),
            flow_database_url=_env_str("FLOW_DATABASE_URL") or "sqlite:///./auth_broker.db",
            flow_signing_key=_env_str("FLOW_SIGNING_KEY"),
            flow_ttl_seconds=int(os.environ.get("FLOW_TTL_SECONDS", "600")),
            cookie_name=_env_str("COOKIE_NAME") or "oauth_flow",
            cookie_secure=_env_bool("COOKIE_SECURE", True),
            provider_timeout_seconds=float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "10")),
            repo_full_name=_env_str("REPO_FULL_NAME"),
            host=_env_str("HOST") or "0.0.0.0",
            port=int(os.environ.get("PORT", "3000")),
            log_level=(_env_str("LOG_LEVEL") or "info").lower(),
        )

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.provider_base_url}/login/oauth/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.provider_base_url}/login/oauth/access_token"

    @property
    def device_code_endpoint(self) -> str:
        return f"{self.provider_base_url}/login/device/code"

    @property
    def signing_key(self) -> str | None:
        """HMAC key for signed flow cookies; the client secret when no dedicated key is set."""
        return self.flow_signing_key or self.client_secret


def get_settings(request: Request) -> Settings:
    """Dependency: the Settings the app was created with."""
    return request.app.state.settings
