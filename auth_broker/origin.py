"""
Origin policy for the single relying application.
Normalizes the configured origin to scheme://host[:port], gates cross-origin calls,
and picks the postMessage target for the relay page.
"""
from dataclasses import dataclass
from urllib.parse import urlsplit

from fastapi import Request

from auth_broker.audit import EVENT_ORIGIN_REJECTED, OUTCOME_FAIL, get_client_ip, log_audit
from auth_broker.config import Settings
from auth_broker.errors import ClientError, ConfigError

WILDCARD = "*"
_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_origin(value: str | None) -> str | None:
    """
    Return scheme://host[:port] for an absolute http(s) URL, dropping path, query,
    fragment and default ports. None if value is not such a URL.
    """
    if not value or not value.strip():
        return None
    try:
        parts = urlsplit(value.strip())
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = parts.hostname
    if scheme not in _DEFAULT_PORTS or not host:
        return None
    if ":" in host:
        host = f"[{host}]"  # IPv6 literal
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


@dataclass(frozen=True)
class OriginDecision:
    allowed: bool
    origin: str | None
    reason: str = ""


class OriginPolicy:
    """Immutable for the process lifetime."""

    def __init__(self, allowed_origin: str | None = None, *, allow_any: bool = False, require_origin: bool = False):
        self.allowed_origin = normalize_origin(allowed_origin)
        if allowed_origin and self.allowed_origin is None:
            raise ConfigError(f"ALLOWED_ORIGIN is not an absolute http(s) URL: {allowed_origin!r}")
        self.allow_any = allow_any
        self.require_origin = require_origin

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls(
            settings.allowed_origin,
            allow_any=settings.allow_any_origin,
            require_origin=settings.require_origin,
        )

    def check(self, origin_header: str | None) -> OriginDecision:
        """Decide whether a request carrying this Origin header may proceed. Never raises."""
        if not origin_header:
            return OriginDecision(True, None, "no origin header")
        normalized = normalize_origin(origin_header)
        if self.allow_any:
            return OriginDecision(True, normalized, "permissive mode")
        if normalized is not None and normalized == self.allowed_origin:
            return OriginDecision(True, normalized, "allowed origin")
        return OriginDecision(False, normalized, "origin not allowed")

    def relay_target(self, hint: str | None = None) -> str:
        """postMessage target: the allowed origin, else a permitted hint, else '*'."""
        if self.allowed_origin:
            return self.allowed_origin
        if self.allow_any:
            normalized = normalize_origin(hint)
            if normalized:
                return normalized
        return WILDCARD

    def resolve_hint(self, hint: str | None) -> str:
        """Relay target for a new flow given the optional ?origin= hint. Raises ClientError."""
        if not hint:
            if self.require_origin:
                raise ClientError("missing origin")
            return self.relay_target()
        normalized = normalize_origin(hint)
        if normalized is None:
            raise ClientError("origin must be an absolute http(s) URL")
        if self.allowed_origin and normalized != self.allowed_origin and not self.allow_any:
            raise ClientError("origin not allowed")
        return self.relay_target(normalized)

    def config_warnings(self) -> list[str]:
        warnings = []
        if not self.allowed_origin:
            warnings.append(
                "ALLOWED_ORIGIN is not set: relay page will post the token to any opener origin ('*')"
            )
        if self.allow_any:
            warnings.append("ALLOW_ANY_ORIGIN is enabled: cross-origin calls from any origin are accepted")
        return warnings

    def cors_options(self) -> dict:
        """Keyword arguments for CORSMiddleware matching this policy."""
        if self.allow_any:
            return {"allow_origin_regex": ".*"}
        if self.allowed_origin:
            return {"allow_origins": [self.allowed_origin]}
        return {"allow_origins": []}


def get_origin_policy(request: Request) -> OriginPolicy:
    """Dependency: the app's OriginPolicy."""
    return request.app.state.origin_policy


def require_allowed_origin(request: Request) -> OriginDecision:
    """Dependency for cross-origin JSON endpoints: 400 when the Origin is not permitted."""
    decision = get_origin_policy(request).check(request.headers.get("origin"))
    if not decision.allowed:
        log_audit(
            EVENT_ORIGIN_REJECTED,
            ip=get_client_ip(request),
            origin=decision.origin,
            outcome=OUTCOME_FAIL,
            detail=request.url.path,
        )
        raise ClientError(decision.reason, error="origin_not_allowed")
    return decision
