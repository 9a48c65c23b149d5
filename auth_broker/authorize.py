"""
Flow initiation. GET /auth (alias /auth/github): issue state, bind it to a PendingFlow
carried in a cookie, redirect to GitHub's authorize endpoint.
In device mode the same endpoints return a device code as JSON instead.
"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from auth_broker.audit import EVENT_DEVICE_CODE_ISSUED, EVENT_FLOW_STARTED, get_client_ip, log_audit
from auth_broker.config import PROVIDER, GrantMode, Settings, get_settings
from auth_broker.errors import ClientError, ConfigError
from auth_broker.flow import FlowState
from auth_broker.flow_store import FlowStore, PendingFlow, get_flow_store, set_flow_cookie
from auth_broker.origin import OriginPolicy, get_origin_policy, require_allowed_origin
from auth_broker.provider import request_device_code

logger = logging.getLogger(__name__)
router = APIRouter()


def build_authorize_url(
    *,
    authorize_endpoint: str,
    client_id: str,
    scope: str,
    redirect_uri: str,
    state: str,
) -> str:
    """Provider authorize URL with client_id, scope, redirect_uri, state."""
    params = {
        "client_id": client_id,
        "scope": scope,
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{authorize_endpoint}?{urlencode(params)}"


def callback_uri(request: Request, settings: Settings) -> str:
    """
    Absolute callback URI: OAUTH_REDIRECT_URI if set, else {scheme}://{host}/callback
    for the host the request came in on. X-Forwarded-Proto is honoured for TLS-terminating proxies.
    """
    if settings.redirect_uri:
        if not settings.redirect_uri.startswith(("https://", "http://")):
            raise ConfigError("OAUTH_REDIRECT_URI must be an absolute URL")
        return settings.redirect_uri
    host = request.url.netloc
    if not host:
        raise ConfigError("Cannot derive callback URI: no Host header and OAUTH_REDIRECT_URI unset")
    forwarded = request.headers.get("x-forwarded-proto")
    scheme = forwarded.split(",")[0].strip().lower() if forwarded else request.url.scheme
    return f"{scheme}://{host}/callback"


def _check_provider(provider: str | None) -> None:
    if provider and provider.strip().lower() != PROVIDER:
        raise ClientError("unsupported provider", error="unsupported_provider")


def _start_device_flow(request: Request, settings: Settings, policy: OriginPolicy, scope: str, origin: str | None):
    require_allowed_origin(request)
    policy.resolve_hint(origin)
    data = request_device_code(settings, scope)
    log_audit(EVENT_DEVICE_CODE_ISSUED, ip=get_client_ip(request), origin=request.headers.get("origin"))
    # The device code is handed back as "token"; the client polls POST /auth/github/callback with it
    return JSONResponse(
        {
            "provider": PROVIDER,
            "token": data["device_code"],
            "verification_uri": data.get("verification_uri"),
            "user_code": data.get("user_code"),
            "expires_in": data.get("expires_in"),
            "interval": data.get("interval"),
        },
        headers={"Cache-Control": "no-store"},
    )


@router.get("/auth")
@router.get("/auth/github")
def auth_start(
    request: Request,
    scope: str | None = None,
    origin: str | None = None,
    provider: str | None = None,
    settings: Settings = Depends(get_settings),
    policy: OriginPolicy = Depends(get_origin_policy),
    store: FlowStore = Depends(get_flow_store),
):
    """
    Start a login. Web mode: 302 to the provider and set the flow cookie.
    Device mode: JSON with the device code and verification URI.
    """
    _check_provider(provider)
    if not settings.client_id:
        logger.error("GITHUB_CLIENT_ID is not configured; refusing to start a flow")
        raise ConfigError("GITHUB_CLIENT_ID is not configured")
    effective_scope = (scope or "").strip() or settings.default_scope

    if settings.grant_mode == GrantMode.DEVICE:
        return _start_device_flow(request, settings, policy, effective_scope, origin)

    target_origin = policy.resolve_hint(origin)
    redirect_uri = callback_uri(request, settings)
    flow = PendingFlow.issue(target_origin, settings.flow_ttl_seconds)
    credential = store.save(flow)

    url = build_authorize_url(
        authorize_endpoint=settings.authorize_endpoint,
        client_id=settings.client_id,
        scope=effective_scope,
        redirect_uri=redirect_uri,
        state=flow.state,
    )
    response = RedirectResponse(url=url, status_code=302)
    set_flow_cookie(response, settings, credential)
    log_audit(EVENT_FLOW_STARTED, ip=get_client_ip(request), origin=target_origin)
    logger.debug("flow %s -> %s", FlowState.IDLE.value, FlowState.INITIATED.value)
    return response
