"""
Callback handling: verify state against the PendingFlow, exchange the grant with GitHub,
classify the outcome, hand it to the relay.
GET /callback (web flow, popup relay page) and POST /auth/github/callback (device flow, JSON).
Provider failures never escape as exceptions here; they become TokenResult errors.
"""
import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from auth_broker.audit import (
    EVENT_STATE_INVALID,
    EVENT_TOKEN_DENIED,
    EVENT_TOKEN_GRANTED,
    EVENT_TRANSPORT_ERROR,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from auth_broker.authorize import callback_uri
from auth_broker.config import Settings, get_settings
from auth_broker.errors import BrokerError, ClientError, ConfigError, TransportError
from auth_broker.flow import FlowState, TokenResult
from auth_broker.flow_store import FlowStore, clear_flow_cookie, get_flow_store
from auth_broker.origin import OriginPolicy, get_origin_policy, require_allowed_origin
from auth_broker.provider import exchange_code, exchange_device_code
from auth_broker.relay import relay_json, render_relay_page

logger = logging.getLogger(__name__)
router = APIRouter()

_AUDIT_EVENTS = {
    FlowState.TOKEN_GRANTED: EVENT_TOKEN_GRANTED,
    FlowState.TOKEN_DENIED: EVENT_TOKEN_DENIED,
    FlowState.TRANSPORT_ERROR: EVENT_TRANSPORT_ERROR,
    FlowState.STATE_INVALID: EVENT_STATE_INVALID,
}


def _transition(src: FlowState, dst: FlowState) -> FlowState:
    logger.debug("flow %s -> %s", src.value, dst.value)
    return dst


def _audit(request: Request, result: TokenResult, origin: str | None) -> None:
    event = _AUDIT_EVENTS.get(result.outcome)
    if event is None:
        return
    log_audit(
        event,
        ip=get_client_ip(request),
        origin=origin,
        outcome=OUTCOME_SUCCESS if result.ok else OUTCOME_FAIL,
        detail=result.error,
    )


def _exchange(exchange, *args) -> TokenResult:
    """Single attempt; any BrokerError becomes the failure variant."""
    try:
        return TokenResult.granted(exchange(*args))
    except BrokerError as e:
        if isinstance(e, ConfigError):
            logger.error("Token exchange not attempted: %s", e.message)
        return TokenResult.from_error(e)


def handle_web_callback(
    settings: Settings,
    store: FlowStore,
    policy: OriginPolicy,
    *,
    credential: str | None,
    code: str | None,
    state: str | None,
    redirect_uri: str,
    error: str | None = None,
    error_description: str | None = None,
) -> tuple[TokenResult, str]:
    """
    Returns (result, relay target origin). The PendingFlow is consumed whatever happens.
    The token endpoint is only called once state has been verified and a code is present.
    """
    current = _transition(FlowState.INITIATED, FlowState.CODE_RECEIVED)
    try:
        flow = store.pop(credential)
    except (ConfigError, TransportError) as e:
        logger.error("Cannot read pending flow: %s", e.message)
        return TokenResult.from_error(e), policy.relay_target()
    target = flow.bound_origin if flow else policy.relay_target()

    if flow is None or not flow.matches(state):
        _transition(current, FlowState.STATE_INVALID)
        reason = "missing state" if not state else "invalid or expired state"
        return TokenResult.state_invalid(f"{reason}; start the login again"), target
    current = _transition(current, FlowState.STATE_VALID)

    if error:
        # User denied consent (or provider refused) before issuing a code
        _transition(current, FlowState.TOKEN_DENIED)
        return TokenResult(
            outcome=FlowState.TOKEN_DENIED,
            error=error,
            message=error_description or error,
            status_code=400,
        ), target
    if not code:
        return TokenResult.from_error(ClientError("missing code")), target

    current = _transition(current, FlowState.TOKEN_REQUESTED)
    result = _exchange(exchange_code, settings, code, redirect_uri)
    _transition(current, result.outcome)
    return result, target


def handle_device_exchange(settings: Settings, device_code: str | None) -> TokenResult:
    """Device code -> TokenResult. No state check: the device code itself is the single-use grant."""
    if not device_code:
        return TokenResult.from_error(ClientError("missing device_code"))
    _transition(FlowState.CODE_RECEIVED, FlowState.TOKEN_REQUESTED)
    result = _exchange(exchange_device_code, settings, device_code)
    _transition(FlowState.TOKEN_REQUESTED, result.outcome)
    return result


@router.get("/callback")
def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    settings: Settings = Depends(get_settings),
    policy: OriginPolicy = Depends(get_origin_policy),
    store: FlowStore = Depends(get_flow_store),
):
    """Provider redirect target. Always answers with the relay page; the flow cookie is cleared."""
    try:
        redirect_uri = callback_uri(request, settings)
    except ConfigError as e:
        logger.error("Cannot build callback URI: %s", e.message)
        result, target = TokenResult.from_error(e), policy.relay_target()
    else:
        result, target = handle_web_callback(
            settings,
            store,
            policy,
            credential=request.cookies.get(settings.cookie_name),
            code=code,
            state=state,
            redirect_uri=redirect_uri,
            error=error,
            error_description=error_description,
        )
    _audit(request, result, target)
    response = render_relay_page(result, target, settings.flow_mode)
    clear_flow_cookie(response, settings)
    logger.debug("flow %s -> %s", result.outcome.value, FlowState.RELAYED.value)
    return response


@router.post("/auth/github/callback", dependencies=[Depends(require_allowed_origin)])
async def device_callback(
    request: Request,
    settings: Settings = Depends(get_settings),
):
    """
    Device flow exchange. Body {"token": "<device_code>"}.
    200 {token, provider}; 400 {error, ...} while pending or when denied.
    """
    try:
        body = await request.json()
    except ValueError:
        body = None
    device_code = None
    if isinstance(body, dict):
        device_code = body.get("token") or body.get("device_code")
    if device_code is not None and not isinstance(device_code, str):
        device_code = None
    # Blocking provider call off the event loop
    result = await run_in_threadpool(handle_device_exchange, settings, device_code)
    _audit(request, result, request.headers.get("origin"))
    return relay_json(result)
