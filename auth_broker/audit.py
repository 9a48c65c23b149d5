"""
Audit logging. Security-relevant events only, written to the "auth_broker.audit" logger.
Never pass tokens, codes, state values, or the client secret here.
"""
import logging

from fastapi import Request

EVENT_FLOW_STARTED = "flow_started"
EVENT_DEVICE_CODE_ISSUED = "device_code_issued"
EVENT_STATE_INVALID = "state_invalid"
EVENT_TOKEN_GRANTED = "token_granted"
EVENT_TOKEN_DENIED = "token_denied"
EVENT_TRANSPORT_ERROR = "transport_error"
EVENT_ORIGIN_REJECTED = "origin_rejected"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"

audit_logger = logging.getLogger("auth_broker.audit")


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (e.g. request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    event_type: str,
    *,
    ip: str | None = None,
    origin: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    detail: str | None = None,
) -> None:
    """Emit one audit record."""
    level = logging.INFO if outcome == OUTCOME_SUCCESS else logging.WARNING
    audit_logger.log(
        level,
        "event=%s outcome=%s ip=%s origin=%s detail=%s",
        event_type,
        outcome,
        ip or "-",
        origin or "-",
        detail or "-",
        extra={"event_type": event_type, "outcome": outcome},
    )
