"""
Flow states and the TokenResult handed from the callback handler to the relay.
"""
from dataclasses import dataclass, field
from enum import Enum

from auth_broker.config import PROVIDER
from auth_broker.errors import BrokerError, ClientError, ConfigError, ProviderDenied, TransportError


class FlowState(str, Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    CODE_RECEIVED = "code_received"
    STATE_VALID = "state_valid"
    STATE_INVALID = "state_invalid"
    # Short-circuit terminals before any provider call: bad request or missing credentials
    REQUEST_INVALID = "request_invalid"
    CONFIG_ERROR = "config_error"
    TOKEN_REQUESTED = "token_requested"
    TOKEN_GRANTED = "token_granted"
    TOKEN_DENIED = "token_denied"
    TRANSPORT_ERROR = "transport_error"
    RELAYED = "relayed"


_ERROR_OUTCOMES = (
    (ConfigError, FlowState.CONFIG_ERROR),
    (ProviderDenied, FlowState.TOKEN_DENIED),
    (TransportError, FlowState.TRANSPORT_ERROR),
    (ClientError, FlowState.REQUEST_INVALID),
)


@dataclass(frozen=True)
class TokenResult:
    """Produced once by the callback handler, consumed once by the relay. Never logged."""

    outcome: FlowState
    provider: str = PROVIDER
    access_token: str | None = field(default=None, repr=False)
    error: str | None = None
    message: str | None = None
    status_code: int = 200

    @property
    def ok(self) -> bool:
        return self.outcome == FlowState.TOKEN_GRANTED and bool(self.access_token)

    @classmethod
    def granted(cls, access_token: str) -> "TokenResult":
        return cls(outcome=FlowState.TOKEN_GRANTED, access_token=access_token)

    @classmethod
    def state_invalid(cls, message: str) -> "TokenResult":
        return cls(outcome=FlowState.STATE_INVALID, error="invalid_state", message=message, status_code=400)

    @classmethod
    def from_error(cls, exc: BrokerError) -> "TokenResult":
        outcome = FlowState.REQUEST_INVALID
        for exc_type, state in _ERROR_OUTCOMES:
            if isinstance(exc, exc_type):
                outcome = state
                break
        return cls(outcome=outcome, error=exc.error, message=exc.message, status_code=exc.status_code)
