"""
Error taxonomy. Anything reaching the HTTP layer is rendered as
{"error": ..., "error_description": ...} by the handler registered in main.
Messages never carry the client secret or an access token.
"""
from fastapi import Request
from fastapi.responses import JSONResponse


class BrokerError(Exception):
    status_code = 400
    error = "invalid_request"

    def __init__(self, message: str, *, error: str | None = None):
        super().__init__(message)
        self.message = message
        if error:
            self.error = error

    def to_dict(self) -> dict:
        return {"error": self.error, "error_description": self.message}


class ConfigError(BrokerError):
    """Missing client id/secret/redirect URI. No provider call is attempted."""

    status_code = 500
    error = "server_misconfigured"


class ClientError(BrokerError):
    status_code = 400
    error = "invalid_request"


class ProviderDenied(BrokerError):
    """Provider answered but refused: error payload or no access token."""

    status_code = 400
    error = "access_denied"


class TransportError(BrokerError):
    """Network failure, timeout, or a response we cannot parse."""

    status_code = 502
    error = "provider_unavailable"


async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)
