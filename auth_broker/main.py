"""
OAuth broker for a statically hosted admin UI.
GET /auth, /callback, POST /auth/github/callback, /health, /.
Settings are read once (Settings.from_env) and handed to create_app.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from auth_broker.authorize import router as authorize_router
from auth_broker.callback import router as callback_router
from auth_broker.config import PROVIDER, Settings
from auth_broker.errors import BrokerError, broker_error_handler
from auth_broker.flow_store import build_flow_store
from auth_broker.origin import OriginPolicy

logger = logging.getLogger(__name__)


def _log_config_warnings(settings: Settings, policy: OriginPolicy) -> None:
    if not settings.client_id:
        logger.error("GITHUB_CLIENT_ID is not set; /auth will answer 500")
    if not settings.client_secret:
        logger.error("GITHUB_CLIENT_SECRET is not set; token exchange will answer 500")
    if not settings.cookie_secure:
        logger.warning("COOKIE_SECURE is off; flow cookies will be sent over plain HTTP")
    for warning in policy.config_warnings():
        logger.warning(warning)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app around one Settings value (from the environment when not given)."""
    settings = settings or Settings.from_env()
    policy = OriginPolicy.from_settings(settings)
    _log_config_warnings(settings, policy)

    app = FastAPI(title="Auth Broker", version="1.0.0")
    app.state.settings = settings
    app.state.origin_policy = policy
    app.state.flow_store = build_flow_store(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        **policy.cors_options(),
    )
    app.add_exception_handler(BrokerError, broker_error_handler)
    app.include_router(authorize_router, tags=["authorize"])
    app.include_router(callback_router, tags=["callback"])

    @app.get("/", response_class=PlainTextResponse)
    def root():
        """Liveness."""
        return "OK: auth broker up"

    @app.get("/health")
    def health():
        """Configuration presence only; never secret values."""
        return {
            "ok": True,
            "service": "auth_broker",
            "provider": PROVIDER,
            "hasClientId": bool(settings.client_id),
            "hasSecret": bool(settings.client_secret),
            "allowedOrigin": policy.allowed_origin,
            "repo": settings.repo_full_name,
            "flowMode": settings.flow_mode.value,
            "grantMode": settings.grant_mode.value,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    env_settings = Settings.from_env()
    # uvicorn configures only its own loggers; route auth_broker.* (audit included) to stderr too
    logging.basicConfig(
        level=env_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "auth_broker.main:create_app",
        factory=True,
        host=env_settings.host,
        port=env_settings.port,
        log_level=env_settings.log_level,
    )
