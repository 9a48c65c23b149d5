"""
PendingFlow: the state issued by /auth and consumed once by /callback.
Two stores, both carried by a client cookie so no instance affinity is needed:
a signed cookie holding the whole flow (HS256 JWT), or a key into a shared table.
"""
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Request, Response
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from auth_broker.config import FlowStoreKind, Settings
from auth_broker.database import create_engine_for, init_db, make_session_factory
from auth_broker.errors import ConfigError, TransportError
from auth_broker.models import PendingFlowRecord

logger = logging.getLogger(__name__)

_FLOW_AUDIENCE = "auth_broker:pending_flow"


def generate_state() -> str:
    """Opaque value for CSRF protection; 256 bits, returned unmodified by the provider."""
    return secrets.token_urlsafe(32)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class PendingFlow:
    state: str
    bound_origin: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def issue(cls, bound_origin: str, ttl_seconds: int, now: datetime | None = None) -> "PendingFlow":
        issued = now or _utc_now()
        return cls(
            state=generate_state(),
            bound_origin=bound_origin,
            issued_at=issued,
            expires_at=issued + timedelta(seconds=ttl_seconds),
        )

    def expired(self, now: datetime | None = None) -> bool:
        return (now or _utc_now()) >= self.expires_at

    def matches(self, state: str | None) -> bool:
        """Constant-time comparison against the state returned by the provider."""
        if not state:
            return False
        return hmac.compare_digest(self.state.encode("utf-8"), state.encode("utf-8"))


class FlowStore:
    """save() returns the cookie credential; pop() consumes it (single use)."""

    def save(self, flow: PendingFlow) -> str:
        raise NotImplementedError

    def pop(self, credential: str | None) -> PendingFlow | None:
        raise NotImplementedError


class SignedCookieFlowStore(FlowStore):
    """Stateless: the cookie carries the flow, signed with the broker's key."""

    def __init__(self, signing_key: str | None):
        self._key = signing_key

    def _require_key(self) -> str:
        if not self._key:
            raise ConfigError("No signing key for flow cookies (set FLOW_SIGNING_KEY or GITHUB_CLIENT_SECRET)")
        return self._key

    def save(self, flow: PendingFlow) -> str:
        claims = {
            "aud": _FLOW_AUDIENCE,
            "state": flow.state,
            "origin": flow.bound_origin,
            "iat": int(flow.issued_at.timestamp()),
            "exp": int(flow.expires_at.timestamp()),
        }
        return jwt.encode(claims, self._require_key(), algorithm="HS256")

    def pop(self, credential: str | None) -> PendingFlow | None:
        if not credential:
            return None
        try:
            claims = jwt.decode(
                credential,
                self._require_key(),
                algorithms=["HS256"],
                audience=_FLOW_AUDIENCE,
                options={"require": ["exp", "iat", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Flow cookie expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.info("Rejected flow cookie: %s", e)
            return None
        state = claims.get("state")
        origin = claims.get("origin")
        if not isinstance(state, str) or not isinstance(origin, str):
            return None
        flow = PendingFlow(
            state=state,
            bound_origin=origin,
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
        return None if flow.expired() else flow


class DatabaseFlowStore(FlowStore):
    """Keyed lookup in a shared table; the cookie carries only an opaque key."""

    def __init__(self, database_url: str):
        engine = create_engine_for(database_url)
        init_db(engine)
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    def save(self, flow: PendingFlow) -> str:
        flow_key = secrets.token_urlsafe(24)
        try:
            with self._session_factory() as db:
                # Abandoned flows are dropped here; no background sweeper
                db.execute(delete(PendingFlowRecord).where(PendingFlowRecord.expires_at <= _utc_now()))
                db.add(
                    PendingFlowRecord(
                        flow_key=flow_key,
                        state=flow.state,
                        bound_origin=flow.bound_origin,
                        issued_at=flow.issued_at,
                        expires_at=flow.expires_at,
                    )
                )
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Flow store write failed: %s", type(e).__name__)
            raise TransportError("Flow store unavailable", error="flow_store_unavailable") from e
        return flow_key

    def pop(self, credential: str | None) -> PendingFlow | None:
        if not credential:
            return None
        try:
            with self._session_factory() as db:
                record = db.execute(
                    select(PendingFlowRecord).where(PendingFlowRecord.flow_key == credential)
                ).scalar_one_or_none()
                if record is None:
                    return None
                flow = PendingFlow(
                    state=record.state,
                    bound_origin=record.bound_origin,
                    issued_at=_as_utc(record.issued_at),
                    expires_at=_as_utc(record.expires_at),
                )
                result = db.execute(delete(PendingFlowRecord).where(PendingFlowRecord.id == record.id))
                consumed = result.rowcount == 1
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Flow store read failed: %s", type(e).__name__)
            raise TransportError("Flow store unavailable", error="flow_store_unavailable") from e
        if not consumed:
            # Consumed concurrently by another request
            return None
        return None if flow.expired() else flow


def build_flow_store(settings: Settings) -> FlowStore:
    if settings.flow_store == FlowStoreKind.DATABASE:
        return DatabaseFlowStore(settings.flow_database_url)
    return SignedCookieFlowStore(settings.signing_key)


def get_flow_store(request: Request) -> FlowStore:
    """Dependency: the app's FlowStore."""
    return request.app.state.flow_store


def set_flow_cookie(response: Response, settings: Settings, credential: str) -> None:
    """Host-only, HttpOnly, Secure; Lax so the provider's top-level redirect carries it back."""
    response.set_cookie(
        settings.cookie_name,
        credential,
        max_age=settings.flow_ttl_seconds,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def clear_flow_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.cookie_name,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )
