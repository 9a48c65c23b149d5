"""
SQLAlchemy models for the database-backed PendingFlow store.
Rows live only between /auth and /callback and are deleted when consumed.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class PendingFlowRecord(Base):
    __tablename__ = "pending_flows"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Opaque key carried in the flow cookie
    flow_key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    state: Mapped[str] = mapped_column(String(255), nullable=False)
    bound_origin: Mapped[str] = mapped_column(String(255), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
