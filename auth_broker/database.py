"""
Engine and session factory for the database flow store.
Any instance pointed at the same FLOW_DATABASE_URL can finish a flow started elsewhere.
"""
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth_broker.models import Base


def _is_in_memory_sqlite(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:")


def create_engine_for(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)
    # /auth and /callback run on different worker threads
    kwargs = {"connect_args": {"check_same_thread": False}}
    if _is_in_memory_sqlite(database_url):
        # One shared connection, or each thread would see its own empty table
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    """Create tables if missing."""
    Base.metadata.create_all(bind=engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
