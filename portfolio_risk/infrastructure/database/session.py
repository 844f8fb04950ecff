"""Engine and session factories shared by requests and background recalculation"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from portfolio_risk.config import settings


def build_engine(database_url: str) -> Engine:
    """
    Engine for the configured database.

    Recalculation runs on a worker thread with its own session, so SQLite
    connections may not be pinned to the thread that opened them. Server
    databases get a pre-pinged pool sized from settings.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Request-scoped session for the scope's weights and client reads"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Factory for recalculation runs, which open their own session after the response is sent"""
    return SessionLocal
