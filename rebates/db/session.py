"""Engine and session scope for the rebate database."""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from rebates.core.config import get_settings
from rebates.models import Base
from rebates.obs import instrument_sqlalchemy_engine


def build_engine(database_url: str, *, tracing: bool = False) -> Engine:
    """Create an engine; SQLite connections may be shared with calculation threads."""

    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    bind = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    if tracing:
        instrument_sqlalchemy_engine(bind)
    return bind


settings = get_settings()
engine = build_engine(settings.database_url, tracing=settings.enable_tracing)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables; migrations remain the source of truth for deployed databases."""
    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def get_session(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """Commit the work done in the block, or roll all of it back on error."""
    session: Session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["SessionLocal", "build_engine", "engine", "get_session", "init_db"]
