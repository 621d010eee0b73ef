"""Engine and session factory lifecycle."""

from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings


@lru_cache
def get_engine() -> Engine:
    """Create the process-wide connection pool on first use."""

    settings = get_settings()
    return create_engine(settings.database_url, pool_pre_ping=True, future=True)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory bound to the configured engine."""

    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, future=True)


def dispose_engine() -> None:
    """Close pooled connections; the next call to get_engine() builds a fresh pool."""

    if get_engine.cache_info().currsize:
        get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
