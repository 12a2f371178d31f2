"""
Database connection and session management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from funfarm_rewards.config import settings


def _engine_kwargs(url: str) -> dict:
    # SQLite (local dev / tests) uses a single-connection pool without sizing
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 20}


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    **_engine_kwargs(settings.DATABASE_URL)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Create tables if they don't exist yet (local dev only)"""
    from funfarm_rewards.db import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
