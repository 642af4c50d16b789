"""
Database connection management.

Milestone state is the only persisted entity; the engine reads and writes it
whole, so a plain session-per-request setup is enough.
"""
import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from gutmap.config import settings

logger = logging.getLogger(__name__)

connect_args = {}
if settings.database_url.startswith("sqlite"):
    # FastAPI may hand the session to a different thread than the one that opened it
    connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a session that is always closed."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create tables that do not exist yet (used by the CLI and local runs)."""
    from gutmap import models  # noqa: F401  register models on Base

    logger.info("Creating tables for %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(engine)
