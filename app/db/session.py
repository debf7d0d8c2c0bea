import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from sqlmodel import create_engine, Session
from app.core.config import settings
from app.core.errors import InfrastructureError

logger = logging.getLogger(__name__)

# Global engine instance
_engine = None


def get_engine():
    global _engine

    if _engine is not None:
        return _engine

    db_url = settings.database_url

    # SQLite fix for multithreading
    if db_url.startswith("sqlite"):
        _engine = create_engine(db_url, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(db_url, pool_pre_ping=True)

    logger.info("Database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


engine = get_engine()


def get_db():
    with Session(engine) as session:
        yield session


def new_session() -> Session:
    """Open a session outside of a request (background work, scripts)."""
    return Session(engine)


@contextmanager
def transaction(db: Session, action: str) -> Iterator[Session]:
    """
    Run a unit of work and commit it once.

    Any failure rolls the whole unit back, so callers never observe a partial
    write. Data-store errors surface as InfrastructureError; domain errors
    raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("%s failed", action)
        raise InfrastructureError(f"{action} failed") from exc
    except Exception:
        db.rollback()
        raise


@contextmanager
def reading(action: str) -> Iterator[None]:
    """Translate data-store errors raised during a read into InfrastructureError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("%s failed", action)
        raise InfrastructureError(f"{action} failed") from exc
