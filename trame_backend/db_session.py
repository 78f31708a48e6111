"""Session scope with rollback and SQLAlchemy error mapping."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .errors import IOFailure

logger = logging.getLogger(__name__)


@contextmanager
def session_scope(session_factory: sessionmaker, operation: str) -> Iterator[Session]:
    """
    Yields a session, rolling back on any exception.

    SQLAlchemy errors become `IOFailure`; everything else propagates as is.
    """
    db = session_factory()
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"DB error during {operation}: {e}")
        raise IOFailure(str(e), operation) from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
