"""Database layer for the trame note service: engine setup, ORM models, table creation."""
from .db import make_engine, make_session_factory
from .init_db import init_db
from .models import Account, Base, Note, Session

__all__ = [
    "Account",
    "Base",
    "Note",
    "Session",
    "init_db",
    "make_engine",
    "make_session_factory",
]
