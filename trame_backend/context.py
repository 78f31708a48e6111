"""
Application context: the process-wide components, built once at startup.

Lifecycle: `AppContext.create(settings)` in the FastAPI lifespan; handlers
receive it through the `get_context` dependency; `close()` at shutdown
force-flushes every pending edit before the engine is disposed.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from trame_database import init_db, make_engine, make_session_factory

from .config import Settings
from .credentials import CredentialStore, make_password_context
from .debounce import DebounceCoordinator
from .note_store import NoteStore
from .sessions import SessionManager

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    credentials: CredentialStore
    sessions: SessionManager
    notes: NoteStore
    coordinator: DebounceCoordinator

    # PUBLIC_INTERFACE
    @classmethod
    def create(cls, settings: Settings) -> "AppContext":
        """Creates the engine and tables and wires the components together."""
        engine = make_engine(settings.database_url)
        init_db(engine)
        session_factory = make_session_factory(engine)
        pwd_context = make_password_context(
            memory_cost=settings.argon2_memory_cost,
            rounds=settings.argon2_rounds,
            parallelism=settings.argon2_parallelism,
        )
        notes = NoteStore(session_factory)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            credentials=CredentialStore(
                session_factory,
                pwd_context,
                username_min_length=settings.username_min_length,
                password_min_length=settings.password_min_length,
            ),
            sessions=SessionManager(session_factory, ttl_seconds=settings.session_ttl_seconds),
            notes=notes,
            coordinator=DebounceCoordinator(notes, window_seconds=settings.debounce_seconds),
        )

    # PUBLIC_INTERFACE
    def close(self):
        """Flushes all pending edits, then releases database connections."""
        try:
            self.coordinator.shutdown()
        finally:
            self.engine.dispose()
            logger.info("Application context closed")
