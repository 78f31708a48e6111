"""Note Store: durable upsert/get of the owner's document."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import sessionmaker

from trame_database.models import Note

from .db_session import session_scope
from .errors import IOFailure

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclass(frozen=True)
class StoredNote:
    owner_id: str
    content: str
    updated_at: Optional[datetime]


# PUBLIC_INTERFACE
class NoteStore:
    """One note per owner, written by atomic upsert."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _insert(self, db):
        dialect = db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise IOFailure(f"no upsert support for dialect {dialect!r}", "put_note")

    # PUBLIC_INTERFACE
    def put(self, owner_id: str, content: str) -> datetime:
        """Creates or overwrites the owner's note in one statement. Returns the persisted timestamp."""
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory, "put_note") as db:
            insert = self._insert(db)
            stmt = insert(Note).values(
                owner_id=owner_id,
                id=str(uuid.uuid4()),
                content=content,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[Note.owner_id],
                set_={"content": stmt.excluded.content, "updated_at": stmt.excluded.updated_at},
            )
            db.execute(stmt)
            db.commit()
        logger.debug("Note persisted", extra={"owner_id": owner_id})
        return now

    # PUBLIC_INTERFACE
    def get(self, owner_id: str) -> StoredNote:
        """Returns the durable note, or an empty one if nothing was ever written."""
        with session_scope(self._session_factory, "get_note") as db:
            row = db.execute(
                select(Note.content, Note.updated_at).where(Note.owner_id == owner_id)
            ).first()
        if row is None:
            return StoredNote(owner_id=owner_id, content="", updated_at=None)
        updated_at = row.updated_at
        if updated_at is not None and updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return StoredNote(owner_id=owner_id, content=row.content, updated_at=updated_at)
