"""
Session Manager: opaque bearer tokens with a fixed lifetime.

Tokens are 256 random bits from `secrets`. The database only holds the
SHA-256 digest of each token; validating hashes the presented token and looks
the digest up. Expired and revoked rows are purged lazily when new sessions
are issued, and `validate` rejects anything past its expiry regardless.
"""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.orm import sessionmaker

from trame_database.models import Session

from .db_session import session_scope
from .errors import SessionExpired, SessionNotFound

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class IssuedSession:
    token: str
    account_id: str
    expires_at: datetime


# PUBLIC_INTERFACE
class SessionManager:
    """Issues, validates and revokes session tokens."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    # PUBLIC_INTERFACE
    def issue(self, account_id: str) -> IssuedSession:
        """Creates a new session for the account. Other live sessions are kept."""
        self.purge_expired()
        token = secrets.token_urlsafe(TOKEN_BYTES)
        now = self._clock()
        expires_at = now + self.ttl
        with session_scope(self._session_factory, "issue_session") as db:
            db.add(Session(
                token_hash=hash_token(token),
                account_id=account_id,
                issued_at=now,
                expires_at=expires_at,
                revoked=False,
            ))
            db.commit()
        logger.info("Session issued", extra={"account_id": account_id})
        return IssuedSession(token=token, account_id=account_id, expires_at=expires_at)

    # PUBLIC_INTERFACE
    def validate(self, token: Optional[str]) -> str:
        """
        Returns the account id owning the token.

        Raises SessionNotFound for unknown, malformed or revoked tokens and
        SessionExpired once the expiry has passed.
        """
        if not token:
            raise SessionNotFound("no token presented")
        digest = hash_token(token)
        with session_scope(self._session_factory, "validate_session") as db:
            row = db.get(Session, digest)
            if row is None:
                raise SessionNotFound("unknown token")
            if row.revoked:
                raise SessionNotFound("revoked token")
            if _as_utc(row.expires_at) <= self._clock():
                db.delete(row)
                db.commit()
                logger.info("Session expired", extra={"account_id": row.account_id})
                raise SessionExpired("token past expiry")
            return row.account_id

    # PUBLIC_INTERFACE
    def revoke(self, token: Optional[str]):
        """Marks the session dead. Unknown or already revoked tokens are a no-op."""
        if not token:
            return
        with session_scope(self._session_factory, "revoke_session") as db:
            db.execute(
                update(Session)
                .where(Session.token_hash == hash_token(token))
                .values(revoked=True)
            )
            db.commit()

    # PUBLIC_INTERFACE
    def purge_expired(self) -> int:
        """Deletes expired and revoked sessions. Returns the number removed."""
        with session_scope(self._session_factory, "purge_sessions") as db:
            result = db.execute(
                delete(Session).where(
                    or_(Session.expires_at <= self._clock(), Session.revoked.is_(True))
                )
            )
            db.commit()
        if result.rowcount:
            logger.debug(f"Purged {result.rowcount} dead sessions")
        return result.rowcount or 0
