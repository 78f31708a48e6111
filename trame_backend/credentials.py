"""
Credential Store: account creation and password verification.

Passwords are hashed with argon2 (memory-hard, random per-hash salt) through
passlib. Plaintext passwords are never stored or logged.
"""
import logging
import uuid
from datetime import datetime, timezone

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from trame_database.models import Account

from .db_session import session_scope
from .errors import DuplicateUsername, InvalidCredentials, NotFound, WeakCredential

logger = logging.getLogger(__name__)

MAX_USERNAME_LENGTH = 64
MAX_PASSWORD_LENGTH = 256


# PUBLIC_INTERFACE
def make_password_context(memory_cost: int = 65536, rounds: int = 3, parallelism: int = 4) -> CryptContext:
    """Returns a passlib context using argon2 with the given cost parameters."""
    return CryptContext(
        schemes=["argon2"],
        deprecated="auto",
        argon2__memory_cost=memory_cost,
        argon2__rounds=rounds,
        argon2__parallelism=parallelism,
    )


# PUBLIC_INTERFACE
class CredentialStore:
    """Creates accounts and checks username/password pairs."""

    def __init__(
        self,
        session_factory: sessionmaker,
        pwd_context: CryptContext,
        username_min_length: int = 3,
        password_min_length: int = 6,
    ):
        self._session_factory = session_factory
        self._pwd_context = pwd_context
        self.username_min_length = username_min_length
        self.password_min_length = password_min_length

    def _validate(self, username: str, password: str):
        if not username.strip():
            raise WeakCredential("Username must not be blank.")
        if len(username) < self.username_min_length:
            raise WeakCredential(f"Username must be at least {self.username_min_length} characters.")
        if len(username) > MAX_USERNAME_LENGTH:
            raise WeakCredential(f"Username must be at most {MAX_USERNAME_LENGTH} characters.")
        if not password or len(password) < self.password_min_length:
            raise WeakCredential(f"Password must be at least {self.password_min_length} characters.")
        if len(password) > MAX_PASSWORD_LENGTH:
            raise WeakCredential(f"Password must be at most {MAX_PASSWORD_LENGTH} characters.")

    # PUBLIC_INTERFACE
    def create_account(self, username: str, password: str) -> str:
        """
        Registers a new account and returns its id.

        Raises WeakCredential if validation fails and DuplicateUsername if the
        name is taken (including when a concurrent signup wins the race).
        """
        self._validate(username, password)
        with session_scope(self._session_factory, "create_account") as db:
            if db.execute(select(Account.id).where(Account.username == username)).first():
                raise DuplicateUsername(f"username {username!r} already registered")
            account = Account(
                id=str(uuid.uuid4()),
                username=username,
                password_hash=self._pwd_context.hash(password),
                created_at=datetime.now(timezone.utc),
            )
            db.add(account)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise DuplicateUsername(f"username {username!r} already registered")
            logger.info("Account created", extra={"account_id": account.id})
            return account.id

    # PUBLIC_INTERFACE
    def verify(self, username: str, password: str) -> str:
        """
        Returns the account id for a matching username/password pair.

        Unknown usernames and wrong passwords both raise InvalidCredentials.
        For unknown usernames a dummy argon2 verification still runs, so the
        two failures take comparable time.
        """
        with session_scope(self._session_factory, "verify") as db:
            row = db.execute(
                select(Account.id, Account.password_hash).where(Account.username == username)
            ).first()
        if row is None:
            self._pwd_context.dummy_verify()
            logger.info("Login failed")
            raise InvalidCredentials("unknown username")
        # argon2 recomputes the digest with the stored salt and compares it to
        # the stored digest in constant time; the plaintext is never compared.
        if not self._pwd_context.verify(password, row.password_hash):
            logger.info("Login failed", extra={"account_id": row.id})
            raise InvalidCredentials("password mismatch")
        return row.id

    # PUBLIC_INTERFACE
    def get_account(self, account_id: str) -> Account:
        """Returns the account row or raises NotFound."""
        with session_scope(self._session_factory, "get_account") as db:
            account = db.get(Account, account_id)
            if account is None:
                raise NotFound("Account", account_id)
            return account
