from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
class Account(Base):
    """
    The single account of the service. Immutable after signup.
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    username = Column(String(64), unique=True, index=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sessions = relationship("Session", back_populates="account", cascade="all, delete-orphan")
    note = relationship("Note", back_populates="owner", uselist=False)


# PUBLIC_INTERFACE
class Session(Base):
    """
    A login session. Only the SHA-256 digest of the bearer token is stored.
    """
    __tablename__ = "sessions"

    token_hash = Column(String(64), primary_key=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), index=True, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), index=True, nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)

    account = relationship("Account", back_populates="sessions")


# PUBLIC_INTERFACE
class Note(Base):
    """
    The owner's document. Keyed by owner so there is exactly one row per account.
    """
    __tablename__ = "notes"

    owner_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    id = Column(String(36), unique=True, nullable=False)
    content = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    owner = relationship("Account", back_populates="note")
