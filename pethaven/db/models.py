"""SQLAlchemy ORM models for the PetHaven verification service.

This module defines the database schema for:
- Users (principals, found or created on first authenticated request)
- Pets (reports with a lost/found/adopted disposition)
- Verifications (one ownership claim per pet and claimant)
- Verification chat messages (append-only log owned by a verification)

All timestamps are naive UTC.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in every column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class User(Base):
    """A principal known to the platform.

    Users are keyed by lowercase email. The ``is_admin`` flag is one of three
    sources of admin rights (with the allow-list and the API key role).
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False, default="")
    picture = Column(String(1024), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r})>"


class Pet(Base):
    """A lost or found pet report.

    ``owner`` holds the reporter's contact email (the reporter of record).
    ``disposition`` is one of ``lost``, ``found`` or ``adopted``.
    """

    __tablename__ = "pets"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False, default="")
    animal_type = Column(String(64), nullable=False, default="")
    description = Column(Text, nullable=True)
    disposition = Column(String(16), nullable=False)
    owner = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Pet(id={self.id!r}, disposition={self.disposition!r}, owner={self.owner!r})>"


class Verification(Base):
    """Ownership verification between a finder and a claimant for one pet.

    The aggregate root of the verification subsystem. ``evidence`` holds the
    claimant's method-specific proof as a JSON tagged union (see
    ``pethaven.verification.models.Evidence``). ``version`` is bumped on every
    UPDATE; a write based on a stale read fails with ``StaleDataError``.
    """

    __tablename__ = "verifications"

    id = Column(String(36), primary_key=True)  # UUID
    pet_id = Column(String(36), ForeignKey("pets.id"), nullable=False)
    finder_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    claimant_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    verification_method = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")

    evidence = Column(JSON, nullable=True)
    evidence_submitted_at = Column(DateTime, nullable=True)
    admin_notes = Column(Text, nullable=True)

    dispute_reason = Column(Text, nullable=True)
    disputed_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    dispute_opened_at = Column(DateTime, nullable=True)
    resolved_by_id = Column(String(36), ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    pet = relationship("Pet")
    finder = relationship("User", foreign_keys=[finder_id])
    claimant = relationship("User", foreign_keys=[claimant_id])
    chat_history = relationship(
        "ChatMessage",
        back_populates="verification",
        order_by="ChatMessage.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("pet_id", "claimant_id", name="uq_verification_pet_claimant"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Verification(id={self.id!r}, pet_id={self.pet_id!r}, "
            f"status={self.status!r}, method={self.verification_method!r})>"
        )


class ChatMessage(Base):
    """One message in a verification's chat log.

    The auto-increment id gives the append order; ``timestamp`` is assigned
    server-side.
    """

    __tablename__ = "verification_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    verification_id = Column(
        String(36), ForeignKey("verifications.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    verification = relationship("Verification", back_populates="chat_history")
    sender = relationship("User")

    def __repr__(self) -> str:
        return f"<ChatMessage(id={self.id}, verification_id={self.verification_id!r})>"


@event.listens_for(User.email, "set", propagate=True, retval=True)
def normalize_email(target: User, value: str, oldvalue: str, initiator) -> str:
    """Normalize email to lowercase."""
    if value is not None:
        return value.strip().lower()
    return value


@event.listens_for(Pet.owner, "set", propagate=True, retval=True)
def normalize_owner(target: Pet, value: str, oldvalue: str, initiator) -> str:
    """Normalize the reporter contact email to lowercase."""
    if value is not None:
        return value.strip().lower()
    return value
