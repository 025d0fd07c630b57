"""Database module for the PetHaven service.

SQLAlchemy ORM models and session management for users, pets,
verifications and their chat logs.
"""

from pethaven.db.models import (
    Base,
    ChatMessage,
    Pet,
    User,
    Verification,
    utcnow,
)
from pethaven.db.session import get_db, engine, SessionLocal

__all__ = [
    "Base",
    "ChatMessage",
    "Pet",
    "User",
    "Verification",
    "utcnow",
    "get_db",
    "engine",
    "SessionLocal",
]
