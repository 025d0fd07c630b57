"""User store: principals keyed by email."""

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pethaven.db.models import User, utcnow
from pethaven.db.session import translate_storage_errors
from pethaven.exceptions import NotFound

log = logging.getLogger(__name__)


class UserStore:
    """Store for user records.

    Users are created on first authenticated request (find-or-create) and
    looked up by email when a pet's reporter or a named claimant must be
    resolved to a user ID.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        with translate_storage_errors(self.db, "user.find_by_email"):
            return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def find_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        with translate_storage_errors(self.db, "user.find_by_id"):
            return self.db.query(User).filter(User.id == user_id).first()

    def create(self, email: str, name: str = "", picture: Optional[str] = None) -> User:
        """Create a new user.

        Raises:
            IntegrityError: If a user with this email already exists
        """
        email = email.strip().lower()
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name or email,
            picture=picture,
        )
        with translate_storage_errors(self.db, "user.create"):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        log.info(f"Created user {user.id} for {user.email}")
        return user

    def get_or_create(self, email: str, name: str = "", picture: Optional[str] = None) -> User:
        """Return the user for ``email``, creating it on first sight.

        A concurrent creation of the same email is resolved by re-reading.
        """
        user = self.find_by_email(email)
        if user is not None:
            return user
        try:
            return self.create(email, name=name, picture=picture)
        except IntegrityError:
            user = self.find_by_email(email)
            if user is None:
                raise
            return user

    def set_admin(self, email: str, is_admin: bool) -> User:
        """Set or clear the explicit admin flag of an existing user.

        Raises:
            NotFound: No user with this email
        """
        user = self.find_by_email(email)
        if user is None:
            raise NotFound(f"User with email {email} not found")
        user.is_admin = is_admin
        user.updated_at = utcnow()
        with translate_storage_errors(self.db, "user.set_admin"):
            self.db.commit()
            self.db.refresh(user)
        log.info(f"User {user.email} admin flag set to {is_admin}")
        return user

    def list_all(self) -> list[User]:
        """List all users, oldest first."""
        with translate_storage_errors(self.db, "user.list_all"):
            return self.db.query(User).order_by(User.created_at).all()
