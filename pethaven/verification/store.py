"""Verification Registry: persistence for verification aggregates."""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from pethaven.db.models import Verification
from pethaven.db.session import translate_storage_errors
from pethaven.exceptions import Conflict
from pethaven.verification.models import VerificationStatus

log = logging.getLogger(__name__)


class VerificationStore:
    """Store for verification records.

    One record per (pet, claimant) pair, enforced by a unique constraint.
    Records are never deleted; terminal ones remain as an audit trail.
    """

    def __init__(self, db: Session):
        """Initialize store with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db

    def add(self, verification: Verification) -> Verification:
        """Insert a new verification.

        Raises:
            IntegrityError: A verification already exists for (pet, claimant)
        """
        with translate_storage_errors(self.db, "verification.add"):
            self.db.add(verification)
            self.db.commit()
            self.db.refresh(verification)
        log.info(
            f"Created verification {verification.id} for pet {verification.pet_id} "
            f"({verification.verification_method})"
        )
        return verification

    def get(self, verification_id: str) -> Optional[Verification]:
        """Get a verification by ID.

        Returns:
            Verification if found, None otherwise
        """
        with translate_storage_errors(self.db, "verification.get"):
            return (
                self.db.query(Verification)
                .options(selectinload(Verification.chat_history))
                .filter(Verification.id == verification_id)
                .first()
            )

    def get_by_pet_and_claimant(self, pet_id: str, claimant_id: str) -> Optional[Verification]:
        """Get the verification for a (pet, claimant) pair, if any."""
        with translate_storage_errors(self.db, "verification.get_by_pet_and_claimant"):
            return (
                self.db.query(Verification)
                .filter(
                    Verification.pet_id == pet_id,
                    Verification.claimant_id == claimant_id,
                )
                .first()
            )

    def list_for_principal(self, principal_id: str) -> list[Verification]:
        """List verifications where the principal is finder or claimant.

        Returns:
            Verifications, most recently updated first
        """
        with translate_storage_errors(self.db, "verification.list_for_principal"):
            return (
                self.db.query(Verification)
                .filter(
                    or_(
                        Verification.finder_id == principal_id,
                        Verification.claimant_id == principal_id,
                    )
                )
                .order_by(Verification.updated_at.desc())
                .all()
            )

    def list_by_status(self, status: VerificationStatus) -> list[Verification]:
        """List verifications in one status.

        Disputed records come back oldest dispute first; others by creation.
        """
        status = VerificationStatus(status)
        with translate_storage_errors(self.db, "verification.list_by_status"):
            query = self.db.query(Verification).filter(Verification.status == status.value)
            if status == VerificationStatus.DISPUTED:
                query = query.order_by(Verification.dispute_opened_at.asc(), Verification.created_at.asc())
            else:
                query = query.order_by(Verification.created_at.asc())
            return query.all()

    def save(self, verification: Verification) -> Verification:
        """Commit pending changes to a verification (and anything joined to
        the same transaction, such as a pet disposition change).

        Raises:
            Conflict: The record changed since it was read
        """
        try:
            with translate_storage_errors(self.db, "verification.save"):
                self.db.commit()
        except StaleDataError:
            log.warning(f"Stale write rejected for verification {verification.id}")
            raise Conflict(
                "This verification was modified by another request; reload and retry"
            )
        self.db.refresh(verification)
        return verification
