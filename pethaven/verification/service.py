"""Verification service: the ownership-verification protocol.

Each public method is one request's read-modify-write on a single
verification (plus the pet row when a claim is verified), committed as one
transaction. Authorization runs before state checks so that outsiders learn
nothing about a verification's status.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pethaven.audit import AuditLogger, get_audit_logger
from pethaven.auth.identity import ResolvedIdentity
from pethaven.db.models import ChatMessage, User, Verification, utcnow
from pethaven.exceptions import Conflict, Expired, Forbidden, NotFound, ValidationError
from pethaven.pets.store import PetRecordStore
from pethaven.users.store import UserStore
from pethaven.verification.evidence import collect_evidence, normalize_photos
from pethaven.verification.models import (
    DECISION_STATUSES,
    REUNITED_DISPOSITION,
    PhotoEvidence,
    VerificationMethod,
    VerificationStatus,
    dump_evidence,
    load_evidence,
)
from pethaven.verification.roles import infer_roles
from pethaven.verification.state_machine import (
    Action,
    authorize,
    check_transition,
    require_status,
    roles_for,
)
from pethaven.verification.store import VerificationStore

log = logging.getLogger(__name__)

EXPIRED_MESSAGE = "This verification process has expired"


def _decision(status: Any) -> VerificationStatus:
    """Parse a finder/admin decision; only VERIFIED and REJECTED are decisions."""
    try:
        target = VerificationStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown status: {status}", field="status")
    if target not in DECISION_STATUSES:
        raise ValidationError("status must be VERIFIED or REJECTED", field="status")
    return target


class VerificationService:
    """Runs the verification protocol against the database.

    Args:
        db: SQLAlchemy session for this request
        clock: Source of "now" as naive UTC
        ttl: Chat window measured from creation
        audit: Audit logger (defaults to the global one)
        max_message_length: Upper bound on chat message length
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        ttl: Optional[timedelta] = None,
        audit: Optional[AuditLogger] = None,
        max_message_length: Optional[int] = None,
    ):
        from pethaven.config import CHAT_MAX_MESSAGE_LENGTH, VERIFICATION_TTL_DAYS

        self.db = db
        self.clock = clock
        self.ttl = ttl if ttl is not None else timedelta(days=VERIFICATION_TTL_DAYS)
        self.audit = audit or get_audit_logger()
        self.max_message_length = max_message_length or CHAT_MAX_MESSAGE_LENGTH
        self.verifications = VerificationStore(db)
        self.pets = PetRecordStore(db)
        self.users = UserStore(db)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load(self, verification_id: str) -> Verification:
        verification = self.verifications.get(verification_id)
        if verification is None:
            raise NotFound("Verification process not found")
        return verification

    def _authorize(self, action: Action, verification: Verification, identity: ResolvedIdentity) -> None:
        roles = roles_for(
            verification.finder_id,
            verification.claimant_id,
            identity.principal_id,
            identity.is_admin,
        )
        try:
            authorize(action, roles)
        except Forbidden:
            self.audit.log_verification(
                action.value, identity.email, verification.id, status="denied"
            )
            raise

    def _user_for(self, email: str, identity: ResolvedIdentity, missing: str) -> User:
        if email == identity.email:
            user = self.users.find_by_id(identity.principal_id)
        else:
            user = self.users.find_by_email(email)
        if user is None:
            raise NotFound(missing)
        return user

    def _touch(self, verification: Verification) -> datetime:
        now = self.clock()
        verification.updated_at = now
        return now

    def _reunite_if_verified(self, verification: Verification, target: VerificationStatus) -> None:
        # Joins the verification's transaction; committed by save()
        if target == VerificationStatus.VERIFIED:
            self.pets.update_disposition(verification.pet_id, REUNITED_DISPOSITION, commit=False)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def initiate(
        self,
        identity: ResolvedIdentity,
        pet_id: str,
        method: Any,
        claimant_email: Optional[str] = None,
    ) -> tuple[Verification, bool]:
        """Open a verification for a pet, or return the existing one.

        Returns:
            Tuple of (verification, created). ``created`` is False when a
            verification for this (pet, claimant) already existed.

        Raises:
            NotFound: Pet, finder or named claimant unknown
            RoleError: Caller may not initiate for this pet
            ValidationError: Bad method, ineligible pet, missing claimant
            Conflict: A verification with the roles reversed exists
        """
        try:
            method = VerificationMethod(method)
        except ValueError:
            raise ValidationError(
                f"Unknown verification method: {method}", field="verificationMethod"
            )

        pet = self.pets.find_by_id(pet_id)
        if pet is None:
            raise NotFound("Pet not found")

        assignment = infer_roles(pet.disposition, pet.owner, identity.email, claimant_email)
        finder = self._user_for(
            assignment.finder_email, identity, "Pet owner/finder not found in user database"
        )
        claimant = self._user_for(
            assignment.claimant_email, identity, "Claimant not found in user database"
        )

        existing = self.verifications.get_by_pet_and_claimant(pet.id, claimant.id)
        if existing is not None:
            log.info(f"Returning existing verification {existing.id} for pet {pet.id}")
            return existing, False

        # Role inference never swaps the pair itself; rows written before a
        # disposition change or by an import can still hold it reversed
        reverse = self.verifications.get_by_pet_and_claimant(pet.id, finder.id)
        if reverse is not None and reverse.finder_id == claimant.id:
            raise Conflict("A verification with these participants in reverse roles already exists")

        now = self.clock()
        verification = Verification(
            id=str(uuid.uuid4()),
            pet_id=pet.id,
            finder_id=finder.id,
            claimant_id=claimant.id,
            verification_method=method.value,
            status=VerificationStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            expires_at=now + self.ttl,
        )
        try:
            self.verifications.add(verification)
        except IntegrityError:
            # Lost a race with a concurrent initiate for the same pair
            existing = self.verifications.get_by_pet_and_claimant(pet.id, claimant.id)
            if existing is None:
                raise
            return existing, False

        self.audit.log_verification(
            "initiate",
            identity.email,
            verification.id,
            details={"pet_id": pet.id, "method": method.value},
        )
        return verification, True

    def get(self, identity: ResolvedIdentity, verification_id: str) -> Verification:
        """Fetch a verification visible to a participant or admin."""
        verification = self._load(verification_id)
        self._authorize(Action.VIEW, verification, identity)
        return verification

    def list_for(self, identity: ResolvedIdentity) -> list[Verification]:
        """Verifications where the caller is finder or claimant."""
        return self.verifications.list_for_principal(identity.principal_id)

    def submit_evidence(
        self,
        identity: ResolvedIdentity,
        verification_id: str,
        payload: Mapping[str, Any],
        declared_method: Any = None,
    ) -> Verification:
        """Record the claimant's evidence. Evidence can be written once.

        Args:
            payload: Method-specific fields using wire names
            declared_method: Method the client believes it is answering; must
                match the record if given
        """
        verification = self._load(verification_id)
        self._authorize(Action.SUBMIT_EVIDENCE, verification, identity)
        require_status(Action.SUBMIT_EVIDENCE, verification.status)

        if verification.evidence_submitted_at is not None:
            raise Forbidden("Verification data has already been submitted")

        method = VerificationMethod(verification.verification_method)
        if declared_method is not None and declared_method != method.value:
            raise ValidationError(
                f"This verification uses method {method.value}", field="verificationMethod"
            )

        evidence = collect_evidence(method, payload)
        verification.evidence = dump_evidence(evidence)
        verification.evidence_submitted_at = self._touch(verification)
        self.verifications.save(verification)

        self.audit.log_verification(
            "submit_evidence", identity.email, verification.id, details={"method": method.value}
        )
        return verification

    def respond(
        self,
        identity: ResolvedIdentity,
        verification_id: str,
        status: Any,
        finder_photos: Optional[Sequence[str]] = None,
        admin_notes: Optional[str] = None,
    ) -> Verification:
        """Finder accepts or rejects the claim."""
        verification = self._load(verification_id)
        self._authorize(Action.RESPOND, verification, identity)
        target = _decision(status)
        require_status(Action.RESPOND, verification.status)
        check_transition(verification.status, target)

        if finder_photos is not None:
            if verification.verification_method != VerificationMethod.PHOTO.value:
                raise ValidationError(
                    "finderPhotos are only accepted for PHOTO verifications",
                    field="finderPhotos",
                )
            photos = normalize_photos(finder_photos, "finderPhotos")
            evidence = load_evidence(verification.evidence) or PhotoEvidence()
            verification.evidence = dump_evidence(evidence.model_copy(update={"finder_photos": photos}))

        if admin_notes is not None:
            verification.admin_notes = admin_notes

        verification.status = target.value
        self._touch(verification)
        self._reunite_if_verified(verification, target)
        self.verifications.save(verification)

        self.audit.log_verification(
            "respond", identity.email, verification.id, details={"status": target.value}
        )
        return verification

    def dispute(self, identity: ResolvedIdentity, verification_id: str, reason: Any) -> Verification:
        """Escalate to admin arbitration. Re-disputing returns the record unchanged."""
        verification = self._load(verification_id)
        self._authorize(Action.DISPUTE, verification, identity)
        if not isinstance(reason, str) or not reason.strip():
            raise ValidationError("disputeReason is required", field="disputeReason")
        require_status(Action.DISPUTE, verification.status)

        if verification.status == VerificationStatus.DISPUTED.value:
            return verification

        check_transition(verification.status, VerificationStatus.DISPUTED)
        now = self._touch(verification)
        verification.status = VerificationStatus.DISPUTED.value
        verification.dispute_reason = reason.strip()
        verification.disputed_by_id = identity.principal_id
        verification.dispute_opened_at = now
        self.verifications.save(verification)

        self.audit.log_verification("dispute", identity.email, verification.id)
        return verification

    def resolve(
        self,
        identity: ResolvedIdentity,
        verification_id: str,
        status: Any,
        admin_notes: Optional[str] = None,
    ) -> Verification:
        """Admin decides a disputed verification."""
        if not identity.is_admin:
            self.audit.log_verification(
                Action.RESOLVE.value, identity.email, verification_id, status="denied"
            )
            raise Forbidden("Only admins can resolve disputes")

        target = _decision(status)
        verification = self._load(verification_id)
        require_status(Action.RESOLVE, verification.status)
        check_transition(verification.status, target)

        verification.status = target.value
        verification.resolved_by_id = identity.principal_id
        if admin_notes is not None:
            verification.admin_notes = admin_notes
        self._touch(verification)
        self._reunite_if_verified(verification, target)
        self.verifications.save(verification)

        self.audit.log_verification(
            "resolve", identity.email, verification.id, details={"status": target.value}
        )
        return verification

    def send_message(self, identity: ResolvedIdentity, verification_id: str, message: Any) -> Verification:
        """Append a chat message while the verification is open."""
        verification = self._load(verification_id)
        self._authorize(Action.SEND_MESSAGE, verification, identity)

        now = self.clock()
        if now >= verification.expires_at:
            raise Expired(EXPIRED_MESSAGE)
        require_status(Action.SEND_MESSAGE, verification.status)

        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message is required", field="message")
        text = message.strip()
        if len(text) > self.max_message_length:
            raise ValidationError(
                f"message must be at most {self.max_message_length} characters",
                field="message",
            )

        verification.chat_history.append(
            ChatMessage(sender_id=identity.principal_id, message=text, timestamp=now)
        )
        verification.updated_at = now
        self.verifications.save(verification)

        self.audit.log_verification("send_message", identity.email, verification.id)
        return verification

    def list_disputes(self, identity: ResolvedIdentity) -> list[Verification]:
        """Disputed verifications, oldest dispute first (admin only)."""
        if not identity.is_admin:
            raise Forbidden("Only admins can view disputes")
        return self.verifications.list_by_status(VerificationStatus.DISPUTED)

    def dispute_age_seconds(self, verification: Verification) -> Optional[float]:
        """Seconds since the dispute was opened, or None if never disputed."""
        if verification.dispute_opened_at is None:
            return None
        return (self.clock() - verification.dispute_opened_at).total_seconds()
