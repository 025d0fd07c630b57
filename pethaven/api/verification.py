"""Verification API endpoints.

The ownership-verification protocol: initiate, submit evidence, respond,
chat, dispute and resolve. All endpoints require an authenticated caller;
role checks happen in ``VerificationService``.
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from pethaven.api.models import (
    ChatMessageRequest,
    ChatMessageResponse,
    DisputeListResponse,
    DisputeRequest,
    DisputeSummaryResponse,
    InitiateVerificationRequest,
    ResolveRequest,
    RespondRequest,
    SubmitEvidenceRequest,
    VerificationListResponse,
    VerificationResponse,
)
from pethaven.auth.identity import ResolvedIdentity, get_identity
from pethaven.db.models import Verification
from pethaven.db.session import get_db
from pethaven.verification.service import VerificationService

log = logging.getLogger(__name__)
router = APIRouter(prefix="/verifications", tags=["verifications"])


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _verification_data(verification: Verification) -> dict:
    data = dict(verification.evidence or {})
    data["adminNotes"] = verification.admin_notes
    return data


def verification_to_response(verification: Verification) -> VerificationResponse:
    """Convert a Verification model to its API response."""
    return VerificationResponse(
        id=verification.id,
        pet_id=verification.pet_id,
        finder_id=verification.finder_id,
        claimant_id=verification.claimant_id,
        verification_method=verification.verification_method,
        status=verification.status,
        verification_data=_verification_data(verification),
        chat_history=[
            ChatMessageResponse(
                sender=m.sender_id,
                message=m.message,
                timestamp=_iso(m.timestamp),
            )
            for m in verification.chat_history
        ],
        dispute_reason=verification.dispute_reason,
        disputed_by=verification.disputed_by_id,
        dispute_opened_at=_iso(verification.dispute_opened_at),
        resolved_by=verification.resolved_by_id,
        created_at=_iso(verification.created_at),
        updated_at=_iso(verification.updated_at),
        expires_at=_iso(verification.expires_at),
        version=verification.version,
    )


def get_verification_service(db: Session = Depends(get_db)) -> VerificationService:
    return VerificationService(db)


@router.post("", response_model=VerificationResponse, status_code=201)
async def initiate_verification(
    body: InitiateVerificationRequest,
    response: Response,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Open a verification for a pet.

    Returns 201 for a new verification and 200 with the existing record when
    one already exists for this pet and claimant.
    """
    verification, created = service.initiate(
        identity,
        body.pet_id,
        body.verification_method,
        claimant_email=body.claimant_email,
    )
    if not created:
        response.status_code = 200
    return verification_to_response(verification)


@router.get("", response_model=VerificationListResponse)
async def list_verifications(
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationListResponse:
    """List the caller's verifications, most recently updated first."""
    verifications = service.list_for(identity)
    return VerificationListResponse(
        verifications=[verification_to_response(v) for v in verifications],
        count=len(verifications),
    )


@router.get("/disputes", response_model=DisputeListResponse)
async def list_disputes(
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> DisputeListResponse:
    """List open disputes, oldest first. Admin only."""
    disputes = service.list_disputes(identity)
    return DisputeListResponse(
        disputes=[
            DisputeSummaryResponse(
                **verification_to_response(v).model_dump(),
                dispute_age_seconds=service.dispute_age_seconds(v),
            )
            for v in disputes
        ],
        count=len(disputes),
    )


@router.get("/{verification_id}", response_model=VerificationResponse)
async def get_verification(
    verification_id: str,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Get a verification. Participants and admins only."""
    return verification_to_response(service.get(identity, verification_id))


@router.post("/{verification_id}/data", response_model=VerificationResponse)
async def submit_verification_data(
    verification_id: str,
    body: SubmitEvidenceRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Submit the claimant's evidence. Accepted once, while PENDING."""
    verification = service.submit_evidence(
        identity,
        verification_id,
        body.evidence_payload(),
        declared_method=body.verification_method,
    )
    return verification_to_response(verification)


@router.put("/{verification_id}/respond", response_model=VerificationResponse)
async def respond_to_verification(
    verification_id: str,
    body: RespondRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Finder verifies or rejects the claim."""
    verification = service.respond(
        identity,
        verification_id,
        body.status,
        finder_photos=body.finder_photos,
        admin_notes=body.admin_notes,
    )
    return verification_to_response(verification)


@router.post("/{verification_id}/chat", response_model=VerificationResponse)
async def send_chat_message(
    verification_id: str,
    body: ChatMessageRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Append a message to the verification chat."""
    verification = service.send_message(identity, verification_id, body.message)
    return verification_to_response(verification)


@router.post("/{verification_id}/dispute", response_model=VerificationResponse)
async def report_dispute(
    verification_id: str,
    body: DisputeRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Escalate a verification to admin arbitration."""
    verification = service.dispute(identity, verification_id, body.dispute_reason)
    return verification_to_response(verification)


@router.put("/{verification_id}/resolve", response_model=VerificationResponse)
async def resolve_dispute(
    verification_id: str,
    body: ResolveRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    service: VerificationService = Depends(get_verification_service),
) -> VerificationResponse:
    """Admin decides a disputed verification."""
    verification = service.resolve(
        identity,
        verification_id,
        body.status,
        admin_notes=body.admin_notes,
    )
    return verification_to_response(verification)
