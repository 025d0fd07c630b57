"""API models for PetHaven.

Pydantic models for API requests and responses. Field names are snake_case
in Python and camelCase on the wire.
"""
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pethaven.verification.models import VerificationMethod


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Verification Request Models
# =============================================================================


class InitiateVerificationRequest(CamelModel):
    """Request to open a verification for a pet."""

    pet_id: str = Field(..., description="Pet UUID")
    verification_method: VerificationMethod = Field(..., description="TAG, MICROCHIP, PHOTO, QUESTIONS or MANUAL")
    claimant_email: Optional[str] = Field(None, description="Claimant's email (found pets only)")


class SecurityQuestionInput(CamelModel):
    question: Optional[str] = None
    expected_answer: Optional[str] = None
    provided_answer: Optional[str] = None


class SubmitEvidenceRequest(CamelModel):
    """Claimant's method-specific evidence.

    Only the fields of the verification's method are read; required fields
    are checked by the evidence collector so errors name the field.
    """

    verification_method: Optional[VerificationMethod] = Field(None, description="Must match the verification's method")
    unique_identifier: Optional[str] = Field(None, description="Tag or microchip identifier")
    owner_photos: Optional[list[str]] = Field(None, description="Image URLs from image storage")
    questions: Optional[list[SecurityQuestionInput]] = None

    def evidence_payload(self) -> dict[str, Any]:
        """Submission fields keyed by wire name, omitting unset ones."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"verification_method"})


class RespondRequest(CamelModel):
    """Finder's decision on a claim."""

    status: str = Field(..., description="VERIFIED or REJECTED")
    finder_photos: Optional[list[str]] = Field(None, description="Finder's photos (PHOTO method only)")
    admin_notes: Optional[str] = None


class DisputeRequest(CamelModel):
    dispute_reason: Optional[str] = None


class ResolveRequest(CamelModel):
    """Admin's decision on a disputed verification."""

    status: str = Field(..., description="VERIFIED or REJECTED")
    admin_notes: Optional[str] = None


class ChatMessageRequest(CamelModel):
    message: Optional[str] = None


# =============================================================================
# Verification Response Models
# =============================================================================


class ChatMessageResponse(CamelModel):
    sender: str = Field(..., description="Sender's user ID")
    message: str
    timestamp: str = Field(..., description="Server timestamp (ISO8601)")


class VerificationResponse(CamelModel):
    """A verification as seen by a participant or admin."""

    id: str
    pet_id: str
    finder_id: str
    claimant_id: str
    verification_method: str
    status: str
    verification_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Evidence fields plus adminNotes",
    )
    chat_history: list[ChatMessageResponse] = Field(default_factory=list)
    dispute_reason: Optional[str] = None
    disputed_by: Optional[str] = None
    dispute_opened_at: Optional[str] = None
    resolved_by: Optional[str] = None
    created_at: str
    updated_at: str
    expires_at: str
    version: int


class VerificationListResponse(CamelModel):
    verifications: list[VerificationResponse]
    count: int


class DisputeSummaryResponse(VerificationResponse):
    """A disputed verification with the time it has been waiting."""

    dispute_age_seconds: Optional[float] = None


class DisputeListResponse(CamelModel):
    disputes: list[DisputeSummaryResponse]
    count: int


# =============================================================================
# Pet Models
# =============================================================================


class CreatePetRequest(CamelModel):
    """Report a lost or found pet. The caller becomes the reporter."""

    disposition: Literal["lost", "found"]
    name: str = ""
    animal_type: str = ""
    description: Optional[str] = None


class PetResponse(CamelModel):
    id: str
    name: str
    animal_type: str
    description: Optional[str] = None
    disposition: str
    owner: str = Field(..., description="Reporter's contact email")
    created_at: str
    updated_at: str


class PetListResponse(CamelModel):
    pets: list[PetResponse]
    count: int


# =============================================================================
# Admin Models
# =============================================================================


class AdminEmailRequest(CamelModel):
    email: str


class AdminEmailsResponse(CamelModel):
    emails: list[str]
    count: int


class AdminStatusRequest(CamelModel):
    """Set or clear a user's admin flag."""

    email: str
    make_admin: bool


class UserResponse(CamelModel):
    id: str
    email: str
    name: str
    is_admin: bool


class UserListResponse(CamelModel):
    users: list[UserResponse]
    count: int


class AuthReloadResponse(CamelModel):
    success: bool
    key_count: int
    version: int
    message: str


class AuditLogsResponse(CamelModel):
    events: list[dict[str, Any]]
    count: int
    buffer_size: int
    max_buffer_size: int


# =============================================================================
# Health Models
# =============================================================================


class HealthResponse(BaseModel):
    ok: bool
    database: str
