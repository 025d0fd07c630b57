"""Verification domain types.

Enums for methods, statuses and pet dispositions, plus the evidence tagged
union. Evidence is persisted as JSON in camelCase (``method`` is the tag) and
parsed back through ``EvidenceAdapter``.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class VerificationMethod(str, Enum):
    """How the claimant proves ownership."""

    TAG = "TAG"
    MICROCHIP = "MICROCHIP"
    PHOTO = "PHOTO"
    QUESTIONS = "QUESTIONS"
    MANUAL = "MANUAL"


class VerificationStatus(str, Enum):
    """Lifecycle status of a verification."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    DISPUTED = "DISPUTED"

    @property
    def is_terminal(self) -> bool:
        return self in (VerificationStatus.VERIFIED, VerificationStatus.REJECTED)


class Disposition(str, Enum):
    """Lifecycle tag of a pet report."""

    LOST = "lost"
    FOUND = "found"
    ADOPTED = "adopted"


# A verified claim reunites the pet with its owner
REUNITED_DISPOSITION = Disposition.ADOPTED

# Statuses a finder or admin may decide on
DECISION_STATUSES = frozenset({VerificationStatus.VERIFIED, VerificationStatus.REJECTED})


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SecurityQuestion(_CamelModel):
    """A question only the real owner should be able to answer."""

    question: str
    expected_answer: str
    provided_answer: Optional[str] = None
    is_correct: Optional[bool] = None


class TagEvidence(_CamelModel):
    method: Literal["TAG"] = "TAG"
    unique_identifier: str


class MicrochipEvidence(_CamelModel):
    method: Literal["MICROCHIP"] = "MICROCHIP"
    unique_identifier: str


class PhotoEvidence(_CamelModel):
    """Photos from the claimant, optionally matched by photos from the finder."""

    method: Literal["PHOTO"] = "PHOTO"
    owner_photos: list[str] = Field(default_factory=list)
    finder_photos: list[str] = Field(default_factory=list)


class QuestionsEvidence(_CamelModel):
    method: Literal["QUESTIONS"] = "QUESTIONS"
    questions: list[SecurityQuestion]


class ManualEvidence(_CamelModel):
    method: Literal["MANUAL"] = "MANUAL"


Evidence = Annotated[
    Union[TagEvidence, MicrochipEvidence, PhotoEvidence, QuestionsEvidence, ManualEvidence],
    Field(discriminator="method"),
]

EvidenceAdapter: TypeAdapter = TypeAdapter(Evidence)


def load_evidence(data: Optional[dict]) -> Optional[BaseModel]:
    """Parse stored evidence JSON back into its typed variant."""
    if not data:
        return None
    return EvidenceAdapter.validate_python(data)


def dump_evidence(evidence: BaseModel) -> dict:
    """Serialize an evidence variant for storage and API responses."""
    return evidence.model_dump(mode="json", by_alias=True)
