"""Evidence collection.

Validates and normalizes the claimant's method-specific evidence. Input uses
the wire field names (``uniqueIdentifier``, ``questions``, ``ownerPhotos``) so
error messages name the field the client must fix.

Image references are opaque URLs handed out by image storage; they are never
fetched or inspected here.
"""

import re
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel

from pethaven.exceptions import ValidationError
from pethaven.verification.models import (
    ManualEvidence,
    MicrochipEvidence,
    PhotoEvidence,
    QuestionsEvidence,
    SecurityQuestion,
    TagEvidence,
    VerificationMethod,
)

_MICROCHIP_SEPARATORS = re.compile(r"[\s\-.]+")
_WHITESPACE = re.compile(r"\s+")


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def normalize_identifier(method: VerificationMethod, value: Any) -> str:
    """Normalize a tag or microchip identifier.

    Tag identifiers are kept as written (trimmed). Microchip numbers are
    upper-cased with spaces, dashes and dots removed.
    """
    identifier = _require_text(value, "uniqueIdentifier")
    if method == VerificationMethod.MICROCHIP:
        identifier = _MICROCHIP_SEPARATORS.sub("", identifier).upper()
        if not identifier:
            raise ValidationError("uniqueIdentifier is required", field="uniqueIdentifier")
    return identifier


def normalize_photos(photos: Optional[Iterable[Any]], field: str) -> list[str]:
    """Trim, de-duplicate (keeping order) and require at least one image URL."""
    if photos is None or isinstance(photos, (str, bytes)):
        raise ValidationError(f"{field} must be a list of image URLs", field=field)
    result: list[str] = []
    for photo in photos:
        url = _require_text(photo, field)
        if url not in result:
            result.append(url)
    if not result:
        raise ValidationError(f"{field} requires at least one image", field=field)
    return result


def normalize_answer(answer: str) -> str:
    """Canonical form for comparing answers: case- and whitespace-insensitive."""
    return _WHITESPACE.sub(" ", answer).strip().casefold()


def grade_answer(expected: str, provided: Optional[str]) -> Optional[bool]:
    """Whether ``provided`` matches ``expected``; None when nothing was provided."""
    if provided is None or not provided.strip():
        return None
    return normalize_answer(expected) == normalize_answer(provided)


def normalize_questions(questions: Optional[Sequence[Mapping[str, Any]]]) -> list[SecurityQuestion]:
    """Validate the question set and grade any provided answers."""
    if not questions:
        raise ValidationError("questions requires at least one question", field="questions")

    result = []
    for index, item in enumerate(questions):
        if not isinstance(item, Mapping):
            raise ValidationError(f"questions[{index}] must be an object", field="questions")
        prompt = _require_text(item.get("question"), f"questions[{index}].question")
        expected = _require_text(item.get("expectedAnswer"), f"questions[{index}].expectedAnswer")
        provided = item.get("providedAnswer")
        if provided is not None and not isinstance(provided, str):
            raise ValidationError(
                f"questions[{index}].providedAnswer must be a string",
                field=f"questions[{index}].providedAnswer",
            )
        provided = provided.strip() if provided and provided.strip() else None
        result.append(SecurityQuestion(
            question=prompt,
            expected_answer=expected,
            provided_answer=provided,
            is_correct=grade_answer(expected, provided),
        ))
    return result


def _collect_tag(payload: Mapping[str, Any]) -> BaseModel:
    return TagEvidence(
        unique_identifier=normalize_identifier(VerificationMethod.TAG, payload.get("uniqueIdentifier"))
    )


def _collect_microchip(payload: Mapping[str, Any]) -> BaseModel:
    return MicrochipEvidence(
        unique_identifier=normalize_identifier(VerificationMethod.MICROCHIP, payload.get("uniqueIdentifier"))
    )


def _collect_photo(payload: Mapping[str, Any]) -> BaseModel:
    return PhotoEvidence(owner_photos=normalize_photos(payload.get("ownerPhotos"), "ownerPhotos"))


def _collect_questions(payload: Mapping[str, Any]) -> BaseModel:
    return QuestionsEvidence(questions=normalize_questions(payload.get("questions")))


def _collect_manual(payload: Mapping[str, Any]) -> BaseModel:
    return ManualEvidence()


COLLECTORS: dict[VerificationMethod, Callable[[Mapping[str, Any]], BaseModel]] = {
    VerificationMethod.TAG: _collect_tag,
    VerificationMethod.MICROCHIP: _collect_microchip,
    VerificationMethod.PHOTO: _collect_photo,
    VerificationMethod.QUESTIONS: _collect_questions,
    VerificationMethod.MANUAL: _collect_manual,
}


def collect_evidence(method: VerificationMethod, payload: Mapping[str, Any]) -> BaseModel:
    """Build the typed evidence for ``method`` from a submission payload.

    Args:
        method: The verification's (immutable) method
        payload: Submission body using wire field names

    Returns:
        The evidence variant matching ``method``

    Raises:
        ValidationError: A required field is missing or malformed
    """
    return COLLECTORS[VerificationMethod(method)](payload)
