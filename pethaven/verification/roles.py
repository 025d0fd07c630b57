"""Finder/claimant role inference.

Roles are never supplied by the caller. They follow from the pet's
disposition and who is asking:

- ``found`` pet: the reporter is the finder. Only the reporter may open a
  verification, and must name the claimant.
- ``lost`` pet: the reporter is the finder and the caller is the claimant.
  The reporter cannot claim their own lost pet.

Any other disposition (``adopted``) is closed to verification.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pethaven.exceptions import Forbidden, ValidationError
from pethaven.verification.models import Disposition

log = logging.getLogger(__name__)


class RoleError(Forbidden):
    """The caller cannot take part in a verification for this pet."""

    kind = "role_error"


@dataclass(frozen=True)
class RoleAssignment:
    """Emails of the two participants of a verification."""

    finder_email: str
    claimant_email: str


def _normalize(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def infer_roles(
    disposition: str,
    reporter_email: str,
    caller_email: str,
    claimant_email: Optional[str] = None,
) -> RoleAssignment:
    """Derive finder and claimant for a new verification.

    Args:
        disposition: The pet's disposition (``lost``/``found``/``adopted``)
        reporter_email: The pet's reporter of record (``Pet.owner``)
        caller_email: The authenticated caller
        claimant_email: Claimant named by the finder (found pets only)

    Returns:
        RoleAssignment with distinct finder and claimant

    Raises:
        RoleError: Caller may not initiate in this position
        ValidationError: Pet not eligible or claimant missing/ambiguous
    """
    reporter = _normalize(reporter_email)
    caller = _normalize(caller_email)
    named = _normalize(claimant_email)

    if not caller:
        raise ValidationError("Caller email is required", field="email")

    is_reporter = caller == reporter

    try:
        kind = Disposition(disposition)
    except ValueError:
        raise ValidationError(f"Unknown pet disposition: {disposition}", field="petId")

    if kind == Disposition.FOUND:
        if not is_reporter:
            raise RoleError("Only the finder of this pet can initiate verification")
        if not named:
            raise ValidationError(
                "claimantEmail is required to open a verification for a found pet",
                field="claimantEmail",
            )
        if named == reporter:
            raise RoleError("The finder cannot also be the claimant")
        return RoleAssignment(finder_email=reporter, claimant_email=named)

    if kind == Disposition.LOST:
        if is_reporter:
            raise RoleError("You cannot claim your own lost pet")
        if named and named != caller:
            raise ValidationError(
                "claimantEmail is only accepted for found pets",
                field="claimantEmail",
            )
        return RoleAssignment(finder_email=reporter, claimant_email=caller)

    log.debug(f"Verification refused for pet with disposition {kind.value}")
    raise ValidationError(
        f"Pets with disposition '{kind.value}' cannot be verified",
        field="petId",
    )
