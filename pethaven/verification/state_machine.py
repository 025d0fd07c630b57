"""Verification state machine.

States: PENDING (initial) -> VERIFIED | REJECTED (terminal) | DISPUTED.
DISPUTED -> VERIFIED | REJECTED, by an admin only.

Each action has a set of roles allowed to perform it and a set of statuses
it may start from. ``authorize`` and ``require_status`` raise the errors the
API reports; ``check_transition`` guards the status change itself.
"""

import logging
from enum import Enum

from pethaven.exceptions import Forbidden, InvalidStateError
from pethaven.verification.models import VerificationStatus

log = logging.getLogger(__name__)


class ParticipantRole(str, Enum):
    """How a principal relates to one verification."""

    FINDER = "finder"
    CLAIMANT = "claimant"
    ADMIN = "admin"


class Action(str, Enum):
    """Operations on an existing verification."""

    VIEW = "view"
    SUBMIT_EVIDENCE = "submit_evidence"
    RESPOND = "respond"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    SEND_MESSAGE = "send_message"


TRANSITIONS: dict[VerificationStatus, frozenset[VerificationStatus]] = {
    VerificationStatus.PENDING: frozenset({
        VerificationStatus.VERIFIED,
        VerificationStatus.REJECTED,
        VerificationStatus.DISPUTED,
    }),
    VerificationStatus.DISPUTED: frozenset({
        VerificationStatus.VERIFIED,
        VerificationStatus.REJECTED,
    }),
    VerificationStatus.VERIFIED: frozenset(),
    VerificationStatus.REJECTED: frozenset(),
}

ALLOWED_ROLES: dict[Action, frozenset[ParticipantRole]] = {
    Action.VIEW: frozenset({ParticipantRole.FINDER, ParticipantRole.CLAIMANT, ParticipantRole.ADMIN}),
    Action.SUBMIT_EVIDENCE: frozenset({ParticipantRole.CLAIMANT}),
    Action.RESPOND: frozenset({ParticipantRole.FINDER}),
    Action.DISPUTE: frozenset({ParticipantRole.FINDER, ParticipantRole.CLAIMANT}),
    Action.RESOLVE: frozenset({ParticipantRole.ADMIN}),
    Action.SEND_MESSAGE: frozenset({ParticipantRole.FINDER, ParticipantRole.CLAIMANT}),
}

# DISPUTE accepts DISPUTED so that re-disputing is a no-op rather than an error
ALLOWED_FROM: dict[Action, frozenset[VerificationStatus]] = {
    Action.SUBMIT_EVIDENCE: frozenset({VerificationStatus.PENDING}),
    Action.RESPOND: frozenset({VerificationStatus.PENDING}),
    Action.DISPUTE: frozenset({VerificationStatus.PENDING, VerificationStatus.DISPUTED}),
    Action.RESOLVE: frozenset({VerificationStatus.DISPUTED}),
    Action.SEND_MESSAGE: frozenset({VerificationStatus.PENDING}),
}

DENIED_MESSAGES: dict[Action, str] = {
    Action.VIEW: "You are not authorized to view this verification process",
    Action.SUBMIT_EVIDENCE: "Only the claimant can submit verification data",
    Action.RESPOND: "Only the finder can respond to verification requests",
    Action.DISPUTE: "You are not authorized to report a dispute for this verification",
    Action.RESOLVE: "Only admins can resolve disputes",
    Action.SEND_MESSAGE: "You are not authorized to participate in this chat",
}


def roles_for(
    finder_id: str,
    claimant_id: str,
    principal_id: str,
    is_admin: bool = False,
) -> frozenset[ParticipantRole]:
    """Roles a principal holds on one verification."""
    roles: set[ParticipantRole] = set()
    if principal_id == finder_id:
        roles.add(ParticipantRole.FINDER)
    if principal_id == claimant_id:
        roles.add(ParticipantRole.CLAIMANT)
    if is_admin:
        roles.add(ParticipantRole.ADMIN)
    return frozenset(roles)


def authorize(action: Action, roles: frozenset[ParticipantRole]) -> None:
    """Raise Forbidden unless one of ``roles`` may perform ``action``."""
    if roles & ALLOWED_ROLES[action]:
        return
    log.warning(f"Denied {action.value}: roles={sorted(r.value for r in roles)}")
    raise Forbidden(DENIED_MESSAGES[action])


def require_status(action: Action, current: VerificationStatus) -> None:
    """Raise InvalidStateError unless ``action`` may run from ``current``."""
    current = VerificationStatus(current)
    if current in ALLOWED_FROM[action]:
        return
    raise InvalidStateError(
        f"Cannot {action.value.replace('_', ' ')} a verification that is {current.value}"
    )


def can_transition(current: VerificationStatus, target: VerificationStatus) -> bool:
    return VerificationStatus(target) in TRANSITIONS[VerificationStatus(current)]


def check_transition(current: VerificationStatus, target: VerificationStatus) -> None:
    """Raise InvalidStateError if ``current -> target`` is not a legal move."""
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Illegal status change {VerificationStatus(current).value} -> "
            f"{VerificationStatus(target).value}"
        )
