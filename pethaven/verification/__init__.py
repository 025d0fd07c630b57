"""Ownership verification: roles, state machine, evidence and registry."""

from pethaven.verification.models import (
    Disposition,
    Evidence,
    VerificationMethod,
    VerificationStatus,
)

__all__ = [
    "Disposition",
    "Evidence",
    "VerificationMethod",
    "VerificationStatus",
]
