"""Identity resolution.

Turns the authenticated caller into a role-neutral ``ResolvedIdentity``:
the caller's user row (created on first sight), email, display name and
whether they are an administrator.

The caller comes from one of two places:
- ``request.user``, set by ``APIKeyBackend`` when authentication is enabled
- the ``X-Principal-Email`` / ``X-Principal-Name`` headers of a trusted
  gateway when ``PETHAVEN_AUTH_ENABLED=false``
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from pethaven.auth.admins import AdminRegistry, get_admin_registry
from pethaven.auth.api_key import Principal
from pethaven.auth.roles import Role, has_role
from pethaven.db.session import get_db
from pethaven.exceptions import Forbidden, Unauthenticated
from pethaven.users.store import UserStore

log = logging.getLogger(__name__)

PRINCIPAL_EMAIL_HEADER = "X-Principal-Email"
PRINCIPAL_NAME_HEADER = "X-Principal-Name"


@dataclass(frozen=True)
class ResolvedIdentity:
    """The caller as seen by the verification service."""

    principal_id: str
    email: str
    display_name: str
    is_admin: bool = False


def resolve_identity(db: Session, principal: Principal, admins: AdminRegistry) -> ResolvedIdentity:
    """Find or create the caller's user row and compute admin rights.

    Admin rights come from any of: the allow-list, the ``pethaven:admin``
    key role, or the user's ``is_admin`` flag.
    """
    if not principal.email:
        raise Unauthenticated("Authenticated principal has no email")

    user = UserStore(db).get_or_create(principal.email, name=principal.name)
    is_admin = (
        admins.is_admin(user.email)
        or has_role(principal.roles, Role.ADMIN)
        or bool(user.is_admin)
    )
    return ResolvedIdentity(
        principal_id=user.id,
        email=user.email,
        display_name=user.name or user.email,
        is_admin=is_admin,
    )


def get_principal(request: Request) -> Principal:
    """Return the authenticated principal for this request.

    Raises:
        Unauthenticated: No key or gateway identity was presented
    """
    from pethaven.config import AUTH_ENABLED

    if AUTH_ENABLED:
        user = request.user if "user" in request.scope else None
        if isinstance(user, Principal):
            return user
        raise Unauthenticated("Authentication required")

    email = request.headers.get(PRINCIPAL_EMAIL_HEADER, "").strip().lower()
    if not email:
        raise Unauthenticated(f"Missing {PRINCIPAL_EMAIL_HEADER} header")
    name = request.headers.get(PRINCIPAL_NAME_HEADER, "").strip()
    return Principal(key_id=f"header:{email}", name=name or email, email=email)


def get_identity(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> ResolvedIdentity:
    """FastAPI dependency resolving the caller to a ResolvedIdentity."""
    admins = get_admin_registry()
    admins.reload_if_stale()
    return resolve_identity(db, principal, admins)


def require_admin_identity(
    identity: ResolvedIdentity = Depends(get_identity),
) -> ResolvedIdentity:
    """FastAPI dependency that only admits administrators."""
    if not identity.is_admin:
        log.warning(f"Admin access denied for {identity.email}")
        raise Forbidden("Admin access required")
    return identity
