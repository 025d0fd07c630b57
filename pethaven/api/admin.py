"""Admin endpoints for PetHaven.

Administrative operations: the admin allow-list, user admin flags, API key
reload and recent audit events. All endpoints require an administrator.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from pethaven.api.models import (
    AdminEmailRequest,
    AdminEmailsResponse,
    AdminStatusRequest,
    AuditLogsResponse,
    AuthReloadResponse,
    UserListResponse,
    UserResponse,
)
from pethaven.audit import get_audit_logger
from pethaven.auth.admins import get_admin_registry
from pethaven.auth.api_key import get_api_key_store
from pethaven.auth.identity import ResolvedIdentity, require_admin_identity
from pethaven.db.models import User
from pethaven.db.session import get_db
from pethaven.exceptions import Conflict, NotFound, StorageError, ValidationError
from pethaven.users.store import UserStore

log = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


def _emails_response() -> AdminEmailsResponse:
    emails = get_admin_registry().emails()
    return AdminEmailsResponse(emails=emails, count=len(emails))


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, name=user.name, is_admin=user.is_admin)


def _require_email(value: str) -> str:
    email = value.strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("A valid email is required", field="email")
    return email


# =============================================================================
# Admin allow-list
# =============================================================================


@router.get("/emails", response_model=AdminEmailsResponse)
async def list_admin_emails(
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AdminEmailsResponse:
    """List the admin allow-list."""
    return _emails_response()


@router.post("/emails", response_model=AdminEmailsResponse, status_code=201)
async def add_admin_email(
    body: AdminEmailRequest,
    request: Request,
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AdminEmailsResponse:
    """Add an email to the admin allow-list."""
    email = _require_email(body.email)
    if not get_admin_registry().add(email):
        raise Conflict(f"{email} is already an admin")

    get_audit_logger().log(
        action="admin.emails.add",
        principal=identity.email,
        resource_type="admin_email",
        resource_id=email,
        request_id=request.headers.get("X-Request-ID"),
    )
    return _emails_response()


@router.delete("/emails/{email}", response_model=AdminEmailsResponse)
async def remove_admin_email(
    email: str,
    request: Request,
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AdminEmailsResponse:
    """Remove an email from the admin allow-list.

    Emails configured through PETHAVEN_ADMIN_EMAILS cannot be removed here.
    """
    email = _require_email(email)
    try:
        removed = get_admin_registry().remove(email)
    except ValueError as e:
        raise ValidationError(str(e), field="email") from e
    if not removed:
        raise NotFound(f"{email} is not in the admin allow-list")

    get_audit_logger().log(
        action="admin.emails.remove",
        principal=identity.email,
        resource_type="admin_email",
        resource_id=email,
        request_id=request.headers.get("X-Request-ID"),
    )
    return _emails_response()


@router.post("/emails/reload", response_model=AdminEmailsResponse)
async def reload_admin_emails(
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AdminEmailsResponse:
    """Reload the admin allow-list from its file."""
    if not get_admin_registry().reload():
        raise StorageError("Admin allow-list file could not be read")
    get_audit_logger().log(action="admin.emails.reload", principal=identity.email)
    return _emails_response()


# =============================================================================
# Users
# =============================================================================


@router.get("/users", response_model=UserListResponse)
async def list_users(
    identity: ResolvedIdentity = Depends(require_admin_identity),
    db: Session = Depends(get_db),
) -> UserListResponse:
    """All known users, oldest first."""
    users = [_user_response(u) for u in UserStore(db).list_all()]
    return UserListResponse(users=users, count=len(users))


@router.put("/users/admin-status", response_model=UserResponse)
async def update_admin_status(
    body: AdminStatusRequest,
    identity: ResolvedIdentity = Depends(require_admin_identity),
    db: Session = Depends(get_db),
) -> UserResponse:
    """Set or clear a user's admin flag."""
    user = UserStore(db).set_admin(_require_email(body.email), body.make_admin)
    get_audit_logger().log(
        action="admin.users.admin_status",
        principal=identity.email,
        resource_type="user",
        resource_id=user.id,
        details={"is_admin": body.make_admin},
    )
    return _user_response(user)


# =============================================================================
# Auth and audit
# =============================================================================


@router.post("/auth/reload", response_model=AuthReloadResponse)
async def reload_auth_config(
    request: Request,
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AuthReloadResponse:
    """Reload API keys configuration from file.

    Picks up any new, modified, or revoked keys immediately.
    """
    store = get_api_key_store()

    if store.reload():
        get_audit_logger().log_auth_reload(
            principal=identity.email,
            key_count=store.key_count,
            request=request,
        )
        return AuthReloadResponse(
            success=True,
            key_count=store.key_count,
            version=store.version,
            message=f"Reloaded {store.key_count} API keys",
        )
    return AuthReloadResponse(
        success=False,
        key_count=store.key_count,
        version=store.version,
        message="Failed to reload API keys",
    )


@router.get("/audit-logs", response_model=AuditLogsResponse)
async def get_audit_logs(
    limit: int = Query(100, ge=1, le=1000),
    action: str | None = Query(None, description="Action prefix, e.g. 'verification.'"),
    status: str | None = Query(None, description="Event status, e.g. 'denied'"),
    identity: ResolvedIdentity = Depends(require_admin_identity),
) -> AuditLogsResponse:
    """Recent audit events, newest first."""
    audit = get_audit_logger()
    events = audit.get_recent_events(limit=limit, action_filter=action, status_filter=status)
    stats = audit.get_buffer_stats()
    return AuditLogsResponse(
        events=events,
        count=len(events),
        buffer_size=stats["buffer_size"],
        max_buffer_size=stats["max_buffer_size"],
    )
