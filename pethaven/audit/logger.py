"""Audit logging for verification and admin operations.

Every verification transition, admin allow-list change and authentication
failure is written as a structured event to the ``audit`` logger and kept in
an in-memory ring buffer that admins can read back.
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import Request

log = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured audit event."""

    action: str  # e.g., "verification.respond", "admin.emails.add"
    principal: str = "anonymous"  # principal email or "anonymous"
    resource: str | None = None  # e.g., "verification:<id>", "pet:<id>"
    status: str = "success"  # "success", "denied", "error"
    details: dict[str, Any] | None = None
    request_id: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class AuditLogger:
    """Audit logger for verification and admin operations.

    Logs events as structured JSON via Python's logging module and keeps a
    ring buffer of the most recent events.
    """

    MAX_BUFFER_SIZE = 1000

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._buffer: deque[dict] = deque(maxlen=self.MAX_BUFFER_SIZE)

    def log(
        self,
        event: AuditEvent | None = None,
        *,
        action: str | None = None,
        principal: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        status: str = "success",
        details: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        """Write an audit event.

        Accepts either an AuditEvent or keyword arguments. ``resource_type``
        and ``resource_id`` are combined as ``type:id``.
        """
        if not self.enabled:
            return

        if event is None:
            resource = resource_type
            if resource_type and resource_id:
                resource = f"{resource_type}:{resource_id}"

            event = AuditEvent(
                action=action or "unknown",
                principal=principal or "anonymous",
                resource=resource,
                status=status,
                details=details,
                request_id=request_id,
            )

        self._buffer.append(asdict(event))

        extra: dict[str, Any] = {
            "type": "audit",
            "principal": event.principal,
            "action": event.action,
            "status": event.status,
        }
        if event.resource:
            extra["resource"] = event.resource
        if event.request_id:
            extra["request_id"] = event.request_id
        if event.details:
            extra["details"] = event.details

        if event.status in ("denied", "error"):
            log.warning(f"audit: {event.action} {event.status}", extra=extra)
        else:
            log.info(f"audit: {event.action} {event.status}", extra=extra)

    def get_recent_events(
        self,
        limit: int = 100,
        action_filter: str | None = None,
        status_filter: str | None = None,
    ) -> list[dict]:
        """Get recent audit events, newest first.

        Args:
            limit: Max events to return
            action_filter: Filter by action prefix (e.g., "verification.")
            status_filter: Filter by status (e.g., "denied")
        """
        events = list(self._buffer)
        events.reverse()

        if action_filter:
            events = [e for e in events if e["action"].startswith(action_filter)]
        if status_filter:
            events = [e for e in events if e["status"] == status_filter]

        return events[:limit]

    def get_buffer_stats(self) -> dict:
        return {
            "buffer_size": len(self._buffer),
            "max_buffer_size": self.MAX_BUFFER_SIZE,
        }

    def log_auth_failure(
        self,
        reason: str = "invalid",
        request: Request | None = None,
    ) -> None:
        """Log a failed authentication attempt."""
        self.log(
            AuditEvent(
                action="auth.failure",
                principal="anonymous",
                status="denied",
                details={"reason": reason},
                request_id=_get_request_id(request),
            )
        )

    def log_auth_reload(
        self,
        principal: str,
        key_count: int,
        request: Request | None = None,
    ) -> None:
        """Log an API key config reload."""
        self.log(
            AuditEvent(
                action="auth.reload",
                principal=principal,
                details={"key_count": key_count},
                request_id=_get_request_id(request),
            )
        )

    def log_verification(
        self,
        action: str,
        principal: str,
        verification_id: str,
        status: str = "success",
        details: dict[str, Any] | None = None,
        request: Request | None = None,
    ) -> None:
        """Log an operation on one verification.

        Args:
            action: Operation name without prefix (e.g., "respond")
            principal: Acting principal's email
            verification_id: Verification UUID
            status: "success", "denied" or "error"
            details: Additional context (new status, method, ...)
            request: Optional request for correlation ID
        """
        self.log(
            AuditEvent(
                action=f"verification.{action}",
                principal=principal,
                resource=f"verification:{verification_id}",
                status=status,
                details=details,
                request_id=_get_request_id(request),
            )
        )


def _get_request_id(request: Request | None) -> str | None:
    """Extract request ID from request headers if available."""
    if request is None:
        return None

    for header in ("X-Request-ID", "X-Correlation-ID", "Request-Id"):
        if header in request.headers:
            return request.headers[header]

    return None


_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get the global audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        from pethaven.config import AUDIT_ENABLED

        _audit_logger = AuditLogger(enabled=AUDIT_ENABLED)

    return _audit_logger


def reset_audit_logger() -> None:
    """Reset the global logger (for testing)."""
    global _audit_logger
    _audit_logger = None
