"""Role definitions for API key principals.

Roles are carried by API keys. ``pethaven:admin`` grants administrator
rights directly; every other admin comes from the allow-list or the user's
admin flag (see ``pethaven.auth.identity``).
"""

import logging
from enum import Enum

log = logging.getLogger(__name__)


class Role(str, Enum):
    """Defined roles for the PetHaven service."""

    ADMIN = "pethaven:admin"
    MEMBER = "pethaven:member"


# Role hierarchy: admin > member
ROLE_HIERARCHY: dict[Role, set[Role]] = {
    Role.ADMIN: {Role.ADMIN, Role.MEMBER},
    Role.MEMBER: {Role.MEMBER},
}


def get_effective_roles(roles: set[str]) -> set[Role]:
    """Expand roles according to hierarchy.

    Args:
        roles: Set of role strings from the principal

    Returns:
        Expanded set of Role enums including inherited roles
    """
    effective: set[Role] = set()

    for role_str in roles:
        try:
            role = Role(role_str)
            effective.update(ROLE_HIERARCHY.get(role, {role}))
        except ValueError:
            log.warning(f"Unknown role in principal: {role_str}")

    return effective


def has_role(roles: set[str], required_role: Role) -> bool:
    """Check if a role set includes the required role (respecting hierarchy)."""
    return required_role in get_effective_roles(roles)
