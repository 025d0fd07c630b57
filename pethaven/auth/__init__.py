"""Authentication and authorization module for PetHaven."""

from pethaven.auth.admins import AdminRegistry, get_admin_registry
from pethaven.auth.api_key import APIKeyBackend, APIKeyStore, Principal, get_api_key_store
from pethaven.auth.identity import (
    ResolvedIdentity,
    get_identity,
    require_admin_identity,
    resolve_identity,
)
from pethaven.auth.roles import Role

__all__ = [
    "AdminRegistry",
    "APIKeyBackend",
    "APIKeyStore",
    "Principal",
    "ResolvedIdentity",
    "Role",
    "get_admin_registry",
    "get_api_key_store",
    "get_identity",
    "require_admin_identity",
    "resolve_identity",
]
