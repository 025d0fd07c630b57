"""API key authentication backend for the PetHaven service.

Uses bcrypt for secure key hashing with constant-time verification.
Supports key rotation via file mtime polling or admin reload endpoint.

Each key is bound to a person (email and display name), so an authenticated
request always identifies who is acting, not just which client.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import bcrypt as bcrypt_lib
from starlette.authentication import (
    AuthCredentials,
    AuthenticationBackend,
    AuthenticationError,
    BaseUser,
)
from starlette.requests import HTTPConnection

log = logging.getLogger(__name__)

# Default bcrypt cost factor (2^12 = 4096 iterations)
BCRYPT_COST_FACTOR = 12

API_KEY_HEADER = "X-API-Key"


@dataclass
class Principal(BaseUser):
    """Authenticated principal.

    Implements Starlette's BaseUser interface for middleware integration.

    Attributes:
        key_id: Credential identifier (e.g., "api_key:id", "header:email")
        name: Display name for the principal
        email: The person's email; the basis of finder/claimant identity
        roles: Set of role strings
    """

    key_id: str
    name: str
    email: str
    roles: set[str] = field(default_factory=set)

    @property
    def is_authenticated(self) -> bool:
        return True


@dataclass
class KeyConfig:
    """Configuration for a single API key."""

    id: str
    name: str
    email: str
    hash: str
    roles: set[str]
    revoked: bool = False


class APIKeyStore:
    """Email-bound API keys with reload support.

    Keys come from inline JSON (``PETHAVEN_API_KEYS``) or a JSON file
    (``{"keys": [...], "version": N}``). A file is re-read when its mtime
    changes or when an admin forces a reload. A key with ``revoked: true``
    stays loaded so a revoked key is reported as such.
    """

    def __init__(self, config_path: str | None = None, config_json: str | None = None):
        """Initialize the key store.

        Args:
            config_path: Path to JSON config file
            config_json: Inline JSON config (takes precedence over file)
        """
        self._config_path = config_path
        self._config_json = config_json
        self._keys: dict[str, KeyConfig] = {}
        self._last_mtime: float = 0
        self._last_check: float = 0
        self._check_interval: float = 60.0  # seconds
        self._version: int = 0

    def _read_config(self) -> dict[str, Any] | None:
        """Parsed key config, or None if the source is unreadable.

        A missing file is an empty key set, not an error.
        """
        if self._config_json:
            try:
                return json.loads(self._config_json)
            except json.JSONDecodeError as e:
                log.error(f"Failed to parse inline API keys JSON: {e}")
                return None

        if not self._config_path:
            return {"keys": [], "version": 0}

        path = Path(self._config_path)
        if not path.exists():
            log.warning(f"API keys file not found: {self._config_path}")
            return {"keys": [], "version": 0}

        try:
            data = json.loads(path.read_text())
            self._last_mtime = path.stat().st_mtime
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Failed to load API keys from {self._config_path}: {e}")
            return None
        return data

    @staticmethod
    def _parse_key(key_data: dict[str, Any]) -> KeyConfig:
        """Build a KeyConfig; every key must name the person it belongs to.

        Raises:
            KeyError: A required field is missing
        """
        return KeyConfig(
            id=key_data["id"],
            name=key_data["name"],
            email=key_data["email"].strip().lower(),
            hash=key_data["hash"],
            roles=set(key_data.get("roles", [])),
            revoked=key_data.get("revoked", False),
        )

    def load(self) -> bool:
        """Replace the loaded keys with the configured ones.

        Returns:
            True if the config was read, False if it was unreadable (the
            previously loaded keys are kept)
        """
        config_data = self._read_config()
        if config_data is None:
            return False

        keys: dict[str, KeyConfig] = {}
        for key_data in config_data.get("keys", []):
            try:
                key_config = self._parse_key(key_data)
            except KeyError as e:
                log.error(f"Skipping API key config missing field {e}")
                continue
            keys[key_config.id] = key_config
            log.debug(
                f"Loaded key {key_config.id} for {key_config.email}"
                + (" (revoked)" if key_config.revoked else "")
            )

        self._keys = keys
        self._version = config_data.get("version", 0)
        log.info(f"Loaded {len(keys)} API keys (version {self._version})")
        return True

    def reload(self) -> bool:
        """Force a reload. Returns False if the config could not be read."""
        old_count = len(self._keys)
        if not self.load():
            return False
        log.info(f"Reloaded API keys: {old_count} -> {len(self._keys)}")
        return True

    def reload_if_stale(self) -> bool:
        """Reload if the key file's mtime moved, checking at most every interval.

        Returns:
            True if reloaded, False if not needed or failed
        """
        if not self._config_path or self._config_json:
            return False

        now = time.time()
        if now - self._last_check < self._check_interval:
            return False
        self._last_check = now

        path = Path(self._config_path)
        try:
            changed = path.exists() and path.stat().st_mtime > self._last_mtime
        except OSError as e:
            log.warning(f"Could not stat API keys file {self._config_path}: {e}")
            return False

        if not changed:
            return False
        log.info("API keys file changed, reloading...")
        return self.reload()

    def verify(self, raw_key: str) -> tuple[Principal | None, str | None]:
        """Verify an API key and return the person it is bound to.

        Uses bcrypt.checkpw() for constant-time comparison.

        Returns:
            Tuple of (Principal if valid, error_reason if invalid)
            - (Principal, None) for valid key
            - (None, "revoked") for revoked key
            - (None, "invalid") for invalid/unknown key
        """
        for key_config in self._keys.values():
            try:
                matched = bcrypt_lib.checkpw(raw_key.encode(), key_config.hash.encode())
            except ValueError:
                log.error(f"Malformed bcrypt hash for key {key_config.id}")
                continue
            if not matched:
                continue

            if key_config.revoked:
                log.warning(f"Revoked key attempted: {key_config.id}")
                return None, "revoked"
            return Principal(
                key_id=f"api_key:{key_config.id}",
                name=key_config.name,
                email=key_config.email,
                roles=set(key_config.roles),
            ), None

        return None, "invalid"

    def set_check_interval(self, seconds: float) -> None:
        """Set the interval for file mtime checking."""
        self._check_interval = seconds

    @property
    def key_count(self) -> int:
        """Number of loaded keys."""
        return len(self._keys)

    @property
    def version(self) -> int:
        """Config version number."""
        return self._version


_api_key_store: APIKeyStore | None = None


def get_api_key_store() -> APIKeyStore:
    """Get the global API key store instance.

    Lazily initializes from config on first access.
    """
    global _api_key_store

    if _api_key_store is None:
        from pethaven.config import API_KEYS_FILE, API_KEYS_JSON, AUTH_RELOAD_INTERVAL

        _api_key_store = APIKeyStore(
            config_path=API_KEYS_FILE,
            config_json=API_KEYS_JSON,
        )
        _api_key_store.set_check_interval(AUTH_RELOAD_INTERVAL)
        _api_key_store.load()

    return _api_key_store


def reset_api_key_store() -> None:
    """Reset the global store (for testing)."""
    global _api_key_store
    _api_key_store = None


class APIKeyBackend(AuthenticationBackend):
    """Authentication backend for the X-API-Key header.

    Requests without a key pass through unauthenticated; route dependencies
    decide whether authentication is required. A presented key that is
    unknown or revoked fails the request.
    """

    def __init__(self, exempt_paths: set[str] | None = None):
        """Initialize the backend.

        Args:
            exempt_paths: Paths that don't require authentication
        """
        self.exempt_paths = exempt_paths or set()

    async def authenticate(
        self, conn: HTTPConnection
    ) -> tuple[AuthCredentials, Principal] | None:
        """Authenticate a request.

        Returns:
            Tuple of (credentials, user) if authenticated, None otherwise
        """
        path = conn.url.path
        if path in self.exempt_paths:
            return None

        api_key = conn.headers.get(API_KEY_HEADER)

        if not api_key:
            return None

        store = get_api_key_store()
        store.reload_if_stale()

        principal, error = store.verify(api_key)

        if principal is None:
            # Same message for unknown and revoked keys
            from pethaven.audit import get_audit_logger

            get_audit_logger().log_auth_failure(reason=error or "invalid")
            raise AuthenticationError("Invalid API key")

        return AuthCredentials(["authenticated", *principal.roles]), principal


def hash_api_key(raw_key: str, cost_factor: int = BCRYPT_COST_FACTOR) -> str:
    """Hash an API key using bcrypt.

    Args:
        raw_key: The raw API key to hash
        cost_factor: bcrypt cost factor (default: 12)

    Returns:
        The bcrypt hash string
    """
    salt = bcrypt_lib.gensalt(rounds=cost_factor)
    return bcrypt_lib.hashpw(raw_key.encode(), salt).decode()
