"""Admin allow-list.

The registry holds the emails of platform administrators. It is seeded from
``PETHAVEN_ADMIN_EMAILS`` and a JSON file (``{"emails": [...]}``), can be
reloaded when the file changes, and is edited through the admin API. Edits
are written back to the file so they survive restarts.

All access goes through a lock; request handlers read it concurrently with
admin edits.
"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Iterable

log = logging.getLogger(__name__)


def _normalize(email: str) -> str:
    return email.strip().lower()


class AdminRegistry:
    """Lock-guarded set of administrator emails."""

    def __init__(
        self,
        config_path: str | None = None,
        seed_emails: Iterable[str] = (),
    ):
        """Initialize the registry.

        Args:
            config_path: JSON file holding the editable allow-list
            seed_emails: Emails from the environment, always admins
        """
        self._config_path = config_path
        self._seed = frozenset(_normalize(e) for e in seed_emails if e.strip())
        self._emails: set[str] = set(self._seed)
        self._lock = threading.RLock()
        self._last_mtime: float = 0
        self._last_check: float = 0
        self._check_interval: float = 60.0

    def load(self) -> bool:
        """Load the allow-list file, replacing any previous file entries.

        Returns:
            True if loaded, False if the file was unreadable (the previous
            entries are kept)
        """
        emails = set(self._seed)

        if self._config_path:
            path = Path(self._config_path)
            if path.exists():
                try:
                    data = json.loads(path.read_text())
                    emails.update(_normalize(e) for e in data.get("emails", []) if e.strip())
                    self._last_mtime = path.stat().st_mtime
                    log.info(f"Loaded admin allow-list from {self._config_path}")
                except (json.JSONDecodeError, OSError, AttributeError) as e:
                    log.error(f"Failed to load admin allow-list from {self._config_path}: {e}")
                    return False
            else:
                log.info(f"Admin allow-list file not found: {self._config_path}")

        with self._lock:
            self._emails = emails
        log.info(f"Admin allow-list has {len(emails)} entries")
        return True

    def reload(self) -> bool:
        """Force reload from file. Returns False if the file was unreadable."""
        return self.load()

    def reload_if_stale(self) -> bool:
        """Reload if the file's mtime changed, checking at most every interval."""
        if not self._config_path:
            return False

        now = time.time()
        if now - self._last_check < self._check_interval:
            return False
        self._last_check = now

        path = Path(self._config_path)
        try:
            changed = path.exists() and path.stat().st_mtime > self._last_mtime
        except OSError as e:
            log.warning(f"Could not stat admin allow-list {self._config_path}: {e}")
            return False

        if not changed:
            return False
        log.info("Admin allow-list file changed, reloading...")
        return self.reload()

    def set_check_interval(self, seconds: float) -> None:
        self._check_interval = seconds

    def is_admin(self, email: str | None) -> bool:
        if not email:
            return False
        with self._lock:
            return _normalize(email) in self._emails

    def emails(self) -> list[str]:
        """Sorted snapshot of the allow-list."""
        with self._lock:
            return sorted(self._emails)

    def add(self, email: str) -> bool:
        """Add an email. Returns False if it was already present."""
        email = _normalize(email)
        with self._lock:
            if email in self._emails:
                return False
            self._emails.add(email)
            self._persist()
        log.info(f"Added admin {email}")
        return True

    def remove(self, email: str) -> bool:
        """Remove an email. Returns False if it was not present.

        Raises:
            ValueError: The email comes from the environment and cannot be
                removed at runtime
        """
        email = _normalize(email)
        with self._lock:
            if email in self._seed:
                raise ValueError(f"{email} is configured by environment and cannot be removed")
            if email not in self._emails:
                return False
            self._emails.discard(email)
            self._persist()
        log.info(f"Removed admin {email}")
        return True

    def _persist(self) -> None:
        """Write the non-seed entries back to the allow-list file. Caller holds the lock."""
        if not self._config_path:
            return
        path = Path(self._config_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"emails": sorted(self._emails - self._seed)}, indent=2))
        self._last_mtime = path.stat().st_mtime

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._emails)


_admin_registry: AdminRegistry | None = None


def get_admin_registry() -> AdminRegistry:
    """Get the global admin registry, loading it on first access."""
    global _admin_registry

    if _admin_registry is None:
        from pethaven.config import ADMIN_EMAILS, ADMIN_EMAILS_FILE, AUTH_RELOAD_INTERVAL

        _admin_registry = AdminRegistry(config_path=ADMIN_EMAILS_FILE, seed_emails=ADMIN_EMAILS)
        _admin_registry.set_check_interval(AUTH_RELOAD_INTERVAL)
        _admin_registry.load()

    return _admin_registry


def reset_admin_registry() -> None:
    """Reset the global registry (for testing)."""
    global _admin_registry
    _admin_registry = None
