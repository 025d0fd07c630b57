"""PetHaven verification service configuration constants.

Environment-based configuration in three groups:
- PERSISTENCE: where data lives and which database to use
- VERIFICATION: protocol timing and limits
- SECURITY: authentication, API keys and the admin allow-list
"""
import os
from pathlib import Path


# =============================================================================
# PERSISTENCE CONFIGURATION
# =============================================================================

def _get_data_dir() -> Path:
    """Determine data directory based on environment.

    Priority:
    1. PETHAVEN_DATA_DIR env var (explicit override)
    2. /data/pethaven if it exists (Docker volume mount)
    3. ~/.pethaven (local development)
    4. /tmp/pethaven (container fallback when home unavailable)
    """
    env_path = os.getenv("PETHAVEN_DATA_DIR")
    if env_path:
        return Path(env_path)

    docker_path = Path("/data/pethaven")
    if docker_path.exists():
        return docker_path

    try:
        home_path = Path.home() / ".pethaven"
        home_path.mkdir(parents=True, exist_ok=True)
        return home_path
    except (OSError, PermissionError):
        return Path("/tmp/pethaven")


DATA_DIR: Path = _get_data_dir()


def _get_database_url() -> str:
    """Get database URL from environment.

    Priority:
    1. PETHAVEN_DATABASE_URL - explicit full connection string
    2. PETHAVEN_POSTGRES_* - construct PostgreSQL URL from components
    3. SQLite fallback for local development
    """
    if url := os.getenv("PETHAVEN_DATABASE_URL"):
        return url

    host = os.getenv("PETHAVEN_POSTGRES_HOST")
    if host:
        user = os.getenv("PETHAVEN_POSTGRES_USER", "pethaven")
        password = os.getenv("PETHAVEN_POSTGRES_PASSWORD", "")
        db = os.getenv("PETHAVEN_POSTGRES_DB", "pethaven")
        return f"postgresql+psycopg://{user}:{password}@{host}/{db}?sslmode=require"

    return f"sqlite:///{DATA_DIR}/pethaven.db"


DATABASE_URL: str = _get_database_url()


# =============================================================================
# VERIFICATION CONFIGURATION
# =============================================================================

# Chat window: verifications accept messages for this long after creation
VERIFICATION_TTL_DAYS: int = int(os.getenv("PETHAVEN_VERIFICATION_TTL_DAYS", "7"))

CHAT_MAX_MESSAGE_LENGTH: int = int(os.getenv("PETHAVEN_CHAT_MAX_MESSAGE_LENGTH", "2000"))


# =============================================================================
# OPERATIONAL
# =============================================================================

ADMIN_ENDPOINT_ENABLED: bool = os.getenv("ADMIN_ENDPOINT_ENABLED", "true").lower() == "true"
SERVICE_PORT: int = int(os.getenv("PETHAVEN_PORT", "8000"))


# =============================================================================
# SECURITY CONFIGURATION
# =============================================================================

def _get_api_keys_file() -> str:
    """Get path to API keys configuration file."""
    return os.getenv(
        "PETHAVEN_API_KEYS_FILE",
        str(Path(__file__).parent.parent / "config" / "api_keys.json")
    )


API_KEYS_FILE: str = _get_api_keys_file()
API_KEYS_JSON: str | None = os.getenv("PETHAVEN_API_KEYS")  # Inline JSON override

# When false, the gateway is trusted to pass X-Principal-Email / X-Principal-Name
AUTH_ENABLED: bool = os.getenv("PETHAVEN_AUTH_ENABLED", "true").lower() == "true"
AUTH_EXEMPT_PATHS: set[str] = {"/healthz", "/version"}  # Always exempt

DOCS_AUTH_EXEMPT: bool = os.getenv("PETHAVEN_DOCS_AUTH_EXEMPT", "false").lower() == "true"

AUTH_RELOAD_INTERVAL: int = int(os.getenv("PETHAVEN_AUTH_RELOAD_INTERVAL", "60"))  # seconds


# =============================================================================
# ADMIN ALLOW-LIST
# =============================================================================

def _get_admin_emails_file() -> str:
    """Get path to the admin allow-list file."""
    return os.getenv(
        "PETHAVEN_ADMIN_EMAILS_FILE",
        str(DATA_DIR / "admin_emails.json")
    )


def _parse_admin_emails(raw: str | None) -> list[str]:
    """Parse a comma-separated list of admin emails."""
    if not raw:
        return []
    return [e.strip().lower() for e in raw.split(",") if e.strip()]


ADMIN_EMAILS_FILE: str = _get_admin_emails_file()
ADMIN_EMAILS: list[str] = _parse_admin_emails(os.getenv("PETHAVEN_ADMIN_EMAILS"))


def get_auth_exempt_paths() -> set[str]:
    """Get the full set of auth-exempt paths based on configuration."""
    exempt = set(AUTH_EXEMPT_PATHS)

    if DOCS_AUTH_EXEMPT:
        exempt.add("/docs")
        exempt.add("/openapi.json")
        exempt.add("/redoc")

    return exempt


# =============================================================================
# AUDIT
# =============================================================================

AUDIT_ENABLED: bool = os.getenv("PETHAVEN_AUDIT_ENABLED", "true").lower() == "true"
