"""Pytest fixtures for PetHaven tests."""
import importlib
import json
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

# Keep the module-level engine off the developer's data directory
os.environ.setdefault("PETHAVEN_DATABASE_URL", "sqlite://")

import bcrypt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pethaven.audit.logger import AuditLogger, reset_audit_logger
from pethaven.auth.admins import reset_admin_registry
from pethaven.auth.api_key import reset_api_key_store
from pethaven.auth.identity import ResolvedIdentity
from pethaven.db.models import Base
from pethaven.db.session import get_db
from pethaven.pets.store import PetRecordStore
from pethaven.users.store import UserStore
from pethaven.verification.models import Disposition


# =============================================================================
# Test principals
# =============================================================================

ADMIN_EMAIL = "admin@pethaven.test"
FINDER_EMAIL = "finder@pethaven.test"
CLAIMANT_EMAIL = "claimant@pethaven.test"
STRANGER_EMAIL = "stranger@pethaven.test"


def as_user(email: str, name: str | None = None) -> dict:
    """Gateway headers identifying ``email`` (auth disabled mode)."""
    headers = {"X-Principal-Email": email}
    if name:
        headers["X-Principal-Name"] = name
    return headers


# =============================================================================
# Test API Keys (pre-generated for consistent testing)
# =============================================================================

TEST_ADMIN_KEY = "test-admin-key-12345"
TEST_FINDER_KEY = "test-finder-key-12345"
TEST_CLAIMANT_KEY = "test-claimant-key-12345"
TEST_REVOKED_KEY = "test-revoked-key-12345"

# Cost factor 4 for fast tests
TEST_ADMIN_HASH = bcrypt.hashpw(TEST_ADMIN_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_FINDER_HASH = bcrypt.hashpw(TEST_FINDER_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_CLAIMANT_HASH = bcrypt.hashpw(TEST_CLAIMANT_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()
TEST_REVOKED_HASH = bcrypt.hashpw(TEST_REVOKED_KEY.encode(), bcrypt.gensalt(rounds=4)).decode()


def get_test_api_keys_config() -> dict:
    """Get test API keys configuration."""
    return {
        "keys": [
            {
                "id": "test-admin",
                "name": "Test Admin",
                "email": "keyadmin@pethaven.test",
                "hash": TEST_ADMIN_HASH,
                "roles": ["pethaven:admin"],
                "revoked": False,
            },
            {
                "id": "test-finder",
                "name": "Test Finder",
                "email": FINDER_EMAIL,
                "hash": TEST_FINDER_HASH,
                "roles": ["pethaven:member"],
                "revoked": False,
            },
            {
                "id": "test-claimant",
                "name": "Test Claimant",
                "email": CLAIMANT_EMAIL,
                "hash": TEST_CLAIMANT_HASH,
                "roles": ["pethaven:member"],
                "revoked": False,
            },
            {
                "id": "test-revoked",
                "name": "Test Revoked",
                "email": "revoked@pethaven.test",
                "hash": TEST_REVOKED_HASH,
                "roles": ["pethaven:admin"],
                "revoked": True,
            },
        ],
        "version": 1,
    }


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def in_memory_db(session_factory):
    """Create an in-memory SQLite database session for testing."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def audit() -> AuditLogger:
    return AuditLogger(enabled=True)


@pytest.fixture
def users(in_memory_db):
    """Finder, claimant, stranger and admin users, keyed by role."""
    store = UserStore(in_memory_db)
    return {
        "finder": store.create(FINDER_EMAIL, name="Finder"),
        "claimant": store.create(CLAIMANT_EMAIL, name="Claimant"),
        "stranger": store.create(STRANGER_EMAIL, name="Stranger"),
        "admin": store.create(ADMIN_EMAIL, name="Admin"),
    }


@pytest.fixture
def identities(users) -> dict[str, ResolvedIdentity]:
    """Resolved identities matching the ``users`` fixture."""
    return {
        role: ResolvedIdentity(
            principal_id=user.id,
            email=user.email,
            display_name=user.name,
            is_admin=(role == "admin"),
        )
        for role, user in users.items()
    }


@pytest.fixture
def lost_pet(in_memory_db, users):
    """A lost pet reported by the finder fixture's user."""
    return PetRecordStore(in_memory_db).create(
        owner=FINDER_EMAIL, disposition=Disposition.LOST, name="Rex", animal_type="dog"
    )


@pytest.fixture
def found_pet(in_memory_db, users):
    """A found pet reported by the finder fixture's user."""
    return PetRecordStore(in_memory_db).create(
        owner=FINDER_EMAIL, disposition=Disposition.FOUND, animal_type="cat"
    )


# =============================================================================
# API client fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def _reset_singletons() -> None:
    reset_api_key_store()
    reset_admin_registry()
    reset_audit_logger()


_ENV_KEYS = (
    "PETHAVEN_DATA_DIR",
    "PETHAVEN_AUTH_ENABLED",
    "PETHAVEN_API_KEYS",
    "PETHAVEN_ADMIN_EMAILS",
    "PETHAVEN_ADMIN_EMAILS_FILE",
)


async def _make_client(
    env: dict[str, str],
    session_factory,
) -> AsyncGenerator[AsyncClient, None]:
    saved_env = {key: os.environ.get(key) for key in _ENV_KEYS}
    os.environ.update(env)
    _reset_singletons()

    import pethaven.config as config_module
    importlib.reload(config_module)

    import pethaven.main as main_module
    importlib.reload(main_module)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    main_module.app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=main_module.app),
        base_url="http://test",
    ) as async_client:
        yield async_client

    main_module.app.dependency_overrides.clear()
    _reset_singletons()

    for key, value in saved_env.items():
        if value is not None:
            os.environ[key] = value
        elif key in os.environ:
            del os.environ[key]

    importlib.reload(config_module)


@pytest.fixture
async def client(temp_dir: Path, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client trusting gateway principal headers (auth disabled).

    ``ADMIN_EMAIL`` is on the admin allow-list.
    """
    env = {
        "PETHAVEN_DATA_DIR": str(temp_dir),
        "PETHAVEN_AUTH_ENABLED": "false",
        "PETHAVEN_ADMIN_EMAILS": ADMIN_EMAIL,
        "PETHAVEN_ADMIN_EMAILS_FILE": str(temp_dir / "admin_emails.json"),
    }
    async for async_client in _make_client(env, session_factory):
        yield async_client


@pytest.fixture
async def client_with_auth(temp_dir: Path, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client with API key authentication ENABLED."""
    env = {
        "PETHAVEN_DATA_DIR": str(temp_dir),
        "PETHAVEN_AUTH_ENABLED": "true",
        "PETHAVEN_API_KEYS": json.dumps(get_test_api_keys_config()),
        "PETHAVEN_ADMIN_EMAILS": "",
        "PETHAVEN_ADMIN_EMAILS_FILE": str(temp_dir / "admin_emails.json"),
    }
    async for async_client in _make_client(env, session_factory):
        yield async_client


# =============================================================================
# Auth Header Fixtures
# =============================================================================

@pytest.fixture
def admin_headers() -> dict:
    return {"X-API-Key": TEST_ADMIN_KEY}


@pytest.fixture
def finder_headers() -> dict:
    return {"X-API-Key": TEST_FINDER_KEY}


@pytest.fixture
def claimant_headers() -> dict:
    return {"X-API-Key": TEST_CLAIMANT_KEY}


@pytest.fixture
def revoked_headers() -> dict:
    return {"X-API-Key": TEST_REVOKED_KEY}


@pytest.fixture
def invalid_headers() -> dict:
    return {"X-API-Key": "invalid-key-that-does-not-exist"}
