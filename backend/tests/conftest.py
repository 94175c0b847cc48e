"""Pytest configuration and fixtures."""

import os
import secrets
import sys
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.setdefault("ALCHEMY_API_KEY", "test-alchemy-key")
else:
    # For integration tests, load from .env
    from pathlib import Path

    from dotenv import load_dotenv

    env_path = Path(__file__).parent.parent / ".env"

    # Safety check: require explicit confirmation for integration tests
    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print(
            "\nIntegration tests use REAL credentials from .env and may touch live data.\n"
            "Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.\n",
            file=sys.stderr,
        )
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )

    load_dotenv(env_path, override=True)

from app.database import get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

TEST_USER_ID = "usr_TEST_ONLY_000000"
TEST_EMAIL = "seller@example.com"
TEST_WALLET = "0x" + "ab" * 20


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Create auth headers with a test token."""
    from app.auth import create_access_token
    from app.config import get_settings

    settings = get_settings()
    # Use clearly invalid test ID that cannot collide with production IDs
    token = create_access_token(
        settings,
        user_id=TEST_USER_ID,
        email=TEST_EMAIL,
        wallet_address=TEST_WALLET,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def mock_db():
    """Avoid real Supabase connections in unit tests.

    Route tests patch the ``app.routes.*`` database helpers; the client
    itself is a bare mock so nothing reaches the network.
    """
    if os.environ.get("RUN_INTEGRATION"):
        yield None
        return

    db = MagicMock(name="supabase")
    app.dependency_overrides[get_db] = lambda: db
    yield db
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def disable_rate_limits():
    """Per-IP limits would trip when many tests share the test client's address."""
    limiter.enabled = False
    yield
    limiter.enabled = True
