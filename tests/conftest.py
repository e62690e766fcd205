"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import Generator
from contextlib import ExitStack
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jose import jwt
from jwt.algorithms import ECAlgorithm

from tests.fakes import ADMIN_ID, CUSTOMER_ID, FakeSupabase

# Signing key pair for test access tokens; the public half is the configured JWK
_SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
TEST_PRIVATE_KEY_PEM = _SIGNING_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode()

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["SUPABASE_SIGNING_KEY_JWK"] = ECAlgorithm.to_jwk(_SIGNING_KEY.public_key())
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")

# Modules that bind get_supabase_client / get_stripe at import time
SUPABASE_MODULES = (
    "src.core.supabase",
    "src.services.checkout_service",
    "src.services.customer_service",
    "src.services.inventory_service",
    "src.services.order_service",
    "src.services.plan_service",
    "src.services.product_service",
    "src.services.reconciliation_service",
    "src.services.subscription_service",
)
STRIPE_MODULES = (
    "src.services.checkout_service",
    "src.services.customer_service",
    "src.services.reconciliation_service",
    "src.services.subscription_service",
)


def create_test_token(
    sub: str = CUSTOMER_ID,
    email: str | None = "cliente@example.com",
    app_role: str | None = None,
    exp_offset: int = 3600,
) -> str:
    """Create an ES256 access token shaped like a Supabase one.

    Args:
        sub: Subject (user ID).
        email: User email.
        app_role: Application role stored in ``app_metadata.role``.
        exp_offset: Seconds from now for expiration (negative for expired).

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "app_metadata": {"role": app_role} if app_role else {},
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test-project.supabase.co/auth/v1",
    }
    return jwt.encode(payload, TEST_PRIVATE_KEY_PEM, algorithm="ES256")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Provide an in-memory Supabase client wired into every service.

    Yields:
        FakeSupabase: The shared fake database.
    """
    db = FakeSupabase()
    with ExitStack() as stack:
        for module in SUPABASE_MODULES:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=db))
        yield db


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Provide a mocked Stripe module wired into every service.

    Exceptions raised from it should be real ``stripe.error`` classes.

    Yields:
        MagicMock: Mocked Stripe module.
    """
    mock = MagicMock()
    with ExitStack() as stack:
        for module in STRIPE_MODULES:
            stack.enter_context(patch(f"{module}.get_stripe", return_value=mock))
        yield mock


@pytest.fixture
def customer_user() -> Any:
    """Authenticated customer principal."""
    from src.schemas.auth import UserContext

    return UserContext(user_id=UUID(CUSTOMER_ID), email="cliente@example.com", role="customer")


@pytest.fixture
def admin_user() -> Any:
    """Authenticated administrator principal."""
    from src.schemas.auth import UserContext

    return UserContext(user_id=UUID(ADMIN_ID), email="admin@example.com", role="admin")


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header for the test customer."""
    return {"Authorization": f"Bearer {create_test_token()}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authorization header for an administrator."""
    token = create_test_token(sub=ADMIN_ID, email="admin@example.com", app_role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(fake_db: FakeSupabase, mock_stripe: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client backed by the fake database and mocked Stripe.

    Args:
        fake_db: In-memory Supabase client fixture.
        mock_stripe: Mocked Stripe module fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
