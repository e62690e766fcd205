"""Unit tests for JWT decoding and authentication utilities."""

import time
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt
from jwt.algorithms import ECAlgorithm

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt, get_signing_key
from src.schemas.auth import TokenPayload

SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
OTHER_KEY = ec.generate_private_key(ec.SECP256R1())


def _pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def create_test_token(
    sub: str = "550e8400-e29b-41d4-a716-446655440000",
    email: str | None = "test@example.com",
    app_role: str | None = None,
    exp_offset: int = 3600,
    key: ec.EllipticCurvePrivateKey = SIGNING_KEY,
    **overrides: object,
) -> str:
    """Create a test JWT token.

    Args:
        sub: Subject (user ID).
        email: User email.
        app_role: Role stored in app_metadata.
        exp_offset: Seconds from now for expiration (negative for expired).
        key: EC private key for signing.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "app_metadata": {"role": app_role} if app_role else {},
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test.supabase.co/auth/v1",
        **overrides,
    }
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, _pem(key), algorithm="ES256")


@pytest.fixture(autouse=True)
def signing_key():
    with patch("src.api.middleware.auth.get_signing_key", return_value=SIGNING_KEY.public_key()):
        yield


class TestDecodeJWT:
    """Tests for decode_jwt function."""

    def test_decode_jwt_with_valid_token(self) -> None:
        """Test decode_jwt successfully decodes a valid token."""
        payload = decode_jwt(create_test_token())

        assert payload.sub == "550e8400-e29b-41d4-a716-446655440000"
        assert payload.email == "test@example.com"
        assert payload.role == "authenticated"
        assert payload.app_metadata == {}

    def test_decode_jwt_reads_app_metadata(self) -> None:
        payload = decode_jwt(create_test_token(app_role="admin"))

        assert payload.app_metadata == {"role": "admin"}

    def test_decode_jwt_with_expired_token(self) -> None:
        """Test decode_jwt raises AuthError for expired token."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(exp_offset=-3600))

        assert exc_info.value.code == AuthErrorCode.TOKEN_EXPIRED
        assert "expired" in exc_info.value.message.lower()

    def test_decode_jwt_with_invalid_signature(self) -> None:
        """Test decode_jwt rejects a token signed by another key."""
        with pytest.raises(AuthError) as exc_info:
            decode_jwt(create_test_token(key=OTHER_KEY))

        assert exc_info.value.code == AuthErrorCode.INVALID_SIGNATURE

    def test_decode_jwt_with_malformed_token(self) -> None:
        with pytest.raises(AuthError) as exc_info:
            decode_jwt("not-a-jwt")

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN

    def test_decode_jwt_rejects_hs256(self) -> None:
        """Only ES256 tokens are accepted."""
        now = int(time.time())
        token = jwt.encode(
            {"sub": "550e8400-e29b-41d4-a716-446655440000", "exp": now + 60, "iat": now},
            "shared-secret",
            algorithm="HS256",
        )

        with pytest.raises(AuthError):
            decode_jwt(token)

    def test_decode_jwt_missing_sub(self) -> None:
        now = int(time.time())
        token = jwt.encode({"exp": now + 60, "iat": now}, _pem(SIGNING_KEY), algorithm="ES256")

        with pytest.raises(AuthError) as exc_info:
            decode_jwt(token)

        assert exc_info.value.code == AuthErrorCode.INVALID_TOKEN


class TestGetSigningKey:
    """Tests for loading the JWK."""

    def test_loads_public_key_from_jwk(self) -> None:
        jwk = ECAlgorithm.to_jwk(SIGNING_KEY.public_key())
        get_signing_key.cache_clear()
        try:
            with patch("src.api.middleware.auth.get_settings") as mock_settings:
                mock_settings.return_value.supabase_signing_key_jwk = jwk
                key = get_signing_key()
        finally:
            get_signing_key.cache_clear()

        assert key.public_numbers() == SIGNING_KEY.public_key().public_numbers()

    def test_invalid_json_raises(self) -> None:
        get_signing_key.cache_clear()
        try:
            with patch("src.api.middleware.auth.get_settings") as mock_settings:
                mock_settings.return_value.supabase_signing_key_jwk = "{not json"
                with pytest.raises(AuthError, match="Invalid signing key JWK"):
                    get_signing_key()
        finally:
            get_signing_key.cache_clear()


class TestTokenPayload:
    """Tests for role mapping."""

    def _payload(self, app_metadata: dict) -> TokenPayload:
        now = int(time.time())
        return TokenPayload(
            sub="550e8400-e29b-41d4-a716-446655440000",
            role="authenticated",
            app_metadata=app_metadata,
            exp=now + 60,
            iat=now,
        )

    def test_admin_role(self) -> None:
        assert self._payload({"role": "admin"}).to_user_context().is_admin is True

    def test_defaults_to_customer(self) -> None:
        context = self._payload({}).to_user_context()

        assert context.role == "customer"
        assert context.is_admin is False

    def test_unknown_role_is_customer(self) -> None:
        assert self._payload({"role": "superuser"}).to_user_context().role == "customer"
