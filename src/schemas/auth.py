"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["customer", "admin"]


class UserContext(BaseModel):
    """Authenticated principal extracted from the JWT token.

    The core only relies on ``user_id`` and ``role``.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: Role = Field(default="customer", description="Application role")

    @property
    def is_admin(self) -> bool:
        """Check whether the principal is an administrator."""
        return self.role == "admin"


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Supabase puts the Postgres role ("authenticated") in ``role``; the
    application role lives in ``app_metadata.role``.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Postgres role claim")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Anything other than an explicit ``admin`` app role is a customer.
        """
        role: Role = "admin" if self.app_metadata.get("role") == "admin" else "customer"
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=role,
        )


class AuthenticatedResponse(BaseModel):
    """Response for authenticated test endpoint."""

    model_config = ConfigDict(from_attributes=True)

    authenticated: bool = Field(default=True, description="Authentication status")
    user_id: str = Field(description="Authenticated user ID")
    email: str | None = Field(default=None, description="User email if available")
    role: str = Field(description="Application role")
