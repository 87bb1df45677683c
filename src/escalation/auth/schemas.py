"""
Escalation Auth - Schemas.

Pydantic models for the authenticated session user.
"""

from pydantic import BaseModel, Field


class TokenPayload(BaseModel):
    """Access token payload."""

    sub: str = Field(..., description="User ID")
    typ: str | None = None
    iss: str | None = None
    exp: int | None = None
    iat: int | None = None
    roles: list[str] = Field(default_factory=lambda: ["user"])
    name: str | None = None


class User(BaseModel):
    """Authenticated user. Its id is the session user for bridge rows."""

    id: str
    email: str | None = None
    display_name: str | None = None
    roles: list[str] = Field(default_factory=lambda: ["user"])

