"""Escalation Auth - JWT access tokens.

This module implements:
- Issuing short-lived JWTs (HS256 by default)
- A FastAPI dependency to authenticate requests using these tokens
- A local dev bypass (never in production)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from escalation.auth.schemas import TokenPayload, User
from escalation.config import Settings, get_settings
from escalation.exceptions import UnauthorizedException

security = HTTPBearer(auto_error=False)

LOCAL_DEV_USER_ID = "local-dev-user"


def create_access_token(
    *,
    settings: Settings,
    user_id: str,
    roles: list[str] | None = None,
    name: str | None = None,
    now: datetime | None = None,
) -> tuple[str, int]:
    """Create a signed access token and return (token, expires_in_seconds)."""

    if now is None:
        now = datetime.now(timezone.utc)

    ttl_s = int(settings.auth_access_token_ttl_seconds)
    exp = now + timedelta(seconds=ttl_s)

    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "roles": roles or ["user"],
        "typ": "access",
        "iss": "escalation",
    }
    if name:
        payload["name"] = name

    token = jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)
    return token, ttl_s


def _decode_access_token(token: str, settings: Settings) -> TokenPayload:
    try:
        raw = jwt.decode(token, settings.auth_jwt_secret, algorithms=[settings.auth_jwt_algorithm])
    except JWTError as e:
        raise UnauthorizedException(f"Invalid token: {e}")

    try:
        payload = TokenPayload.model_validate(raw)
    except ValidationError:
        raise UnauthorizedException("Malformed token payload")

    if payload.typ != "access":
        raise UnauthorizedException("Invalid token type")
    if not payload.sub:
        raise UnauthorizedException("Malformed token payload")

    return payload


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    """Authenticate using a JWT access token."""

    # Local bypass: OFF by default; enable via AUTH_INSECURE_DEV_BYPASS=true.
    if settings.auth_insecure_dev_bypass and not settings.is_production and not credentials:
        user = User(id=LOCAL_DEV_USER_ID, display_name="Local Dev", roles=["admin"])
        request.state.user = user.model_dump()
        return user

    if not credentials:
        raise UnauthorizedException("Missing authentication token")

    token = (credentials.credentials or "").strip()
    if not token or any(ch.isspace() for ch in token):
        raise UnauthorizedException("Invalid authentication token")

    payload = _decode_access_token(token, settings)

    user = User(
        id=payload.sub,
        display_name=payload.name,
        roles=payload.roles or ["user"],
    )

    request.state.user = user.model_dump()
    return user
