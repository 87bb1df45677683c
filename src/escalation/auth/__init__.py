"""Escalation Auth Module.

Requests authenticate with short-lived JWT access tokens. The authenticated
user is the session user whose teams decide which causes are visible.
"""

from escalation.auth.jwt_access import create_access_token, get_current_user
from escalation.auth.schemas import TokenPayload, User

__all__ = [
    "get_current_user",
    "create_access_token",
    "TokenPayload",
    "User",
]
