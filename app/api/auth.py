"""Bearer token issuance and validation."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Header
from jose import ExpiredSignatureError, JWTError, jwt

from ..config import settings

ALGORITHM = "HS256"


@dataclass(eq=False)
class AuthenticationError(Exception):
    """Raised when a request carries no valid bearer token."""

    message: str
    reason: str

    def __str__(self) -> str:
        return self.message


def _get_secret() -> str:
    if not settings.auth_secret:
        raise AuthenticationError("Authentication secret is not configured", reason="configuration")
    return settings.auth_secret


def create_auth_token(
    user_id: int,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed token for a user.

    Args:
        user_id: User id, stored as 'id' in the payload
        email: Optional email to include
        expires_delta: Validity period; defaults to AUTH_TOKEN_TTL_DAYS

    Returns:
        Encoded JWT
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.auth_token_ttl_days)

    payload: dict[str, Any] = {
        "id": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None

    parts = authorization.strip().split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def authenticate_bearer_token(authorization: Optional[str]) -> int:
    """
    Validate an Authorization header.

    Returns:
        The authenticated user id
    """
    token = _extract_bearer_token(authorization)
    if not token:
        raise AuthenticationError("Missing authentication token", reason="token_missing")

    try:
        payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    except ExpiredSignatureError as e:
        raise AuthenticationError("Authentication token has expired", reason="token_expired") from e
    except JWTError as e:
        raise AuthenticationError("Invalid authentication token", reason="token_invalid") from e

    try:
        return int(payload["id"])
    except (KeyError, TypeError, ValueError) as e:
        raise AuthenticationError("Authentication token missing user id", reason="token_invalid") from e


def require_user(authorization: Optional[str] = Header(None)) -> int:
    """FastAPI dependency returning the caller's user id."""
    return authenticate_bearer_token(authorization)
