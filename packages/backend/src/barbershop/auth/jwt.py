"""JWT access tokens for the realtime stream.

Learn: Login and session management live in the web application; this
service only needs to read who is on the other end of a push connection.
The token carries the user id (`sub`) and the user's role, which is
enough to apply an event's target filter.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from barbershop.config import settings


class TokenError(Exception):
    """Raised when token verification fails."""


def create_access_token(
    user_id: str,
    role: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
        "iat": now,
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if not payload.get("sub"):
        raise TokenError("Token has no subject")
    return payload
