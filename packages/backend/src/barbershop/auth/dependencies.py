"""FastAPI auth dependencies.

Learn: A browser EventSource cannot set headers, so the stream accepts
the token either as a Bearer header (Python clients, proxies) or as a
?token= query param (browsers).
"""

from typing import Optional

from fastapi import Header, HTTPException, Query

from barbershop.auth.jwt import TokenError, verify_token


class CurrentIdentity:
    """The authenticated user on the other end of a request."""

    def __init__(self, user_id: str, role: Optional[str] = None):
        self.user_id = user_id
        self.role = role

    def __repr__(self) -> str:
        return f"CurrentIdentity(user_id={self.user_id!r}, role={self.role!r})"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Query(None),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    raw = None
    if authorization and authorization.startswith("Bearer "):
        raw = authorization[7:]
    elif token:
        raw = token

    if not raw:
        raise _unauthorized("Authentication required")

    try:
        payload = verify_token(raw)
    except TokenError as e:
        raise _unauthorized(str(e))

    return CurrentIdentity(user_id=payload["sub"], role=payload.get("role"))
