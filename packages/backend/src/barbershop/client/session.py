"""Session provider — who the client is connecting as.

Learn: The connection manager only connects for an authenticated
session. "loading" means the web app hasn't resolved the session yet;
the manager waits instead of flapping into fallback and back.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from barbershop.auth.jwt import TokenError, verify_token

logger = structlog.get_logger()


class SessionStatus(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Session:
    status: SessionStatus
    user_id: Optional[str] = None
    role: Optional[str] = None
    token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED and bool(self.user_id)

    @classmethod
    def loading(cls) -> "Session":
        return cls(status=SessionStatus.LOADING)

    @classmethod
    def anonymous(cls) -> "Session":
        return cls(status=SessionStatus.UNAUTHENTICATED)

    @classmethod
    def from_token(cls, token: str) -> "Session":
        """Build a session from a JWT access token.

        An invalid or expired token gives an unauthenticated session,
        which sends the manager straight to polling fallback.
        """
        try:
            payload = verify_token(token)
        except TokenError as e:
            logger.warning("session.invalid_token", error=str(e))
            return cls.anonymous()
        return cls(
            status=SessionStatus.AUTHENTICATED,
            user_id=payload["sub"],
            role=payload.get("role"),
            token=token,
        )
