# insightboard/UAA/sessions.py
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from jose import jwt, JWTError

from .schemas import SessionClaim

logger = structlog.get_logger(__name__)

SESSION_COOKIE_NAME = "auth_token"
SESSION_LIFETIME = timedelta(days=7)
ALGORITHM = "HS256"


class SessionTokens:
    """Issues and verifies the signed, expiring session token held by the browser."""

    def __init__(self, secret: str, lifetime: timedelta = SESSION_LIFETIME, algorithm: str = ALGORITHM):
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret
        self.lifetime = lifetime
        self.algorithm = algorithm

    @property
    def max_age_seconds(self) -> int:
        return int(self.lifetime.total_seconds())

    def issue(self, user_id: int, username: str, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        expire = issued_at + self.lifetime
        payload = {
            "sub": str(user_id),
            "username": username,
            "iat": int(issued_at.timestamp()),
            "exp": int(expire.timestamp()),
        }
        logger.debug("session_token_issued", user_id=user_id, exp=payload["exp"])
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Optional[SessionClaim]:
        # bad signature, expiry and malformed payloads all collapse into None
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
            return SessionClaim(
                user_id=int(payload["sub"]),
                username=payload["username"],
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (JWTError, KeyError, TypeError, ValueError) as e:
            logger.info("session_token_rejected", reason=type(e).__name__)
            return None
