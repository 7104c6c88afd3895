# insightboard/dependencies/auth.py
from typing import Optional

import structlog
from fastapi import Cookie, Depends, HTTPException, Request, status

from insightboard.UAA.schemas import SessionClaim
from insightboard.UAA.sessions import SESSION_COOKIE_NAME, SessionTokens

logger = structlog.get_logger(__name__)

NO_TOKEN_DETAIL = "Unauthorized: No token provided"
INVALID_TOKEN_DETAIL = "Unauthorized: Invalid token"


def get_session_tokens(request: Request) -> SessionTokens:
    return request.app.state.session_tokens


def authenticate_token(token: Optional[str], tokens: SessionTokens) -> SessionClaim:
    """
    Gate a request on its session token.
    Raises 401 with a distinct detail for a missing token and for any invalid one.
    """
    if not token:
        logger.warning("auth_denied", reason="missing_token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NO_TOKEN_DETAIL)
    claim = tokens.verify(token)
    if claim is None:
        logger.warning("auth_denied", reason="invalid_token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_TOKEN_DETAIL)
    return claim


async def get_current_identity(
    request: Request,
    auth_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    tokens: SessionTokens = Depends(get_session_tokens),
) -> SessionClaim:
    claim = authenticate_token(auth_token, tokens)
    request.state.identity = claim
    return claim
