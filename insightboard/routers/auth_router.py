# insightboard/routers/auth_router.py
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from typing import Optional
import structlog

from ..config import Settings
from ..dependencies.auth import get_current_identity
from ..UAA.schemas import SessionClaim, UserRead
from ..UAA.services import GitHubLoginService
from ..UAA.sessions import SESSION_COOKIE_NAME

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_login_service(request: Request) -> GitHubLoginService:
    state = request.app.state
    return GitHubLoginService(state.database, state.github, state.cipher, state.session_tokens)


@router.get("/auth/github/login")
async def github_login(request: Request):
    return RedirectResponse(request.app.state.github.authorize_url())


@router.get("/auth/github/callback")
async def github_callback(
    code: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    svc: GitHubLoginService = Depends(get_login_service),
):
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Error: No code provided.")
    logger.info("oauth_callback_received")

    try:
        result = await svc.complete_login(code)
    except Exception as e:
        # the browser only learns that it should try again
        logger.exception("oauth_callback_failed", error_type=type(e).__name__)
        return RedirectResponse(f"{settings.frontend_url}/login?error=auth_failed", status_code=status.HTTP_302_FOUND)

    response = RedirectResponse(f"{settings.frontend_url}/dashboard", status_code=status.HTTP_302_FOUND)
    # secure stays off outside production so the cookie works on plain http localhost
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=result.session_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        max_age=svc.tokens.max_age_seconds,
    )
    logger.info("session_cookie_set", user_id=result.user_id, username=result.username)
    return response


@router.post("/auth/logout")
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )
    return {"ok": True}


@router.get("/me", response_model=UserRead)
async def me(identity: SessionClaim = Depends(get_current_identity)):
    return {"user_id": identity.user_id, "username": identity.username}
