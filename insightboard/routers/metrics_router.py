# insightboard/routers/metrics_router.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from ..dependencies.auth import get_current_identity
from ..dependencies.db import get_session_dep
from ..infrastructure.metrics_repo import MetricsRepository
from ..UAA.schemas import SessionClaim

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["metrics"])

PROCESSING_MESSAGE = "Your metrics are being processed. Refresh in a few moments."


@router.get("/metrics")
async def get_metrics(
    identity: SessionClaim = Depends(get_current_identity),
    session: AsyncSession = Depends(get_session_dep),
):
    logger.info("metrics_requested", user_id=identity.user_id, username=identity.username)
    try:
        metrics = await MetricsRepository(session).list_for_user(identity.user_id)
    except Exception as e:
        logger.exception("metrics_fetch_failed", user_id=identity.user_id, error=str(e))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error while fetching metrics."},
        )

    if not metrics:
        # the worker has not reached this user yet
        logger.warning("metrics_cache_empty", user_id=identity.user_id)
        return {"message": PROCESSING_MESSAGE}
    return metrics
