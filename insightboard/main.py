# insightboard/main.py
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from insightboard.config import Settings
from insightboard.infrastructure.database import Database
from insightboard.infrastructure.github_client import GitHubClient
from insightboard.middleware.logging import RequestIdMiddleware, configure_structlog
from insightboard.routers.auth_router import router as auth_router
from insightboard.routers.health_router import router as health_router
from insightboard.routers.metrics_router import router as metrics_router
from insightboard.services.aggregation import AggregationWorker
from insightboard.services.scheduler import PeriodicJob
from insightboard.UAA.crypto import TokenCipher
from insightboard.UAA.sessions import SessionTokens

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    github_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the API application. Settings are read from the environment at startup
    when not given; every component is constructed in the lifespan and shared via app.state.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or Settings.from_env()
        configure_structlog(resolved.log_level)

        database = Database(resolved.database_url)
        await database.connect_with_retry(
            retries=resolved.db_connect_retries,
            delay=resolved.db_connect_retry_delay_seconds,
        )
        await database.create_all()

        app.state.settings = resolved
        app.state.database = database
        app.state.cipher = TokenCipher(resolved.token_secret_key)
        app.state.session_tokens = SessionTokens(resolved.session_secret_key)
        app.state.github = GitHubClient(resolved, transport=github_transport)
        app.state.aggregation = AggregationWorker(database, app.state.cipher, app.state.github)

        scheduler = None
        if resolved.worker_enabled:
            scheduler = PeriodicJob(app.state.aggregation.run, resolved.worker_interval_seconds)
            scheduler.start()
        app.state.scheduler = scheduler
        logger.info("app_startup", environment=resolved.environment, worker_enabled=resolved.worker_enabled)

        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            await database.dispose()
            logger.info("app_shutdown")

    app = FastAPI(title="InsightBoard", lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(metrics_router)
    return app


app = create_app()


def main() -> None:
    settings = Settings.from_env()
    configure_structlog(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
