# insightboard/worker.py
import asyncio
import signal
import sys

import structlog

from insightboard.config import ConfigurationError, Settings
from insightboard.infrastructure.database import Database, DatabaseUnavailableError
from insightboard.infrastructure.github_client import GitHubClient
from insightboard.middleware.logging import configure_structlog
from insightboard.services.aggregation import AggregationWorker
from insightboard.services.scheduler import PeriodicJob
from insightboard.UAA.crypto import TokenCipher

logger = structlog.get_logger("worker")


async def run_worker(settings: Settings) -> None:
    """Run the aggregation scheduler on its own until SIGINT/SIGTERM."""
    database = Database(settings.database_url)
    try:
        await database.connect_with_retry(
            retries=settings.db_connect_retries,
            delay=settings.db_connect_retry_delay_seconds,
        )
        await database.create_all()

        worker = AggregationWorker(database, TokenCipher(settings.token_secret_key), GitHubClient(settings))
        job = PeriodicJob(worker.run, settings.worker_interval_seconds)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:  # windows
                pass

        job.start()
        logger.info("worker_started", interval_seconds=settings.worker_interval_seconds)
        await stop.wait()
        await job.stop()
    finally:
        await database.dispose()
        logger.info("worker_stopped")


def main() -> None:
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        logger.error("worker_config_invalid", error=str(e))
        sys.exit(1)

    configure_structlog(settings.log_level)
    try:
        asyncio.run(run_worker(settings))
    except DatabaseUnavailableError as e:
        logger.error("worker_startup_failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
