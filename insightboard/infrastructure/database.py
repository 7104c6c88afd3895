# insightboard/infrastructure/database.py
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Sequence

import structlog
from sqlalchemy import text
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from insightboard.models.metric import MetricCache  # noqa: F401 - registers table
from insightboard.UAA.models import User, UserToken  # noqa: F401 - registers tables

logger = structlog.get_logger(__name__)


class DatabaseUnavailableError(RuntimeError):
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # a single shared connection keeps in-memory databases alive across sessions
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"pool_size": 10, "max_overflow": 0, "pool_pre_ping": True}


class Database:
    """
    Owns the async engine and its connection pool.
    Built once at process start and handed to whatever needs persistence.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **_engine_kwargs(url))

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Yield a session inside a transaction: commit on success, roll back on any error.
        The connection goes back to the pool on every exit path.
        """
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            async with session.begin():
                yield session

    async def ping(self) -> None:
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

    async def connect_with_retry(self, retries: int = 10, delay: float = 3.0) -> None:
        for attempt in range(1, retries + 1):
            try:
                await self.ping()
                logger.info("db_connected", attempt=attempt)
                return
            except Exception as e:
                logger.error("db_connect_failed", attempt=attempt, max_attempts=retries, error=str(e))
                if attempt < retries:
                    await asyncio.sleep(delay)
        raise DatabaseUnavailableError(f"database unreachable after {retries} attempts")

    async def create_all(self) -> None:
        async with self.engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def upsert_statement(
    dialect_name: str,
    model,
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
):
    """
    Build an insert-or-update for `model`: on a clash over `conflict_columns`,
    overwrite `update_columns` with the values being inserted.
    """
    table = model.__table__
    if dialect_name in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
        stmt = insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=list(conflict_columns),
            set_={col: stmt.excluded[col] for col in update_columns},
        )
    if dialect_name in ("mysql", "mariadb"):
        # mysql resolves the clash from the table's own unique keys
        stmt = mysql.insert(table).values(**values)
        return stmt.on_duplicate_key_update({col: stmt.inserted[col] for col in update_columns})
    raise NotImplementedError(f"upsert not supported for dialect {dialect_name}")


def session_dialect(session: AsyncSession) -> str:
    return session.get_bind().dialect.name
