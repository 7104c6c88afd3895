# insightboard/dependencies/db.py
from typing import AsyncGenerator

from fastapi import Request
from sqlmodel.ext.asyncio.session import AsyncSession

from insightboard.infrastructure.database import Database


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_session_dep(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with get_database(request).session() as session:
        yield session
