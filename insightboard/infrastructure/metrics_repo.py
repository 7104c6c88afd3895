# insightboard/infrastructure/metrics_repo.py
from typing import Dict
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from datetime import datetime

from insightboard.infrastructure.database import session_dialect, upsert_statement
from insightboard.models.metric import MetricCache, MetricValue


class MetricsRepository:
    """
    Repository for the metrics cache.
    Writes are upserts keyed by (user_id, metric_key); nothing is ever deleted.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(self, user_id: int, metric_key: str, metric_value: MetricValue, refreshed_at: datetime) -> None:
        """
        Value and refresh timestamp are always replaced together.
        """
        stmt = upsert_statement(
            session_dialect(self.session),
            MetricCache,
            {
                "user_id": user_id,
                "metric_key": metric_key,
                "metric_value": metric_value,
                "last_refreshed_at": refreshed_at,
            },
            conflict_columns=["user_id", "metric_key"],
            update_columns=["metric_value", "last_refreshed_at"],
        )
        await self.session.execute(stmt)

    async def list_for_user(self, user_id: int) -> Dict[str, MetricValue]:
        q = (
            select(MetricCache.metric_key, MetricCache.metric_value)
            .where(MetricCache.user_id == user_id)
            .order_by(MetricCache.metric_key)
        )
        res = await self.session.execute(q)
        return {key: value for key, value in res.all()}
