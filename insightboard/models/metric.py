# insightboard/models/metric.py
from sqlmodel import SQLModel, Field, Column
from typing import Any, Dict
from datetime import datetime
from sqlalchemy import JSON, DateTime

from insightboard.utils import utcnow

# open document: metric name -> primitives or nested documents
MetricValue = Dict[str, Any]


class MetricCache(SQLModel, table=True):
    __tablename__ = "metrics_cache"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    metric_key: str = Field(primary_key=True, max_length=100)
    metric_value: MetricValue = Field(sa_column=Column(JSON, nullable=False))
    last_refreshed_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
