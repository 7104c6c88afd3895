# insightboard/UAA/models.py
from sqlmodel import SQLModel, Field, Column
from typing import Optional
from datetime import datetime
from sqlalchemy import BigInteger, DateTime, Text

from insightboard.utils import utcnow


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    github_id: int = Field(sa_column=Column(BigInteger, unique=True, index=True, nullable=False))
    username: str = Field(max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class UserToken(SQLModel, table=True):
    """
    The provider access token of a user, only ever stored encrypted.
    One row per user; a new login overwrites it.
    """
    __tablename__ = "user_tokens"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    access_token_encrypted: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
