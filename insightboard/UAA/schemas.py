# insightboard/UAA/schemas.py
from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class GitHubProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    login: str
    avatar_url: Optional[str] = None


class SessionClaim(BaseModel):
    user_id: int
    username: str
    expires_at: Optional[datetime] = None


class UserRead(BaseModel):
    user_id: int
    username: str


class LoginResult(BaseModel):
    user_id: int
    username: str
    session_token: str
