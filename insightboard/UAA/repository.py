# insightboard/UAA/repository.py
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select
from typing import List, NamedTuple, Optional
from insightboard.infrastructure.database import session_dialect, upsert_statement
from insightboard.utils import utcnow
from .models import User, UserToken
from .schemas import GitHubProfile


class TokenHolder(NamedTuple):
    user_id: int
    username: str
    access_token_encrypted: str


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[User]:
        q = select(User).where(User.id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def get_id_by_github_id(self, github_id: int) -> Optional[int]:
        q = select(User.id).where(User.github_id == github_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def upsert_github_user(self, profile: GitHubProfile) -> int:
        """
        Insert the user or refresh its display fields, then resolve the internal id.
        The id is looked up afterwards because the conflict branch does not report it.
        Does not commit; the caller owns the transaction.
        """
        now = utcnow()
        stmt = upsert_statement(
            session_dialect(self.session),
            User,
            {
                "github_id": profile.id,
                "username": profile.login,
                "avatar_url": profile.avatar_url,
                "created_at": now,
                "updated_at": now,
            },
            conflict_columns=["github_id"],
            update_columns=["username", "avatar_url", "updated_at"],
        )
        await self.session.execute(stmt)
        user_id = await self.get_id_by_github_id(profile.id)
        if user_id is None:
            raise LookupError(f"user with github_id {profile.id} missing after upsert")
        return user_id


class TokenRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_user_id(self, user_id: int) -> Optional[UserToken]:
        q = select(UserToken).where(UserToken.user_id == user_id)
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def upsert_encrypted_token(self, user_id: int, access_token_encrypted: str) -> None:
        stmt = upsert_statement(
            session_dialect(self.session),
            UserToken,
            {"user_id": user_id, "access_token_encrypted": access_token_encrypted, "updated_at": utcnow()},
            conflict_columns=["user_id"],
            update_columns=["access_token_encrypted", "updated_at"],
        )
        await self.session.execute(stmt)

    async def list_token_holders(self) -> List[TokenHolder]:
        q = (
            select(User.id, User.username, UserToken.access_token_encrypted)
            .join(UserToken, UserToken.user_id == User.id)
            .order_by(User.id)
        )
        res = await self.session.execute(q)
        return [TokenHolder(*row) for row in res.all()]
