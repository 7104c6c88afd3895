# insightboard/UAA/services.py
import structlog

from insightboard.infrastructure.database import Database
from insightboard.infrastructure.github_client import GitHubClient, ProviderError
from .crypto import TokenCipher
from .repository import TokenRepository, UserRepository
from .schemas import LoginResult
from .sessions import SessionTokens

logger = structlog.get_logger(__name__)


class OAuthFlowError(Exception):
    pass


class GitHubLoginService:
    """
    One pass of the GitHub login: code -> access token -> profile -> encrypted
    credential persisted with the user -> session token. No retries; any failure
    raises OAuthFlowError and nothing is committed.
    """

    def __init__(self, database: Database, github: GitHubClient, cipher: TokenCipher, tokens: SessionTokens):
        self.database = database
        self.github = github
        self.cipher = cipher
        self.tokens = tokens

    async def complete_login(self, code: str) -> LoginResult:
        if not code:
            raise OAuthFlowError("missing authorization code")

        try:
            access_token = await self.github.exchange_code(code)
            profile = await self.github.fetch_profile(access_token)
        except ProviderError as e:
            logger.warning("oauth_provider_call_failed", operation=e.operation, status_code=e.status_code)
            raise OAuthFlowError(f"provider call failed during {e.operation}") from e

        encrypted = self.cipher.encrypt(access_token)

        async with self.database.transaction() as session:
            user_id = await UserRepository(session).upsert_github_user(profile)
            await TokenRepository(session).upsert_encrypted_token(user_id, encrypted)
        logger.info("oauth_user_upserted", user_id=user_id, username=profile.login)

        session_token = self.tokens.issue(user_id, profile.login)
        return LoginResult(user_id=user_id, username=profile.login, session_token=session_token)
