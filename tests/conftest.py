"""Shared fixtures: in-memory database, stubbed GitHub and the ASGI app."""

import json
from typing import Dict, List, Union

import httpx
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from insightboard.config import Settings
from insightboard.infrastructure.database import Database
from insightboard.infrastructure.github_client import GitHubClient
from insightboard.main import create_app
from insightboard.UAA.crypto import TokenCipher
from insightboard.UAA.sessions import SessionTokens

OAUTH_URL = "https://github.test/login/oauth"
API_URL = "https://api.github.test"


class FakeGitHub:
    """In-process stand-in for the three GitHub endpoints the service calls."""

    def __init__(self):
        self.codes: Dict[str, str] = {}
        self.profiles: Dict[str, dict] = {}
        self.repos: Dict[str, Union[List[dict], int]] = {}
        self.requests: List[httpx.Request] = []

    def add_user(self, code: str, token: str, profile: dict, repos: Union[List[dict], int, None] = None):
        self.codes[code] = token
        self.profiles[token] = profile
        if repos is not None:
            self.repos[token] = repos

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/login/oauth/access_token":
            body = json.loads(request.content)
            token = self.codes.get(body.get("code"))
            if token is None:
                return httpx.Response(200, json={"error": "bad_verification_code"})
            return httpx.Response(200, json={"access_token": token, "token_type": "bearer"})

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if path == "/user":
            profile = self.profiles.get(token)
            if profile is None:
                return httpx.Response(401, json={"message": "Bad credentials"})
            return httpx.Response(200, json=profile)

        if path == "/user/repos":
            repos = self.repos.get(token)
            if repos is None:
                return httpx.Response(401, json={"message": "Bad credentials"})
            if isinstance(repos, int):
                return httpx.Response(repos, json={"message": "error"})
            return httpx.Response(200, json=repos)

        return httpx.Response(404, json={"message": "Not Found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        github_client_id="client-id",
        github_client_secret="client-secret",
        token_secret_key="token-secret",
        session_secret_key="session-secret",
        database_url="sqlite+aiosqlite://",
        frontend_url="http://frontend.test",
        worker_enabled=False,
        db_connect_retries=1,
        db_connect_retry_delay_seconds=0,
        github_oauth_url=OAUTH_URL,
        github_api_url=API_URL,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture(scope="session")
def cipher() -> TokenCipher:
    return TokenCipher("token-secret")


@pytest.fixture
def session_tokens() -> SessionTokens:
    return SessionTokens("session-secret")


@pytest.fixture
def github_client(settings, fake_github) -> GitHubClient:
    return GitHubClient(settings, transport=fake_github.transport)


@pytest_asyncio.fixture
async def database():
    db = Database("sqlite+aiosqlite://")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def app(settings, fake_github):
    application = create_app(settings, github_transport=fake_github.transport)
    async with LifespanManager(application):
        yield application


@pytest_asyncio.fixture
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
