# insightboard/infrastructure/github_client.py
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import ValidationError

from insightboard.config import Settings
from insightboard.UAA.schemas import GitHubProfile

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class ProviderError(Exception):
    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status_code = status_code


class GitHubClient:
    """
    The three GitHub calls the service depends on.
    Every request carries an explicit timeout; `transport` lets tests stub the provider.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client_id = settings.github_client_id
        self.client_secret = settings.github_client_secret
        self.oauth_url = settings.github_oauth_url
        self.api_url = settings.github_api_url
        self.scopes = settings.github_scopes
        self.redirect_uri = settings.github_redirect_uri
        self.timeout = settings.github_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def authorize_url(self, state: Optional[str] = None) -> str:
        params = {"client_id": self.client_id, "scope": self.scopes}
        if self.redirect_uri:
            params["redirect_uri"] = self.redirect_uri
        if state:
            params["state"] = state
        return str(httpx.URL(f"{self.oauth_url}/authorize", params=params))

    async def _request(self, operation: str, method: str, url: str, **kwargs) -> Any:
        async with self._client() as client:
            try:
                resp = await client.request(method, url, **kwargs)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                raise ProviderError(operation, "unexpected status", e.response.status_code) from e
            except httpx.HTTPError as e:
                raise ProviderError(operation, f"transport error ({type(e).__name__})") from e
            except ValueError as e:
                raise ProviderError(operation, "response is not valid JSON") from e

    async def exchange_code(self, code: str) -> str:
        data = await self._request(
            "token_exchange",
            "POST",
            f"{self.oauth_url}/access_token",
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
            },
            headers={"Accept": "application/json"},
        )
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            # github answers 200 with an "error" field for bad or reused codes
            error = data.get("error") if isinstance(data, dict) else None
            raise ProviderError("token_exchange", f"no access token returned ({error or 'unknown'})")
        return access_token

    async def fetch_profile(self, access_token: str) -> GitHubProfile:
        data = await self._request(
            "fetch_profile",
            "GET",
            f"{self.api_url}/user",
            headers=self._auth_headers(access_token),
        )
        try:
            return GitHubProfile.model_validate(data)
        except ValidationError as e:
            raise ProviderError("fetch_profile", "malformed profile payload") from e

    async def list_repositories(self, access_token: str, per_page: int = DEFAULT_PAGE_SIZE) -> List[Dict[str, Any]]:
        data = await self._request(
            "list_repositories",
            "GET",
            f"{self.api_url}/user/repos",
            params={"per_page": per_page},
            headers=self._auth_headers(access_token),
        )
        if not isinstance(data, list):
            raise ProviderError("list_repositories", "expected a JSON array")
        return [item for item in data if isinstance(item, dict)]

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
