# insightboard/config.py
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv(override=False)


class ConfigurationError(RuntimeError):
    pass


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {name}")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    github_client_id: str
    github_client_secret: str
    token_secret_key: str
    session_secret_key: str
    database_url: str

    port: int = 8080
    environment: str = "development"
    frontend_url: str = "http://localhost:3000"
    cookie_secure: bool = False
    cookie_samesite: str = "lax"
    log_level: str = "INFO"

    worker_enabled: bool = True
    worker_interval_seconds: int = 300
    db_connect_retries: int = 10
    db_connect_retry_delay_seconds: float = 3.0

    github_oauth_url: str = "https://github.com/login/oauth"
    github_api_url: str = "https://api.github.com"
    github_scopes: str = "read:user repo"
    github_timeout_seconds: float = 20.0
    github_redirect_uri: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the process environment.
        Raises ConfigurationError when a required variable is missing or malformed.
        """
        token_secret = _require_env("TOKEN_SECRET_KEY")
        environment = os.getenv("ENVIRONMENT", "development")
        return cls(
            github_client_id=_require_env("GITHUB_CLIENT_ID"),
            github_client_secret=_require_env("GITHUB_CLIENT_SECRET"),
            token_secret_key=token_secret,
            session_secret_key=os.getenv("SESSION_SECRET_KEY") or token_secret,
            database_url=_require_env("DATABASE_URL"),
            port=_env_int("PORT", 8080),
            environment=environment,
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            # in prod the session cookie must only travel over https
            cookie_secure=_env_bool("COOKIE_SECURE", environment.lower() == "production"),
            cookie_samesite=os.getenv("COOKIE_SAMESITE", "lax"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            worker_enabled=_env_bool("WORKER_ENABLED", True),
            worker_interval_seconds=_env_int("WORKER_INTERVAL_SECONDS", 300),
            db_connect_retries=_env_int("DB_CONNECT_RETRIES", 10),
            db_connect_retry_delay_seconds=_env_float("DB_CONNECT_RETRY_DELAY_SECONDS", 3.0),
            github_oauth_url=os.getenv("GITHUB_OAUTH_URL", "https://github.com/login/oauth").rstrip("/"),
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            github_scopes=os.getenv("GITHUB_SCOPES", "read:user repo"),
            github_timeout_seconds=_env_float("GITHUB_TIMEOUT_SECONDS", 20.0),
            github_redirect_uri=os.getenv("GITHUB_REDIRECT_URI") or None,
        )
