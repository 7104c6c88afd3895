# insightboard/services/aggregation.py
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from insightboard.infrastructure.database import Database
from insightboard.infrastructure.github_client import DEFAULT_PAGE_SIZE, GitHubClient, ProviderError
from insightboard.infrastructure.metrics_repo import MetricsRepository
from insightboard.models.metric import MetricValue
from insightboard.UAA.crypto import TokenCipher
from insightboard.UAA.repository import TokenHolder, TokenRepository
from insightboard.utils import utcnow

logger = structlog.get_logger(__name__)

Repository = Dict[str, Any]
Aggregator = Callable[[List[Repository]], MetricValue]


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def count_repositories(repos: List[Repository]) -> MetricValue:
    return {"count": len(repos)}


def sum_field(field_name: str) -> Aggregator:
    def aggregate(repos: List[Repository]) -> MetricValue:
        return {"count": sum(_number(repo.get(field_name)) for repo in repos)}
    return aggregate


DEFAULT_AGGREGATORS: Dict[str, Aggregator] = {
    "total_repos": count_repositories,
    "total_stars": sum_field("stargazers_count"),
}


def compute_metrics(repos: List[Repository], aggregators: Optional[Dict[str, Aggregator]] = None) -> Dict[str, MetricValue]:
    aggregators = DEFAULT_AGGREGATORS if aggregators is None else aggregators
    return {key: aggregate(repos) for key, aggregate in aggregators.items()}


class UserStatus(str, enum.Enum):
    REFRESHED = "refreshed"
    SKIPPED = "skipped"


class SkipReason(str, enum.Enum):
    DECRYPT_FAILED = "decrypt_failed"
    PROVIDER_ERROR = "provider_error"


class RunStatus(str, enum.Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class UserRefreshOutcome:
    user_id: int
    username: str
    status: UserStatus
    reason: Optional[SkipReason] = None
    metrics: Dict[str, MetricValue] = field(default_factory=dict)


@dataclass
class RunOutcome:
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    users: List[UserRefreshOutcome] = field(default_factory=list)
    cause: Optional[str] = None

    @property
    def refreshed(self) -> int:
        return sum(1 for u in self.users if u.status is UserStatus.REFRESHED)

    @property
    def skipped(self) -> int:
        return sum(1 for u in self.users if u.status is UserStatus.SKIPPED)


class AggregationWorker:
    """
    One aggregation run sweeps every user holding a stored token, one after the other:
    decrypt the token, list the user's repositories, compute the aggregates and
    upsert them into the metrics cache.

    Decryption and provider failures skip the user. Failing to load the user list or
    to write the cache aborts the run. run() itself never raises.
    """

    def __init__(
        self,
        database: Database,
        cipher: TokenCipher,
        github: GitHubClient,
        aggregators: Optional[Dict[str, Aggregator]] = None,
        per_page: int = DEFAULT_PAGE_SIZE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.database = database
        self.cipher = cipher
        self.github = github
        self.aggregators = DEFAULT_AGGREGATORS if aggregators is None else aggregators
        self.per_page = per_page
        self.clock = clock

    async def run(self) -> RunOutcome:
        started_at = self.clock()
        logger.info("aggregation_run_started", started_at=started_at.isoformat())
        users: List[UserRefreshOutcome] = []

        try:
            async with self.database.session() as session:
                holders = await TokenRepository(session).list_token_holders()
            logger.info("aggregation_users_loaded", count=len(holders))

            for holder in holders:
                users.append(await self.refresh_user(holder))
        except Exception as e:
            logger.exception("aggregation_run_aborted", error=str(e))
            outcome = RunOutcome(RunStatus.ABORTED, started_at, self.clock(), users, cause=str(e))
        else:
            outcome = RunOutcome(RunStatus.COMPLETED, started_at, self.clock(), users)

        logger.info(
            "aggregation_run_finished",
            status=outcome.status.value,
            refreshed=outcome.refreshed,
            skipped=outcome.skipped,
        )
        return outcome

    async def refresh_user(self, holder: TokenHolder) -> UserRefreshOutcome:
        log = logger.bind(user_id=holder.user_id, username=holder.username)

        repos = await self._fetch_repositories(holder)
        if isinstance(repos, SkipReason):
            log.warning("aggregation_user_skipped", reason=repos.value)
            return UserRefreshOutcome(holder.user_id, holder.username, UserStatus.SKIPPED, reason=repos)

        metrics = compute_metrics(repos, self.aggregators)
        refreshed_at = self.clock()
        async with self.database.transaction() as session:
            repo = MetricsRepository(session)
            for key, value in metrics.items():
                await repo.upsert(holder.user_id, key, value, refreshed_at)

        log.info("aggregation_user_refreshed", metrics=len(metrics), repositories=len(repos))
        return UserRefreshOutcome(holder.user_id, holder.username, UserStatus.REFRESHED, metrics=metrics)

    async def _fetch_repositories(self, holder: TokenHolder):
        # the plaintext token lives only for the duration of this call
        access_token = self.cipher.decrypt(holder.access_token_encrypted)
        if access_token is None:
            return SkipReason.DECRYPT_FAILED
        try:
            return await self.github.list_repositories(access_token, per_page=self.per_page)
        except ProviderError as e:
            logger.info("aggregation_provider_call_failed", user_id=holder.user_id, status_code=e.status_code)
            return SkipReason.PROVIDER_ERROR
