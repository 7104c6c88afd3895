from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from sqlmodel import select

from insightboard.infrastructure.metrics_repo import MetricsRepository
from insightboard.models.metric import MetricCache
from insightboard.services.aggregation import (
    AggregationWorker,
    RunStatus,
    SkipReason,
    UserStatus,
    compute_metrics,
    sum_field,
)
from insightboard.UAA.repository import TokenRepository, UserRepository
from insightboard.UAA.schemas import GitHubProfile

REPOS = [
    {"name": "one", "stargazers_count": 3},
    {"name": "two", "stargazers_count": 4},
]


def ticking_clock(start=datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
    ticks = count()
    return lambda: start + timedelta(seconds=next(ticks))


async def add_user(database, cipher, github_id, login, encrypted=None, token=None):
    async with database.transaction() as session:
        user_id = await UserRepository(session).upsert_github_user(GitHubProfile(id=github_id, login=login))
        blob = encrypted if encrypted is not None else cipher.encrypt(token)
        await TokenRepository(session).upsert_encrypted_token(user_id, blob)
    return user_id


async def cached(database, user_id):
    async with database.session() as session:
        return await MetricsRepository(session).list_for_user(user_id)


class TestComputeMetrics:
    def test_counts_repositories_and_sums_stars(self):
        assert compute_metrics(REPOS) == {
            "total_repos": {"count": 2},
            "total_stars": {"count": 7},
        }

    def test_empty_listing(self):
        assert compute_metrics([]) == {"total_repos": {"count": 0}, "total_stars": {"count": 0}}

    def test_missing_or_non_numeric_fields_count_as_zero(self):
        repos = [{"stargazers_count": 5}, {}, {"stargazers_count": "10"}, {"stargazers_count": True}]

        assert compute_metrics(repos)["total_stars"] == {"count": 5}

    def test_custom_aggregators(self):
        metrics = compute_metrics([{"forks_count": 2}, {"forks_count": 1}], {"total_forks": sum_field("forks_count")})

        assert metrics == {"total_forks": {"count": 3}}


class TestAggregationWorker:
    @pytest.mark.asyncio
    async def test_run_caches_metrics_for_each_user(self, database, cipher, github_client, fake_github):
        alice = await add_user(database, cipher, 1, "alice", token="tok-a")
        bob = await add_user(database, cipher, 2, "bob", token="tok-b")
        fake_github.repos["tok-a"] = REPOS
        fake_github.repos["tok-b"] = [{"stargazers_count": 10}]

        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.COMPLETED
        assert outcome.refreshed == 2
        assert await cached(database, alice) == {"total_repos": {"count": 2}, "total_stars": {"count": 7}}
        assert await cached(database, bob) == {"total_repos": {"count": 1}, "total_stars": {"count": 10}}

    @pytest.mark.asyncio
    async def test_requests_a_bounded_page_with_bearer_token(self, database, cipher, github_client, fake_github):
        await add_user(database, cipher, 1, "alice", token="tok-a")
        fake_github.repos["tok-a"] = REPOS

        await AggregationWorker(database, cipher, github_client).run()

        request = fake_github.requests[-1]
        assert request.url.path == "/user/repos"
        assert request.url.params["per_page"] == "100"
        assert request.headers["authorization"] == "Bearer tok-a"

    @pytest.mark.asyncio
    async def test_undecryptable_credential_only_skips_that_user(self, database, cipher, github_client, fake_github):
        first = await add_user(database, cipher, 1, "first", token="tok-1")
        second = await add_user(database, cipher, 2, "second", encrypted="00" * 40)
        third = await add_user(database, cipher, 3, "third", token="tok-3")
        fake_github.repos["tok-1"] = REPOS
        fake_github.repos["tok-3"] = REPOS

        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.COMPLETED
        statuses = {u.user_id: (u.status, u.reason) for u in outcome.users}
        assert statuses[first] == (UserStatus.REFRESHED, None)
        assert statuses[second] == (UserStatus.SKIPPED, SkipReason.DECRYPT_FAILED)
        assert statuses[third] == (UserStatus.REFRESHED, None)
        assert await cached(database, first) and await cached(database, third)
        assert await cached(database, second) == {}

    @pytest.mark.asyncio
    async def test_provider_failure_only_skips_that_user(self, database, cipher, github_client, fake_github):
        revoked = await add_user(database, cipher, 1, "revoked", token="tok-revoked")
        limited = await add_user(database, cipher, 2, "limited", token="tok-limited")
        healthy = await add_user(database, cipher, 3, "healthy", token="tok-ok")
        fake_github.repos["tok-limited"] = 403
        fake_github.repos["tok-ok"] = REPOS

        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.COMPLETED
        reasons = {u.user_id: u.reason for u in outcome.users}
        assert reasons[revoked] is SkipReason.PROVIDER_ERROR
        assert reasons[limited] is SkipReason.PROVIDER_ERROR
        assert reasons[healthy] is None
        assert outcome.skipped == 2

    @pytest.mark.asyncio
    async def test_rerun_keeps_values_and_moves_timestamp(self, database, cipher, github_client, fake_github):
        user_id = await add_user(database, cipher, 1, "alice", token="tok-a")
        fake_github.repos["tok-a"] = REPOS
        worker = AggregationWorker(database, cipher, github_client, clock=ticking_clock())

        await worker.run()
        async with database.session() as session:
            first = {m.metric_key: (m.metric_value, m.last_refreshed_at) for m in (await session.execute(select(MetricCache))).scalars()}
        await worker.run()
        async with database.session() as session:
            rows = (await session.execute(select(MetricCache))).scalars().all()
            second = {m.metric_key: (m.metric_value, m.last_refreshed_at) for m in rows}

        assert len(rows) == 2
        assert all(m.user_id == user_id for m in rows)
        for key in ("total_repos", "total_stars"):
            assert second[key][0] == first[key][0]
            assert second[key][1] > first[key][1]

    @pytest.mark.asyncio
    async def test_no_users_is_a_completed_empty_run(self, database, cipher, github_client):
        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.COMPLETED
        assert outcome.users == []

    @pytest.mark.asyncio
    async def test_failure_loading_users_aborts_the_run(self, database, cipher, github_client, monkeypatch):
        async def boom(self):
            raise RuntimeError("database went away")

        monkeypatch.setattr(TokenRepository, "list_token_holders", boom)

        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.ABORTED
        assert outcome.cause == "database went away"

    @pytest.mark.asyncio
    async def test_cache_write_failure_aborts_the_run(self, database, cipher, github_client, fake_github, monkeypatch):
        await add_user(database, cipher, 1, "alice", token="tok-a")
        await add_user(database, cipher, 2, "bob", token="tok-b")
        fake_github.repos["tok-a"] = REPOS
        fake_github.repos["tok-b"] = REPOS

        async def boom(self, *args):
            raise RuntimeError("write failed")

        monkeypatch.setattr(MetricsRepository, "upsert", boom)

        outcome = await AggregationWorker(database, cipher, github_client).run()

        assert outcome.status is RunStatus.ABORTED
        assert outcome.users == []
        listed = [r for r in fake_github.requests if r.url.path == "/user/repos"]
        assert len(listed) == 1
