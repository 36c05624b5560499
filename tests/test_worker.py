"""Tests for the ARQ search recovery worker."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from searchsync.services.recovery_indexer import RecoveryRunResult
from searchsync.worker import (
    WorkerSettings,
    parse_redis_url,
    run_search_recovery,
    schedule_for_delay,
)


class TestScheduleForDelay:
    """Tests for translating the recovery delay into cron fields."""

    def test_seconds(self):
        assert schedule_for_delay(30) == {"second": {0, 30}}

    def test_minutes(self):
        assert schedule_for_delay(300) == {
            "minute": set(range(0, 60, 5)),
            "second": {0},
        }

    def test_hours(self):
        assert schedule_for_delay(7200) == {
            "hour": set(range(0, 24, 2)),
            "minute": {0},
            "second": {0},
        }

    def test_longer_than_a_day(self):
        assert schedule_for_delay(3 * 24 * 3600)["hour"] == {0}


class TestParseRedisUrl:
    """Tests for parse_redis_url."""

    def test_full_url(self):
        redis = parse_redis_url("redis://:secret@cache:6380/2")

        assert redis.host == "cache"
        assert redis.port == 6380
        assert redis.password == "secret"
        assert redis.database == 2

    def test_defaults(self):
        redis = parse_redis_url("redis://")

        assert redis.host == "localhost"
        assert redis.port == 6379
        assert redis.database == 0


class TestRunSearchRecovery:
    """Tests for the cron job."""

    @pytest.mark.asyncio
    async def test_returns_run_summary(self):
        recovery = MagicMock()
        recovery.run_once = AsyncMock(
            return_value=RecoveryRunResult(started_at=1, iterations=1, items_seen=3)
        )

        summary = await run_search_recovery({"recovery_indexer": recovery})

        recovery.run_once.assert_awaited_once()
        assert summary["items_seen"] == 3
        assert summary["timed_out"] is False


class TestWorkerSettings:
    """Tests for the worker configuration."""

    def test_one_job_at_a_time(self):
        assert WorkerSettings.max_jobs == 1
        assert run_search_recovery in WorkerSettings.functions

    def test_recovery_cron_is_unique(self):
        (job,) = WorkerSettings.cron_jobs

        assert job.coroutine is run_search_recovery
        assert job.unique
        assert job.run_at_startup
