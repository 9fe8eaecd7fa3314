"""
Tests for the Job Scheduler and Job Locks.

============================================================
PURPOSE
============================================================
1. At most one run of a job at a time (in-memory and leases)
2. Expired leases can be taken over
3. Job errors classified as failed, recoverable or fatal
4. Failures reach the notifier; fatal errors re-raise

TEST PRINCIPLES:
- The lock is always released
- One failing job never blocks the others

============================================================
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from core.exceptions import (
    DataSourceError,
    InvalidConfigError,
    JobLockedError,
    JobNotFoundError,
)
from orchestrator.config import SchedulerConfig
from orchestrator.locks import DatabaseJobLock, InMemoryJobLock
from orchestrator.scheduler import JobDefinition, Scheduler


TTL = timedelta(minutes=30)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def lock(clock):
    return InMemoryJobLock(clock)


@pytest.fixture
def notifier():
    return AsyncMock()


def _job(name, run=None, interval=timedelta(hours=1)):
    if run is None:
        run = AsyncMock(return_value={"processed": 1, "errors": []})
    return JobDefinition(name=name, interval=interval, run=run)


def _scheduler(jobs, lock, notifier, clock, **config):
    return Scheduler(
        jobs,
        lock,
        SchedulerConfig(**config),
        failure_notifier=notifier,
        clock=clock,
        holder="worker-1",
    )


# ============================================================
# LOCK TESTS
# ============================================================

class TestInMemoryJobLock:
    
    @pytest.mark.asyncio
    async def test_exclusive(self, lock):
        assert await lock.acquire("cluster_scan", "a", TTL)
        assert not await lock.acquire("cluster_scan", "b", TTL)
        assert await lock.current_holder("cluster_scan") == "a"
    
    @pytest.mark.asyncio
    async def test_release_by_holder_only(self, lock):
        await lock.acquire("cluster_scan", "a", TTL)
        
        await lock.release("cluster_scan", "b")
        assert await lock.current_holder("cluster_scan") == "a"
        
        await lock.release("cluster_scan", "a")
        assert await lock.current_holder("cluster_scan") is None
        assert await lock.acquire("cluster_scan", "b", TTL)
    
    @pytest.mark.asyncio
    async def test_expired_lock_taken_over(self, lock, clock):
        await lock.acquire("cluster_scan", "a", TTL)
        clock.advance(minutes=31)
        
        assert await lock.current_holder("cluster_scan") is None
        assert await lock.acquire("cluster_scan", "b", TTL)


class TestDatabaseJobLock:
    """Same semantics, persisted in job_locks."""
    
    @pytest.mark.asyncio
    async def test_exclusive(self, session_factory, clock):
        lock = DatabaseJobLock(session_factory, clock)
        
        assert await lock.acquire("trust_recompute", "a", TTL)
        assert not await lock.acquire("trust_recompute", "b", TTL)
        assert await lock.acquire("referral_audit", "b", TTL)
        assert await lock.current_holder("trust_recompute") == "a"
    
    @pytest.mark.asyncio
    async def test_shared_between_instances(self, session_factory, clock):
        first = DatabaseJobLock(session_factory, clock)
        second = DatabaseJobLock(session_factory, clock)
        
        assert await first.acquire("trust_recompute", "a", TTL)
        assert not await second.acquire("trust_recompute", "b", TTL)
        
        await first.release("trust_recompute", "a")
        assert await second.acquire("trust_recompute", "b", TTL)
    
    @pytest.mark.asyncio
    async def test_expired_lease_taken_over(self, session_factory, clock):
        lock = DatabaseJobLock(session_factory, clock)
        await lock.acquire("trust_recompute", "a", TTL)
        
        clock.advance(hours=1)
        
        assert await lock.current_holder("trust_recompute") is None
        assert await lock.acquire("trust_recompute", "b", TTL)
        assert await lock.current_holder("trust_recompute") == "b"
    
    @pytest.mark.asyncio
    async def test_release_by_other_holder_ignored(self, session_factory, clock):
        lock = DatabaseJobLock(session_factory, clock)
        await lock.acquire("trust_recompute", "a", TTL)
        
        await lock.release("trust_recompute", "b")
        
        assert await lock.current_holder("trust_recompute") == "a"


# ============================================================
# SCHEDULER TESTS
# ============================================================

class TestScheduling:
    
    def test_disabled_jobs_dropped(self, lock, notifier, clock):
        scheduler = _scheduler(
            [_job("b"), _job("a"), _job("c")], lock, notifier, clock, disabled_jobs=("c",)
        )
        assert scheduler.job_names == ["a", "b"]
        with pytest.raises(JobNotFoundError):
            scheduler.get_job("c")
    
    @pytest.mark.asyncio
    async def test_due_after_interval(self, lock, notifier, clock):
        scheduler = _scheduler(
            [_job("hourly"), _job("daily", interval=timedelta(days=1))], lock, notifier, clock
        )
        assert scheduler.due_jobs() == ["daily", "hourly"]
        
        await scheduler.run_due_jobs()
        assert scheduler.due_jobs() == []
        
        clock.advance(hours=1)
        assert scheduler.due_jobs() == ["hourly"]


class TestRunJob:
    """One run under the job lock."""
    
    @pytest.mark.asyncio
    async def test_success(self, lock, notifier, clock):
        job = _job("cluster_scan")
        scheduler = _scheduler([job], lock, notifier, clock)
        
        result = await scheduler.run_job("cluster_scan")
        
        assert result.success
        assert result.summary == {"processed": 1, "errors": []}
        assert result.to_dict()["job_name"] == "cluster_scan"
        job.run.assert_awaited_once()
        notifier.assert_not_awaited()
        assert await lock.current_holder("cluster_scan") is None
    
    @pytest.mark.asyncio
    async def test_unknown_job(self, lock, notifier, clock):
        scheduler = _scheduler([], lock, notifier, clock)
        with pytest.raises(JobNotFoundError):
            await scheduler.run_job("nope")
    
    @pytest.mark.asyncio
    async def test_locked(self, lock, notifier, clock):
        job = _job("cluster_scan")
        scheduler = _scheduler([job], lock, notifier, clock)
        await lock.acquire("cluster_scan", "other-worker", TTL)
        
        with pytest.raises(JobLockedError) as exc_info:
            await scheduler.run_job("cluster_scan")
        
        assert exc_info.value.context["holder"] == "other-worker"
        job.run.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_same_process_runs_are_exclusive(self, lock, notifier, clock):
        scheduler = _scheduler([_job("cluster_scan")], lock, notifier, clock)
        
        async def nested():
            with pytest.raises(JobLockedError):
                await scheduler.run_job("cluster_scan")
            return {"errors": []}
        
        outer = _scheduler([_job("cluster_scan", run=nested)], lock, notifier, clock)
        result = await outer.run_job("cluster_scan")
        
        assert result.success
    
    @pytest.mark.asyncio
    async def test_summary_errors_fail_the_run(self, lock, notifier, clock):
        run = AsyncMock(return_value={"errors": ["collector ip_correlation failed", "other"]})
        scheduler = _scheduler([_job("cluster_scan", run=run)], lock, notifier, clock)
        
        result = await scheduler.run_job("cluster_scan")
        
        assert not result.success
        assert result.error == "2 error(s): collector ip_correlation failed"
        notifier.assert_awaited_once_with("cluster_scan", result.error, False)
    
    @pytest.mark.asyncio
    async def test_recoverable_error_returns_failed_result(self, lock, notifier, clock):
        run = AsyncMock(side_effect=DataSourceError("page read timed out"))
        scheduler = _scheduler([_job("trust_recompute", run=run)], lock, notifier, clock)
        
        result = await scheduler.run_job("trust_recompute")
        
        assert not result.success
        assert result.error.startswith("DataSourceError")
        notifier.assert_awaited_once()
        assert notifier.await_args.args[2] is False
        assert await lock.current_holder("trust_recompute") is None
    
    @pytest.mark.asyncio
    async def test_fatal_error_reraised(self, lock, notifier, clock):
        run = AsyncMock(side_effect=InvalidConfigError(key="weights", value=None, reason="missing"))
        scheduler = _scheduler([_job("trust_recompute", run=run)], lock, notifier, clock)
        
        with pytest.raises(InvalidConfigError):
            await scheduler.run_job("trust_recompute")
        
        notifier.assert_awaited_once()
        assert notifier.await_args.args[2] is True
        assert scheduler.get_history()[-1].error.startswith("InvalidConfigError")
        assert await lock.current_holder("trust_recompute") is None
    
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_fatal(self, lock, notifier, clock):
        run = AsyncMock(side_effect=KeyError("trust_score"))
        scheduler = _scheduler([_job("trust_recompute", run=run)], lock, notifier, clock)
        
        with pytest.raises(KeyError):
            await scheduler.run_job("trust_recompute")
        
        assert notifier.await_args.args[2] is True
    
    @pytest.mark.asyncio
    async def test_without_notifier(self, lock, clock):
        run = AsyncMock(return_value={"errors": ["boom"]})
        scheduler = Scheduler([_job("a", run=run)], lock, clock=clock)
        
        result = await scheduler.run_job("a")
        
        assert not result.success


class TestRunDueJobs:
    
    @pytest.mark.asyncio
    async def test_failures_isolated(self, lock, notifier, clock):
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = _job("b")
        scheduler = _scheduler([_job("a", run=broken), healthy], lock, notifier, clock)
        
        results = await scheduler.run_due_jobs()
        
        assert [r.job_name for r in results] == ["b"]
        healthy.run.assert_awaited_once()
        assert [r.job_name for r in scheduler.get_history()] == ["a", "b"]
    
    @pytest.mark.asyncio
    async def test_locked_job_skipped(self, lock, notifier, clock):
        scheduler = _scheduler([_job("a"), _job("b")], lock, notifier, clock)
        await lock.acquire("a", "other-worker", TTL)
        
        results = await scheduler.run_due_jobs()
        
        assert [r.job_name for r in results] == ["b"]
        notifier.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_history_limit(self, lock, notifier, clock):
        scheduler = _scheduler([_job("a")], lock, notifier, clock)
        for _ in range(3):
            await scheduler.run_job("a")
        
        assert len(scheduler.get_history(limit=2)) == 2
