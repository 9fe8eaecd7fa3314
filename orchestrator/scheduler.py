"""
Orchestrator - Job Scheduler.

============================================================
RESPONSIBILITY
============================================================
Runs the periodic batch jobs on their intervals.

- One JobLock lease per job name; an overlapping run is
  refused with JobLockedError, never queued
- A job that reports errors is a failed run: operators get a
  HIGH alert and the next interval retries
- A fatal error (datastore unreachable, non-recoverable
  engine error) raises an EMERGENCY alert and propagates out
  of run_job

============================================================
"""

import asyncio
import logging
import os
import signal
import socket
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import FraudEngineError, JobLockedError, JobNotFoundError

from .config import SchedulerConfig
from .locks import JobLock


logger = logging.getLogger(__name__)


JobFunc = Callable[[], Awaitable[Dict[str, Any]]]
FailureNotifier = Callable[[str, str, bool], Awaitable[Any]]


# ============================================================
# JOB TYPES
# ============================================================


@dataclass(frozen=True)
class JobDefinition:
    """A named periodic job."""
    name: str
    interval: timedelta
    run: JobFunc
    description: str = ""


@dataclass
class JobResult:
    job_name: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    success: bool = False
    summary: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    
    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_name": self.job_name,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "success": self.success,
            "summary": self.summary,
            "error": self.error,
        }


def _is_fatal(error: Exception) -> bool:
    if isinstance(error, FraudEngineError):
        return not error.is_recoverable
    return True


# ============================================================
# SCHEDULER
# ============================================================


class Scheduler:
    """
    Interval scheduler for the engine's batch jobs.
    
    Jobs are stateless: a run reads its population from the
    datastore, so a crashed or skipped run is simply retried at
    the next interval.
    """
    
    def __init__(
        self,
        jobs: Sequence[JobDefinition],
        lock: JobLock,
        config: Optional[SchedulerConfig] = None,
        failure_notifier: Optional[FailureNotifier] = None,
        clock: Optional[ClockProtocol] = None,
        holder: Optional[str] = None,
    ):
        self.config = config or SchedulerConfig()
        self._jobs: Dict[str, JobDefinition] = {
            job.name: job for job in jobs if job.name not in self.config.disabled_jobs
        }
        self._lock = lock
        self._notify_failure = failure_notifier
        self._clock = clock or ClockFactory.get_clock()
        self._holder = holder or f"{socket.gethostname()}:{os.getpid()}"
        self._last_run: Dict[str, datetime] = {}
        self._history: List[JobResult] = []
        self._stop_event: Optional[asyncio.Event] = None
    
    @property
    def job_names(self) -> List[str]:
        return sorted(self._jobs)
    
    def get_job(self, job_name: str) -> JobDefinition:
        job = self._jobs.get(job_name)
        if job is None:
            raise JobNotFoundError(job_name)
        return job
    
    def is_due(self, job_name: str) -> bool:
        job = self.get_job(job_name)
        last = self._last_run.get(job_name)
        return last is None or self._clock.now() - last >= job.interval
    
    def due_jobs(self) -> List[str]:
        return [name for name in self.job_names if self.is_due(name)]
    
    # --------------------------------------------------------
    # EXECUTION
    # --------------------------------------------------------
    
    async def run_job(self, job_name: str) -> JobResult:
        """
        Run one job under its lock.
        
        Raises:
            JobNotFoundError: unknown job
            JobLockedError: another run holds the lock
            Exception: fatal errors, after alerting
        """
        job = self.get_job(job_name)
        ttl = timedelta(seconds=self.config.lock_ttl_seconds)
        
        holder = f"{self._holder}/{uuid.uuid4().hex[:8]}"
        
        if not await self._lock.acquire(job_name, holder, ttl):
            raise JobLockedError(job_name, await self._lock.current_holder(job_name))
        
        result = JobResult(job_name=job_name, started_at=self._clock.now())
        logger.info(f"Job {job_name} started (holder={holder})")
        
        try:
            result.summary = await job.run()
            errors = result.summary.get("errors") or []
            result.success = not errors
            if errors:
                result.error = f"{len(errors)} error(s): {errors[0]}"
        except Exception as e:
            fatal = _is_fatal(e)
            result.error = f"{type(e).__name__}: {e}"
            logger.error(f"Job {job_name} aborted (fatal={fatal}): {e}", exc_info=True)
            if fatal:
                result.finished_at = self._clock.now()
                self._record(result)
                await self._alert(job_name, result.error, fatal=True)
                raise
        finally:
            await self._lock.release(job_name, holder)
        
        result.finished_at = self._clock.now()
        self._record(result)
        
        if result.success:
            logger.info(f"Job {job_name} finished in {result.duration_seconds:.1f}s")
        else:
            logger.warning(f"Job {job_name} finished with errors: {result.error}")
            await self._alert(job_name, result.error or "job reported errors", fatal=False)
        return result
    
    async def run_due_jobs(self) -> List[JobResult]:
        """Run every due job once; a failing job never blocks the others."""
        results: List[JobResult] = []
        for job_name in self.due_jobs():
            try:
                results.append(await self.run_job(job_name))
            except JobLockedError as e:
                logger.info(f"Skipping {job_name}: {e.message}")
            except Exception as e:
                logger.error(f"Job {job_name} failed fatally, retrying next interval: {e}")
        return results
    
    async def run_forever(self) -> None:
        """Tick until stop() or SIGINT/SIGTERM."""
        self._stop_event = asyncio.Event()
        self._install_signal_handlers()
        logger.info(
            f"Scheduler started | jobs={self.job_names} | tick={self.config.tick_seconds}s"
        )
        try:
            while not self._stop_event.is_set():
                await self.run_due_jobs()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.tick_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._restore_signal_handlers()
            logger.info("Scheduler stopped")
    
    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
    
    def get_history(self, limit: int = 100) -> List[JobResult]:
        return self._history[-limit:]
    
    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------
    
    def _record(self, result: JobResult) -> None:
        self._last_run[result.job_name] = result.started_at
        self._history.append(result)
        if len(self._history) > 1000:
            self._history = self._history[-1000:]
    
    async def _alert(self, job_name: str, error: str, fatal: bool) -> None:
        if self._notify_failure is None:
            return
        await self._notify_failure(job_name, error, fatal)
    
    def _install_signal_handlers(self) -> None:
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.stop)
    
    def _restore_signal_handlers(self) -> None:
        if sys.platform == "win32":
            return
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


__all__ = [
    "JobFunc",
    "JobDefinition",
    "JobResult",
    "Scheduler",
]
