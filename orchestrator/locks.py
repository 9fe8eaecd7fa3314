"""
Orchestrator - Job Locks.

============================================================
PURPOSE
============================================================
Prevent overlapping runs of the same job.

- InMemoryJobLock: single scheduler process
- DatabaseJobLock: several scheduler processes sharing the
  engine database; leases expire so a crashed holder cannot
  block a job forever

============================================================
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import ClockFactory, ClockProtocol, ensure_utc
from core.exceptions import PersistenceError
from database.engine import session_scope

from .models import JobLease


logger = logging.getLogger(__name__)


class JobLock(Protocol):
    async def acquire(self, job_name: str, holder: str, ttl: timedelta) -> bool: ...
    
    async def release(self, job_name: str, holder: str) -> None: ...
    
    async def current_holder(self, job_name: str) -> Optional[str]: ...


class InMemoryJobLock:
    """Process-local lease table guarded by an asyncio lock."""
    
    def __init__(self, clock: Optional[ClockProtocol] = None):
        self._clock = clock or ClockFactory.get_clock()
        self._leases: Dict[str, Tuple[str, datetime]] = {}
        self._guard = asyncio.Lock()
    
    async def acquire(self, job_name: str, holder: str, ttl: timedelta) -> bool:
        async with self._guard:
            now = self._clock.now()
            lease = self._leases.get(job_name)
            if lease is not None and lease[1] > now and lease[0] != holder:
                return False
            self._leases[job_name] = (holder, now + ttl)
            return True
    
    async def release(self, job_name: str, holder: str) -> None:
        async with self._guard:
            lease = self._leases.get(job_name)
            if lease is not None and lease[0] == holder:
                del self._leases[job_name]
    
    async def current_holder(self, job_name: str) -> Optional[str]:
        lease = self._leases.get(job_name)
        if lease is None or lease[1] <= self._clock.now():
            return None
        return lease[0]


class DatabaseJobLock:
    """Lease rows in job_locks; an expired lease can be taken over."""
    
    def __init__(self, session_factory: async_sessionmaker, clock: Optional[ClockProtocol] = None):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
    
    async def acquire(self, job_name: str, holder: str, ttl: timedelta) -> bool:
        now = self._clock.now()
        try:
            async with session_scope(self._session_factory, "acquire_job_lock") as session:
                lease = await session.get(JobLease, job_name, with_for_update=True)
                if lease is None:
                    session.add(JobLease(
                        job_name=job_name,
                        holder=holder,
                        acquired_at=now,
                        expires_at=now + ttl,
                    ))
                    return True
                if lease.holder != holder and ensure_utc(lease.expires_at) > now:
                    return False
                if lease.holder != holder:
                    logger.warning(f"Taking over expired lease on {job_name} from {lease.holder}")
                lease.holder = holder
                lease.acquired_at = now
                lease.expires_at = now + ttl
                return True
        except PersistenceError as e:
            # A concurrent insert of the same job name lost the race
            if isinstance(e.cause, IntegrityError):
                return False
            raise
    
    async def release(self, job_name: str, holder: str) -> None:
        async with session_scope(self._session_factory, "release_job_lock") as session:
            lease = await session.get(JobLease, job_name)
            if lease is not None and lease.holder == holder:
                await session.delete(lease)
    
    async def current_holder(self, job_name: str) -> Optional[str]:
        async with session_scope(self._session_factory, "read_job_lock") as session:
            lease = await session.get(JobLease, job_name)
            if lease is None or ensure_utc(lease.expires_at) <= self._clock.now():
                return None
            return lease.holder


__all__ = ["JobLock", "InMemoryJobLock", "DatabaseJobLock"]
