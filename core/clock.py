"""
Core Module - Engine Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for detection windows, retention cutoffs,
lease expiry and alert throttling.

- Collectors, rules and jobs read time from an injected clock
- Rolling windows end at clock.now()
- Tests drive window boundaries with MockClock.advance()

============================================================
RULES
============================================================
- Every datetime leaving this module is timezone-aware UTC
- Naive datetimes (SQLite round-trips) are read as UTC

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Source of the current UTC time."""
    
    @abstractmethod
    def now(self) -> datetime:
        pass
    
    @abstractmethod
    def timestamp(self) -> float:
        pass
    
    def since(self, window: timedelta) -> datetime:
        """Start of the rolling window of length `window` ending now."""
        return self.now() - window


class SystemClock(ClockProtocol):
    """Wall-clock time, used by every production component."""
    
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
    
    def timestamp(self) -> float:
        return time.time()


class MockClock(ClockProtocol):
    """
    Manually driven clock.
    
    Time only moves through set_time() and advance(), so a test
    can place records just inside or just outside a window.
    """
    
    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()
    
    def now(self) -> datetime:
        with self._lock:
            return self._time
    
    def timestamp(self) -> float:
        return self.now().timestamp()
    
    def set_time(self, new_time: datetime) -> None:
        with self._lock:
            self._time = ensure_utc(new_time)
    
    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Move time forward.
        
        Args:
            seconds: Seconds to advance
            **kwargs: Any other timedelta unit (minutes, hours, days)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# PROCESS-WIDE CLOCK
# ============================================================

class ClockFactory:
    """
    Holds the clock used by components built without one.
    
    The engine container always injects its clock explicitly;
    this fallback keeps standalone components usable.
    """
    
    _instance: Optional[ClockProtocol] = None
    _lock = threading.Lock()
    
    @classmethod
    def get_clock(cls) -> ClockProtocol:
        with cls._lock:
            if cls._instance is None:
                cls._instance = SystemClock()
            return cls._instance


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (sqlite returns them naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "ensure_utc",
]
