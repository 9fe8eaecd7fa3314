"""
Farming Detection - Base Collector.

============================================================
PURPOSE
============================================================
Abstract base class for all signal collectors.

Each collector:
1. Fetches what it needs for a working set of account ids
   from read-only upstream repositories
2. Hands the records to a pure detection function
3. Returns zero or more candidate Clusters

Collectors are fail-safe: `run` never raises for bad or
missing data. The one exception is DataSourceUnavailableError
(total datastore outage), which propagates so the enclosing job
fails visibly.

============================================================
"""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Iterator, List, Optional, Sequence, Tuple

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import DataSourceUnavailableError

from ..types import Cluster, CollectorResult, SignalType


logger = logging.getLogger(__name__)


class BaseCollector(ABC):
    """Abstract base class for signal collectors."""
    
    name: str = "collector"
    signal_type: SignalType
    
    def __init__(self, clock: Optional[ClockProtocol] = None):
        self._clock = clock or ClockFactory.get_clock()
    
    @abstractmethod
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        """
        Internal collection logic.
        
        Subclasses implement this method.
        """
        pass
    
    async def collect(self, account_ids: Sequence[str]) -> List[Cluster]:
        """Clusters for the working set; empty on any failure."""
        result = await self.run(account_ids)
        return result.clusters
    
    async def run(self, account_ids: Sequence[str]) -> CollectorResult:
        """
        Execute the collector with exception capture.
        
        Returns:
            CollectorResult (never throws, except on datastore outage)
        """
        start_time = time.perf_counter()
        working_set = sorted({a for a in account_ids if a})
        
        if not working_set:
            return CollectorResult(collector_name=self.name)
        
        try:
            clusters = await self._collect(working_set, self._clock.now())
        except DataSourceUnavailableError:
            raise
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(f"Collector {self.name} failed on {len(working_set)} accounts: {e}", exc_info=True)
            return CollectorResult(
                collector_name=self.name,
                error=f"{type(e).__name__}: {e}",
                elapsed_ms=elapsed_ms,
            )
        
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        if clusters:
            logger.info(
                f"Collector {self.name}: {len(clusters)} clusters from "
                f"{len(working_set)} accounts in {elapsed_ms:.0f}ms"
            )
        return CollectorResult(collector_name=self.name, clusters=clusters, elapsed_ms=elapsed_ms)
    
    def _since(self, now: datetime, lookback_days: int) -> datetime:
        return now - timedelta(days=lookback_days)


# ============================================================
# HELPER FUNCTIONS
# ============================================================


def iter_pairs(account_ids: Sequence[str]) -> Iterator[Tuple[str, str]]:
    """Unordered pairs in deterministic (sorted) order."""
    return itertools.combinations(sorted(set(account_ids)), 2)


def jaccard(left: set, right: set) -> float:
    """Set overlap ratio |A & B| / |A | B|; 0.0 when either side is empty."""
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


__all__ = ["BaseCollector", "iter_pairs", "jaccard"]
