"""
Farming Detection - Scan Engine.

============================================================
PURPOSE
============================================================
Runs the collector -> merger -> escalator pipeline over a
working set of accounts, and over a whole population page by
page.

============================================================
ERROR HANDLING
============================================================
- A failing collector is logged and recorded; the scan goes on
  with the remaining collectors (partial results are expected)
- DataSourceUnavailableError propagates out of the scan
- Each population page escalates and commits on its own, so an
  interrupted scan leaves every finished page applied

============================================================
USAGE
============================================================
    engine = FarmingScanEngine(
        collectors=create_default_collectors(repos, config),
        merger=ClusterMerger(config.merge),
        escalator=CaseEscalator(session_factory, config.escalation),
    )
    result = await engine.scan(["u1", "u2", "u3"])

============================================================
"""

import asyncio
import logging
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from .collectors.base import BaseCollector
from .escalator import CaseEscalator
from .merger import ClusterMerger
from .types import Cluster, ScanResult


logger = logging.getLogger(__name__)


class FarmingScanEngine:
    """Main orchestrator for farming detection."""
    
    def __init__(
        self,
        collectors: Sequence[BaseCollector],
        merger: ClusterMerger,
        escalator: CaseEscalator,
    ):
        self._collectors = list(collectors)
        self._merger = merger
        self._escalator = escalator
    
    @property
    def collector_names(self) -> List[str]:
        return [c.name for c in self._collectors]
    
    def _select(self, only: Optional[Iterable[str]]) -> List[BaseCollector]:
        if only is None:
            return self._collectors
        wanted = set(only)
        return [c for c in self._collectors if c.name in wanted]
    
    async def scan(
        self,
        account_ids: Sequence[str],
        only: Optional[Iterable[str]] = None,
    ) -> ScanResult:
        """
        Scan one working set.
        
        Args:
            account_ids: Working set (bounded by the caller)
            only: Restrict to these collector names
        """
        collectors = self._select(only)
        result = ScanResult(scanned_accounts=len(set(account_ids)))
        
        result.collector_results = list(
            await asyncio.gather(*(c.run(account_ids) for c in collectors))
        )
        
        candidates: List[Cluster] = [
            cluster for r in result.collector_results for cluster in r.clusters
        ]
        result.candidate_clusters = len(candidates)
        result.merged_clusters = self._merger.merge(candidates)
        result.escalation = await self._escalator.escalate(result.merged_clusters)
        
        if result.failed_collectors:
            logger.warning(f"Scan completed with failed collectors: {result.failed_collectors}")
        return result
    
    async def scan_population(
        self,
        pages: AsyncIterator[List[str]],
        only: Optional[Iterable[str]] = None,
    ) -> ScanResult:
        """Scan page by page; each page is escalated before the next is read."""
        total = ScanResult()
        page_count = 0
        only_list = list(only) if only is not None else None
        
        async for page in pages:
            page_count += 1
            total.absorb(await self.scan(page, only=only_list))
        
        logger.info(
            f"Population scan finished: pages={page_count} accounts={total.scanned_accounts} "
            f"candidates={total.candidate_clusters} "
            f"cases_created={len(total.escalation.created_case_ids)}"
        )
        return total


__all__ = ["FarmingScanEngine"]
