"""
Farming Detection - Referral Loop Collector.

Builds the directed account -> referrer graph and reports every
cycle. A cycle means a ring of accounts that referred each other
to harvest referral rewards.

Referrers outside the working set are resolved with extra
account lookups (bounded by `max_resolution_rounds`), so a ring
that straddles a batch boundary is still closed.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

import networkx as nx

from core.clock import ClockProtocol
from data_sources.base import AccountReader

from ..config import ReferralLoopConfig
from ..types import Cluster, Signal, SignalType
from .base import BaseCollector


logger = logging.getLogger(__name__)


def referral_graph(referrers: Dict[str, Optional[str]]) -> nx.DiGraph:
    """Directed graph with an edge from each account to its referrer."""
    graph = nx.DiGraph()
    graph.add_nodes_from(referrers)
    graph.add_edges_from(
        (account_id, referrer)
        for account_id, referrer in referrers.items()
        if referrer
    )
    return graph


def find_referral_cycles(referrers: Dict[str, Optional[str]]) -> List[List[str]]:
    """
    Cycles in the account -> referrer graph.
    
    Each account has at most one referrer, so every simple cycle
    is a ring reached by walking referrer links. A self-referral
    is a cycle of one account.
    
    Args:
        referrers: account id -> referrer id (or None)
        
    Returns:
        Cycles in referrer order, each starting at its smallest
        account id, sorted by that id
    """
    cycles = []
    for cycle in nx.simple_cycles(referral_graph(referrers)):
        start = cycle.index(min(cycle))
        cycles.append(cycle[start:] + cycle[:start])
    return sorted(cycles)


def detect_referral_loops(
    referrers: Dict[str, Optional[str]],
    config: ReferralLoopConfig,
    detected_at: datetime,
) -> List[Cluster]:
    clusters = []
    for cycle in find_referral_cycles(referrers):
        confidence = config.confidence.at(len(cycle))
        signal = Signal(
            type=SignalType.REFERRAL_LOOP,
            strength=confidence,
            evidence={"cycle": cycle, "cycle_length": len(cycle)},
            description=f"Referral cycle of {len(cycle)} accounts",
        )
        clusters.append(Cluster.create(cycle, [signal], confidence, detected_at=detected_at))
    return clusters


class ReferralLoopCollector(BaseCollector):
    name = "referral_loop"
    signal_type = SignalType.REFERRAL_LOOP
    
    def __init__(
        self,
        accounts: AccountReader,
        config: Optional[ReferralLoopConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._accounts = accounts
        self.config = config or ReferralLoopConfig()
    
    async def build_referrer_map(self, account_ids: List[str]) -> Dict[str, Optional[str]]:
        referrers: Dict[str, Optional[str]] = {}
        pending = list(account_ids)
        
        for _ in range(self.config.max_resolution_rounds + 1):
            if not pending:
                break
            records = await self._accounts.get_accounts(pending)
            for record in records:
                referrers[record.account_id] = record.referred_by
            for account_id in pending:
                referrers.setdefault(account_id, None)
            pending = sorted({
                referrer for referrer in referrers.values()
                if referrer and referrer not in referrers
            })
        
        return referrers
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        referrers = await self.build_referrer_map(account_ids)
        return detect_referral_loops(referrers, self.config, now)


__all__ = ["referral_graph", "find_referral_cycles", "detect_referral_loops", "ReferralLoopCollector"]
