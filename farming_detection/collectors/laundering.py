"""
Farming Detection - Token Laundering Collector.

Builds the directed payer -> creator graph of paid transactions
and looks for tokens that flow back to where they started. Each
group of cycles sharing accounts becomes one cluster.

Cycle enumeration is bounded by `max_cycle_length` and
`max_cycles`; self-payments are ignored.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

import networkx as nx

from core.clock import ClockProtocol
from data_sources.base import TransactionReader
from data_sources.models import TransactionRecord

from ..config import TokenLaunderingConfig
from ..types import Cluster, Signal, SignalType
from .base import BaseCollector


logger = logging.getLogger(__name__)


def transfer_graph(transfers: Iterable[TransactionRecord]) -> nx.DiGraph:
    """Payer -> creator edges carrying summed tokens and transaction counts."""
    graph = nx.DiGraph()
    for tx in transfers:
        if not tx.payer_id or not tx.creator_id or tx.payer_id == tx.creator_id:
            continue
        if graph.has_edge(tx.payer_id, tx.creator_id):
            edge = graph[tx.payer_id][tx.creator_id]
            edge["tokens"] += tx.tokens
            edge["transactions"] += 1
        else:
            graph.add_edge(tx.payer_id, tx.creator_id, tokens=tx.tokens, transactions=1)
    return graph


def find_token_cycles(graph: nx.DiGraph, max_length: int, max_cycles: int) -> List[List[str]]:
    """Simple cycles, each rotated to start at its smallest account id."""
    cycles = []
    for cycle in nx.simple_cycles(graph, length_bound=max_length):
        start = cycle.index(min(cycle))
        cycles.append(cycle[start:] + cycle[:start])
        if len(cycles) >= max_cycles:
            logger.warning(f"Token cycle enumeration stopped at {max_cycles} cycles")
            break
    return sorted(cycles)


def laundering_confidence(cycle_count: int, account_count: int, config: TokenLaunderingConfig) -> float:
    curve = config.confidence
    bonus = config.large_network_bonus if account_count > config.large_network_size else 0.0
    return round(min(curve.max_confidence, curve.at(cycle_count) + bonus), 4)


def detect_token_laundering(
    transfers: Iterable[TransactionRecord],
    config: TokenLaunderingConfig,
    detected_at: datetime,
) -> List[Cluster]:
    graph = transfer_graph(transfers)
    cycles = find_token_cycles(graph, config.max_cycle_length, config.max_cycles)
    if not cycles:
        return []
    
    networks = nx.Graph()
    for cycle in cycles:
        nx.add_path(networks, cycle + cycle[:1])
    
    clusters = []
    for accounts in sorted(nx.connected_components(networks), key=min):
        members = [c for c in cycles if c[0] in accounts]
        edges = {
            (cycle[i], cycle[(i + 1) % len(cycle)])
            for cycle in members
            for i in range(len(cycle))
        }
        volume = sum(graph[u][v]["tokens"] for u, v in edges)
        confidence = laundering_confidence(len(members), len(accounts), config)
        signal = Signal(
            type=SignalType.TOKEN_LAUNDERING,
            strength=confidence,
            evidence={
                "cycles": [" -> ".join(c) for c in members[:20]],
                "cycle_count": len(members),
                "total_tokens": volume,
            },
            description=f"{len(members)} token cycles across {len(accounts)} accounts",
        )
        clusters.append(Cluster.create(accounts, [signal], confidence, detected_at=detected_at))
    return clusters


class TokenLaunderingCollector(BaseCollector):
    name = "token_laundering"
    signal_type = SignalType.TOKEN_LAUNDERING
    
    def __init__(
        self,
        transactions: TransactionReader,
        config: Optional[TokenLaunderingConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._transactions = transactions
        self.config = config or TokenLaunderingConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        transfers = await self._transactions.list_token_transfers(
            account_ids, self._since(now, self.config.lookback_days)
        )
        return detect_token_laundering(transfers, self.config, now)


__all__ = [
    "transfer_graph",
    "find_token_cycles",
    "laundering_confidence",
    "detect_token_laundering",
    "TokenLaunderingCollector",
]
