"""
Farming Detection - Cluster Merger.

============================================================
PURPOSE
============================================================
Folds candidate clusters that share accounts into one cluster:
union of accounts, concatenation of signals, arithmetic mean of
confidences. A merged cluster is CONFIRMED when the mean
confidence exceeds the confirm threshold, else SUSPECTED.

============================================================
STRATEGIES
============================================================
SINGLE_PASS
    For each unprocessed cluster in list order, group it with
    every unprocessed cluster sharing at least one account with
    it. Grouping is not transitive: X-Y and Y-Z overlapping
    while X-Z do not may or may not end in one group depending
    on order.

UNION_FIND
    Connected components of the cluster/account graph (networkx).
    Order independent; X, Y and Z above always end in one group.

============================================================
"""

import logging
from typing import List, Optional, Sequence

import networkx as nx

from .config import MergeConfig, MergeStrategy
from .types import Cluster, ClusterStatus


logger = logging.getLogger(__name__)


class ClusterMerger:
    """Merges candidate clusters according to the configured strategy."""
    
    def __init__(self, config: Optional[MergeConfig] = None):
        self.config = config or MergeConfig()
    
    def merge(self, clusters: Sequence[Cluster]) -> List[Cluster]:
        if self.config.strategy == MergeStrategy.UNION_FIND:
            groups = self._component_groups(clusters)
        else:
            groups = self._single_pass_groups(clusters)
        
        merged = [self._merge_group(group) for group in groups]
        if len(merged) != len(clusters):
            logger.info(
                f"Merged {len(clusters)} candidate clusters into {len(merged)} "
                f"({self.config.strategy.value})"
            )
        return merged
    
    # --------------------------------------------------------
    # GROUPING
    # --------------------------------------------------------
    
    def _single_pass_groups(self, clusters: Sequence[Cluster]) -> List[List[Cluster]]:
        processed = [False] * len(clusters)
        groups: List[List[Cluster]] = []
        
        for i, cluster in enumerate(clusters):
            if processed[i]:
                continue
            related = [
                j for j in range(i, len(clusters))
                if not processed[j] and cluster.shares_account_with(clusters[j])
            ]
            for j in related:
                processed[j] = True
            groups.append([clusters[j] for j in related])
        
        return groups
    
    def _component_groups(self, clusters: Sequence[Cluster]) -> List[List[Cluster]]:
        graph = nx.Graph()
        for index, cluster in enumerate(clusters):
            graph.add_node(("cluster", index))
            for account_id in cluster.account_ids:
                graph.add_edge(("cluster", index), ("account", account_id))
        
        groups = []
        for component in nx.connected_components(graph):
            members = sorted(index for kind, index in component if kind == "cluster")
            groups.append(members)
        groups.sort(key=lambda members: members[0])
        return [[clusters[index] for index in members] for members in groups]
    
    # --------------------------------------------------------
    # MERGING
    # --------------------------------------------------------
    
    def _merge_group(self, group: List[Cluster]) -> Cluster:
        if len(group) == 1:
            return group[0]
        
        accounts = set()
        signals = []
        for cluster in group:
            accounts |= cluster.account_ids
            signals.extend(cluster.signals)
        
        confidence = round(sum(c.confidence for c in group) / len(group), 4)
        status = (
            ClusterStatus.CONFIRMED
            if confidence > self.config.confirm_threshold
            else ClusterStatus.SUSPECTED
        )
        return Cluster.create(
            accounts,
            signals,
            confidence,
            detected_at=max(c.detected_at for c in group),
            status=status,
            merged_from=[c.cluster_id for c in group],
        )


def merge_clusters(
    clusters: Sequence[Cluster],
    config: Optional[MergeConfig] = None,
) -> List[Cluster]:
    """Convenience wrapper around ClusterMerger.merge."""
    return ClusterMerger(config).merge(clusters)


__all__ = ["ClusterMerger", "merge_clusters"]
