"""
Tests for the Cluster Merger.
"""

from datetime import datetime, timedelta, timezone

import pytest

from farming_detection.config import MergeConfig, MergeStrategy
from farming_detection.merger import ClusterMerger, merge_clusters
from farming_detection.types import Cluster, ClusterStatus, Signal, SignalType


NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _cluster(accounts, confidence, signal_type=SignalType.IP_CORRELATION, at=NOW):
    signal = Signal(type=signal_type, strength=confidence)
    return Cluster.create(accounts, [signal], confidence, detected_at=at)


class TestClusterMerger:
    """Overlapping clusters are merged into one."""
    
    def test_disjoint_clusters_pass_through(self):
        x = _cluster(["a", "b"], 0.8)
        y = _cluster(["c", "d"], 0.9)
        merged = ClusterMerger().merge([x, y])
        assert merged == [x, y]
    
    def test_union_of_accounts_and_mean_confidence(self):
        x = _cluster(["a", "b"], 0.8, at=NOW)
        y = _cluster(["b", "c"], 0.9, SignalType.DEVICE_CORRELATION, at=NOW + timedelta(hours=1))
        
        merged = ClusterMerger().merge([x, y])
        
        assert len(merged) == 1
        cluster = merged[0]
        assert cluster.account_ids == frozenset({"a", "b", "c"})
        assert cluster.confidence == 0.85
        assert cluster.status == ClusterStatus.SUSPECTED
        assert cluster.detected_at == NOW + timedelta(hours=1)
        assert cluster.merged_from == (x.cluster_id, y.cluster_id)
        assert cluster.signal_types == [SignalType.IP_CORRELATION, SignalType.DEVICE_CORRELATION]
    
    def test_confirmed_above_threshold(self):
        x = _cluster(["a", "b"], 0.9)
        y = _cluster(["b", "c"], 0.95)
        merged = ClusterMerger(MergeConfig(confirm_threshold=0.85)).merge([x, y])
        assert merged[0].status == ClusterStatus.CONFIRMED
    
    def test_single_pass_is_not_transitive(self):
        x = _cluster(["a", "b"], 0.8)
        y = _cluster(["c", "d"], 0.8)
        z = _cluster(["b", "c"], 0.8)
        
        merged = ClusterMerger(MergeConfig(strategy=MergeStrategy.SINGLE_PASS)).merge([x, y, z])
        
        assert sorted(len(c.account_ids) for c in merged) == [2, 3]
        assert merged[0].account_ids == frozenset({"a", "b", "c"})
        assert merged[1].account_ids == frozenset({"c", "d"})
    
    def test_union_find_is_transitive(self):
        x = _cluster(["a", "b"], 0.8)
        y = _cluster(["c", "d"], 0.8)
        z = _cluster(["b", "c"], 0.8)
        
        merged = ClusterMerger(MergeConfig(strategy=MergeStrategy.UNION_FIND)).merge([x, y, z])
        
        assert len(merged) == 1
        assert merged[0].account_ids == frozenset({"a", "b", "c", "d"})
    
    def test_union_find_order_independent(self):
        clusters = [_cluster(["a", "b"], 0.8), _cluster(["c", "d"], 0.8), _cluster(["b", "c"], 0.8)]
        config = MergeConfig(strategy=MergeStrategy.UNION_FIND)
        
        forward = merge_clusters(clusters, config)
        backward = merge_clusters(list(reversed(clusters)), config)
        
        assert [c.account_ids for c in forward] == [c.account_ids for c in backward]
    
    def test_merged_id_derived_from_accounts(self):
        merged = merge_clusters([_cluster(["a", "b"], 0.8), _cluster(["b", "c"], 0.8)])
        assert merged[0].cluster_id == Cluster.create(["c", "b", "a"], [], 0.5).cluster_id
    
    def test_empty_input(self):
        assert ClusterMerger().merge([]) == []


class TestClusterValidation:
    
    def test_empty_cluster_rejected(self):
        with pytest.raises(ValueError):
            Cluster.create([], [], 0.5)
    
    def test_signal_strength_bounds(self):
        with pytest.raises(ValueError):
            Signal(type=SignalType.IP_CORRELATION, strength=1.5)
