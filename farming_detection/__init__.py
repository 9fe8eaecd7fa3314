"""
Farming Detection Package - Coordinated Account Clustering.

============================================================
PURPOSE
============================================================
Finds groups of accounts controlled by one operator (farms,
referral rings, scripted sock puppets) and escalates confident
groups into investigation cases.

Pipeline:
    collectors -> merger -> escalator

- collectors: seven independent signal sources, each emitting
  candidate clusters with a confidence in [0, 1]
- merger: folds overlapping clusters into one
- escalator: persists clusters, opens cases, triggers trust
  recompute and manual review

============================================================
"""

from .types import (
    SignalType,
    ClusterStatus,
    CaseStatus,
    CaseType,
    Signal,
    Cluster,
    FarmingCase,
    CollectorResult,
    EscalationResult,
    ScanResult,
)
from .config import (
    FarmingDetectionConfig,
    MergeStrategy,
    load_config_from_dict,
)
from .collectors import create_default_collectors
from .merger import ClusterMerger, merge_clusters
from .escalator import CaseEscalator, case_severity
from .engine import FarmingScanEngine
from .cases import CaseNotFoundError, FarmingCaseService, FarmingRiskScore


__all__ = [
    # Types
    "SignalType",
    "ClusterStatus",
    "CaseStatus",
    "CaseType",
    "Signal",
    "Cluster",
    "FarmingCase",
    "CollectorResult",
    "EscalationResult",
    "ScanResult",
    # Config
    "FarmingDetectionConfig",
    "MergeStrategy",
    "load_config_from_dict",
    # Pipeline
    "create_default_collectors",
    "ClusterMerger",
    "merge_clusters",
    "CaseEscalator",
    "case_severity",
    "FarmingScanEngine",
    # Case management
    "CaseNotFoundError",
    "FarmingCaseService",
    "FarmingRiskScore",
]

__version__ = "1.0.0"
