"""
Farming Detection - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for coordinated multi-account farming detection.

- Signal: one piece of evidence from one collector (immutable)
- Cluster: candidate set of accounts with aggregate confidence
- FarmingCase: investigation opened for a high-confidence cluster
- Result types for collector runs, scans and escalation

============================================================
LIFECYCLE
============================================================
Signals are immutable once emitted. Clusters are produced by
collectors, replaced by merged clusters in the merger and
promoted (suspected -> confirmed) by the escalator. Cases are
created once per cluster identity and afterwards mutated only
by investigators.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from core.identifiers import case_id_for, cluster_id_for
from core.types import SeverityTier


# ============================================================
# ENUMS
# ============================================================


class SignalType(str, Enum):
    """The correlation heuristics."""
    
    IP_CORRELATION = "ip_correlation"
    DEVICE_CORRELATION = "device_correlation"
    BEHAVIORAL_SIMILARITY = "behavioral_similarity"
    MESSAGE_SCRIPT = "message_script"
    REFERRAL_LOOP = "referral_loop"
    SYNCHRONIZED_ACTIVITY = "synchronized_activity"
    TOKEN_LAUNDERING = "token_laundering"


class ClusterStatus(str, Enum):
    SUSPECTED = "suspected"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class CaseStatus(str, Enum):
    """
    Investigation status of a farming case.
    
    DETECTED is set by the escalator; every other transition is
    made by investigators.
    """
    
    DETECTED = "detected"
    INVESTIGATING = "investigating"
    CONFIRMED = "confirmed"
    FALSE_POSITIVE = "false_positive"
    RESOLVED = "resolved"
    APPEALED = "appealed"
    
    @property
    def is_open(self) -> bool:
        return self in (CaseStatus.DETECTED, CaseStatus.INVESTIGATING, CaseStatus.APPEALED)


class CaseType(str, Enum):
    """What kind of coordination the case evidences."""
    
    MULTI_ACCOUNT = "multi_account"
    REFERRAL_RING = "referral_ring"
    COORDINATED_BEHAVIOR = "coordinated_behavior"
    TOKEN_LAUNDERING = "token_laundering"
    
    @classmethod
    def from_signal_type(cls, signal_type: SignalType) -> "CaseType":
        if signal_type in (SignalType.IP_CORRELATION, SignalType.DEVICE_CORRELATION):
            return cls.MULTI_ACCOUNT
        if signal_type == SignalType.REFERRAL_LOOP:
            return cls.REFERRAL_RING
        if signal_type == SignalType.TOKEN_LAUNDERING:
            return cls.TOKEN_LAUNDERING
        return cls.COORDINATED_BEHAVIOR


# ============================================================
# SIGNAL
# ============================================================


@dataclass(frozen=True)
class Signal:
    """One immutable piece of evidence."""
    type: SignalType
    strength: float
    evidence: Dict[str, Any] = field(default_factory=dict, hash=False)
    description: str = ""
    
    def __post_init__(self) -> None:
        if not 0.0 <= self.strength <= 1.0:
            raise ValueError(f"Signal strength must be in [0, 1], got {self.strength}")
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "strength": self.strength,
            "evidence": self.evidence,
            "description": self.description,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Signal":
        return cls(
            type=SignalType(data["type"]),
            strength=float(data["strength"]),
            evidence=dict(data.get("evidence") or {}),
            description=str(data.get("description") or ""),
        )


# ============================================================
# CLUSTER
# ============================================================


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class Cluster:
    """
    Candidate set of accounts suspected of coordination.
    
    Invariants:
    - account_ids is non-empty (a frozenset, so unique)
    - confidence is within [0, 1]
    """
    cluster_id: str
    account_ids: FrozenSet[str]
    signals: Tuple[Signal, ...]
    confidence: float
    status: ClusterStatus = ClusterStatus.SUSPECTED
    investigation_id: Optional[str] = None
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    merged_from: Tuple[str, ...] = ()
    
    def __post_init__(self) -> None:
        if not self.account_ids:
            raise ValueError("Cluster must contain at least one account")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Cluster confidence must be in [0, 1], got {self.confidence}")
    
    @classmethod
    def create(
        cls,
        account_ids: Iterable[str],
        signals: Iterable[Signal],
        confidence: float,
        detected_at: Optional[datetime] = None,
        status: ClusterStatus = ClusterStatus.SUSPECTED,
        merged_from: Iterable[str] = (),
    ) -> "Cluster":
        """Build a cluster whose id is derived from its account set."""
        accounts = frozenset(a for a in account_ids if a)
        return cls(
            cluster_id=cluster_id_for(accounts),
            account_ids=accounts,
            signals=tuple(signals),
            confidence=clamp_confidence(confidence),
            status=status,
            detected_at=detected_at or datetime.now(timezone.utc),
            merged_from=tuple(merged_from),
        )
    
    @property
    def size(self) -> int:
        return len(self.account_ids)
    
    @property
    def signal_types(self) -> List[SignalType]:
        seen: List[SignalType] = []
        for signal in self.signals:
            if signal.type not in seen:
                seen.append(signal.type)
        return seen
    
    @property
    def strongest_signal(self) -> Optional[Signal]:
        if not self.signals:
            return None
        return max(self.signals, key=lambda s: s.strength)
    
    def shares_account_with(self, other: "Cluster") -> bool:
        return not self.account_ids.isdisjoint(other.account_ids)
    
    def promote(self, investigation_id: str) -> "Cluster":
        """Confirmed copy of this cluster linked to a case."""
        return replace(self, status=ClusterStatus.CONFIRMED, investigation_id=investigation_id)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_id": self.cluster_id,
            "account_ids": sorted(self.account_ids),
            "signals": [s.to_dict() for s in self.signals],
            "confidence": self.confidence,
            "status": self.status.value,
            "investigation_id": self.investigation_id,
            "detected_at": self.detected_at.isoformat(),
            "merged_from": list(self.merged_from),
        }


# ============================================================
# FARMING CASE
# ============================================================


@dataclass(frozen=True)
class FarmingCase:
    """Investigation opened for a high-confidence cluster."""
    case_id: str
    type: CaseType
    status: CaseStatus
    severity: SeverityTier
    involved_user_ids: FrozenSet[str]
    evidence: Tuple[Dict[str, Any], ...]
    confidence: float
    cluster_id: str
    created_at: datetime
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    
    @classmethod
    def from_cluster(
        cls,
        cluster: Cluster,
        severity: SeverityTier,
        created_at: datetime,
    ) -> "FarmingCase":
        strongest = cluster.strongest_signal
        case_type = (
            CaseType.from_signal_type(strongest.type)
            if strongest is not None else CaseType.COORDINATED_BEHAVIOR
        )
        return cls(
            case_id=case_id_for(cluster.account_ids),
            type=case_type,
            status=CaseStatus.DETECTED,
            severity=severity,
            involved_user_ids=cluster.account_ids,
            evidence=tuple(s.to_dict() for s in cluster.signals),
            confidence=cluster.confidence,
            cluster_id=cluster.cluster_id,
            created_at=created_at,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "case_id": self.case_id,
            "type": self.type.value,
            "status": self.status.value,
            "severity": self.severity.value,
            "involved_user_ids": sorted(self.involved_user_ids),
            "evidence": list(self.evidence),
            "confidence": self.confidence,
            "cluster_id": self.cluster_id,
            "created_at": self.created_at.isoformat(),
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


# ============================================================
# RESULT TYPES
# ============================================================


@dataclass
class CollectorResult:
    """Outcome of one collector run; errors are captured, not raised."""
    collector_name: str
    clusters: List[Cluster] = field(default_factory=list)
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    
    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class EscalationResult:
    """What the escalator did with a batch of clusters."""
    persisted_cluster_ids: List[str] = field(default_factory=list)
    created_case_ids: List[str] = field(default_factory=list)
    created_cases: List[FarmingCase] = field(default_factory=list)
    existing_case_ids: List[str] = field(default_factory=list)
    rescored_user_ids: List[str] = field(default_factory=list)
    review_decisions: int = 0
    errors: List[str] = field(default_factory=list)
    
    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class ScanResult:
    """Outcome of one full farming scan over a working set."""
    scanned_accounts: int = 0
    collector_results: List[CollectorResult] = field(default_factory=list)
    candidate_clusters: int = 0
    merged_clusters: List[Cluster] = field(default_factory=list)
    escalation: EscalationResult = field(default_factory=EscalationResult)
    
    @property
    def failed_collectors(self) -> List[str]:
        return [r.collector_name for r in self.collector_results if not r.succeeded]
    
    @property
    def success(self) -> bool:
        return not self.failed_collectors and self.escalation.success
    
    def absorb(self, other: "ScanResult") -> None:
        """Accumulate a per-batch result into a job-level total."""
        self.scanned_accounts += other.scanned_accounts
        self.collector_results.extend(other.collector_results)
        self.candidate_clusters += other.candidate_clusters
        self.merged_clusters.extend(other.merged_clusters)
        self.escalation.persisted_cluster_ids.extend(other.escalation.persisted_cluster_ids)
        self.escalation.created_case_ids.extend(other.escalation.created_case_ids)
        self.escalation.created_cases.extend(other.escalation.created_cases)
        self.escalation.existing_case_ids.extend(other.escalation.existing_case_ids)
        self.escalation.rescored_user_ids.extend(other.escalation.rescored_user_ids)
        self.escalation.review_decisions += other.escalation.review_decisions
        self.escalation.errors.extend(other.escalation.errors)


__all__ = [
    "SignalType",
    "ClusterStatus",
    "CaseStatus",
    "CaseType",
    "Signal",
    "clamp_confidence",
    "Cluster",
    "FarmingCase",
    "CollectorResult",
    "EscalationResult",
    "ScanResult",
]
