"""
Farming Detection - Persistence Models.

============================================================
MODELS
============================================================
1. FarmingClusterRecord: latest state of a cluster identity
2. FarmingCaseRecord: investigation case, one per account set
3. FarmingCaseMember: case <-> account index for per-account lookups

Cluster and case ids are content-addressed from the sorted
account set, so re-running a scan upserts the same rows.

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import ensure_utc
from core.types import SeverityTier
from database.engine import Base

from .types import (
    CaseStatus,
    CaseType,
    Cluster,
    ClusterStatus,
    FarmingCase,
    Signal,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# CLUSTER MODEL
# ============================================================


class FarmingClusterRecord(Base):
    """
    Persisted cluster (confidence above the persist threshold).
    
    Status only moves forward: a SUSPECTED rescan never downgrades
    a CONFIRMED or DISMISSED row.
    """
    
    __tablename__ = "farming_clusters"
    
    cluster_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    
    account_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    account_count: Mapped[int] = mapped_column(Integer, nullable=False)
    signals: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ClusterStatus.SUSPECTED.value,
        comment="suspected, confirmed, dismissed",
    )
    investigation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    merged_from: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    
    first_detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    __table_args__ = (
        Index("ix_farming_clusters_status", "status"),
        Index("ix_farming_clusters_updated_at", "updated_at"),
    )
    
    def to_cluster(self) -> Cluster:
        return Cluster(
            cluster_id=self.cluster_id,
            account_ids=frozenset(self.account_ids),
            signals=tuple(Signal.from_dict(s) for s in self.signals or []),
            confidence=self.confidence,
            status=ClusterStatus(self.status),
            investigation_id=self.investigation_id,
            detected_at=ensure_utc(self.last_detected_at),
            merged_from=tuple(self.merged_from or []),
        )
    
    def __repr__(self) -> str:
        return (
            f"FarmingClusterRecord("
            f"id={self.cluster_id}, "
            f"accounts={self.account_count}, "
            f"confidence={self.confidence}, "
            f"status={self.status})"
        )


# ============================================================
# CASE MODELS
# ============================================================


class FarmingCaseRecord(Base):
    """Investigation case opened by the escalator."""
    
    __tablename__ = "farming_cases"
    
    case_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    case_type: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CaseStatus.DETECTED.value,
        comment="detected, investigating, confirmed, false_positive, resolved, appealed",
    )
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    
    involved_user_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    evidence: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    cluster_id: Mapped[str] = mapped_column(String(64), nullable=False)
    
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    __table_args__ = (
        Index("ix_farming_cases_status", "status"),
        Index("ix_farming_cases_severity", "severity"),
    )
    
    def to_case(self) -> FarmingCase:
        return FarmingCase(
            case_id=self.case_id,
            type=CaseType(self.case_type),
            status=CaseStatus(self.status),
            severity=SeverityTier.parse(self.severity, SeverityTier.HIGH),
            involved_user_ids=frozenset(self.involved_user_ids),
            evidence=tuple(self.evidence or []),
            confidence=self.confidence,
            cluster_id=self.cluster_id,
            created_at=ensure_utc(self.created_at),
            resolution=self.resolution,
            resolved_by=self.resolved_by,
            resolved_at=ensure_utc(self.resolved_at) if self.resolved_at else None,
        )
    
    def __repr__(self) -> str:
        return (
            f"FarmingCaseRecord("
            f"id={self.case_id}, "
            f"type={self.case_type}, "
            f"status={self.status}, "
            f"severity={self.severity})"
        )


class FarmingCaseMember(Base):
    """One row per (case, account) for account-centric queries."""
    
    __tablename__ = "farming_case_members"
    
    case_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("farming_cases.case_id", ondelete="CASCADE"),
        primary_key=True,
    )
    account_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    
    __table_args__ = (
        Index("ix_farming_case_members_account", "account_id"),
    )


__all__ = ["FarmingClusterRecord", "FarmingCaseRecord", "FarmingCaseMember"]
