"""
Farming Detection - Repository.

============================================================
PURPOSE
============================================================
Repository for cluster and case persistence.

Provides clean interface for:
- Upserting clusters by content-addressed id
- Creating cases idempotently
- Investigator status transitions
- Account-centric case lookups
- Retention cleanup of dismissed clusters

============================================================
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import FarmingCaseMember, FarmingCaseRecord, FarmingClusterRecord
from .types import CaseStatus, Cluster, ClusterStatus, FarmingCase


# Status precedence for cluster upserts; higher never reverts to lower.
_CLUSTER_STATUS_RANK = {
    ClusterStatus.SUSPECTED.value: 0,
    ClusterStatus.CONFIRMED.value: 1,
    ClusterStatus.DISMISSED.value: 2,
}


class FarmingRepository:
    """
    Repository for farming detection persistence operations.
    
    ============================================================
    METHODS
    ============================================================
    - upsert_cluster: Insert or refresh a cluster
    - create_case_if_absent: Idempotent case creation
    - update_case_status: Investigator transition
    - set_cluster_status: Dismiss / confirm a cluster
    - get_cluster / get_case: Lookup by id
    - list_cases_for_account: Cases involving an account
    - delete_dismissed_clusters_before: Retention cleanup
    
    ============================================================
    """
    
    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.
        
        Args:
            session: SQLAlchemy async session
        """
        self._session = session
    
    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------
    
    async def upsert_cluster(self, cluster: Cluster, at: Optional[datetime] = None) -> FarmingClusterRecord:
        """
        Insert a cluster or refresh the existing row with the same id.
        
        Confidence, signals and last-seen time are replaced; status
        is only promoted.
        """
        now = at or datetime.now(timezone.utc)
        record = await self._session.get(FarmingClusterRecord, cluster.cluster_id)
        
        if record is None:
            record = FarmingClusterRecord(
                cluster_id=cluster.cluster_id,
                account_ids=sorted(cluster.account_ids),
                account_count=cluster.size,
                signals=[s.to_dict() for s in cluster.signals],
                confidence=cluster.confidence,
                status=cluster.status.value,
                investigation_id=cluster.investigation_id,
                merged_from=list(cluster.merged_from),
                first_detected_at=cluster.detected_at,
                last_detected_at=cluster.detected_at,
                updated_at=now,
            )
            self._session.add(record)
        else:
            record.signals = [s.to_dict() for s in cluster.signals]
            record.confidence = cluster.confidence
            record.merged_from = list(cluster.merged_from)
            record.last_detected_at = cluster.detected_at
            record.updated_at = now
            if _CLUSTER_STATUS_RANK[cluster.status.value] > _CLUSTER_STATUS_RANK.get(record.status, 0):
                record.status = cluster.status.value
            if cluster.investigation_id and not record.investigation_id:
                record.investigation_id = cluster.investigation_id
        
        await self._session.flush()
        return record
    
    async def create_case_if_absent(
        self,
        case: FarmingCase,
    ) -> Tuple[FarmingCaseRecord, bool]:
        """
        Create the case unless one with the same id exists.
        
        Returns:
            (record, created)
        """
        existing = await self._session.get(FarmingCaseRecord, case.case_id)
        if existing is not None:
            return existing, False
        
        record = FarmingCaseRecord(
            case_id=case.case_id,
            case_type=case.type.value,
            status=case.status.value,
            severity=case.severity.value,
            involved_user_ids=sorted(case.involved_user_ids),
            evidence=list(case.evidence),
            confidence=case.confidence,
            cluster_id=case.cluster_id,
            created_at=case.created_at,
            updated_at=case.created_at,
        )
        self._session.add(record)
        await self._session.flush()
        for account_id in sorted(case.involved_user_ids):
            self._session.add(FarmingCaseMember(case_id=case.case_id, account_id=account_id))
        
        await self._session.flush()
        return record, True
    
    async def update_case_status(
        self,
        case_id: str,
        status: CaseStatus,
        resolution: Optional[str] = None,
        resolved_by: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Optional[FarmingCaseRecord]:
        record = await self._session.get(FarmingCaseRecord, case_id)
        if record is None:
            return None
        
        at = at or datetime.now(timezone.utc)
        record.status = status.value
        record.updated_at = at
        if resolution is not None:
            record.resolution = resolution
        if not status.is_open:
            record.resolved_by = resolved_by
            record.resolved_at = at
        
        await self._session.flush()
        return record
    
    async def set_cluster_status(
        self,
        cluster_id: str,
        status: ClusterStatus,
        at: Optional[datetime] = None,
    ) -> Optional[FarmingClusterRecord]:
        """Explicit status change (investigator action); may move backwards."""
        record = await self._session.get(FarmingClusterRecord, cluster_id)
        if record is None:
            return None
        record.status = status.value
        record.updated_at = at or datetime.now(timezone.utc)
        await self._session.flush()
        return record
    
    async def delete_dismissed_clusters_before(self, cutoff: datetime, limit: int = 500) -> int:
        """Delete up to `limit` dismissed clusters last updated before `cutoff`."""
        stmt = (
            select(FarmingClusterRecord.cluster_id)
            .where(
                FarmingClusterRecord.status == ClusterStatus.DISMISSED.value,
                FarmingClusterRecord.updated_at < cutoff,
            )
            .limit(limit)
        )
        ids = list((await self._session.execute(stmt)).scalars().all())
        if ids:
            await self._session.execute(
                delete(FarmingClusterRecord).where(FarmingClusterRecord.cluster_id.in_(ids))
            )
        return len(ids)
    
    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------
    
    async def get_cluster(self, cluster_id: str) -> Optional[FarmingClusterRecord]:
        return await self._session.get(FarmingClusterRecord, cluster_id)
    
    async def get_case(self, case_id: str) -> Optional[FarmingCaseRecord]:
        return await self._session.get(FarmingCaseRecord, case_id)
    
    async def list_cases_for_account(
        self,
        account_id: str,
        open_only: bool = False,
    ) -> List[FarmingCaseRecord]:
        stmt = (
            select(FarmingCaseRecord)
            .join(FarmingCaseMember, FarmingCaseMember.case_id == FarmingCaseRecord.case_id)
            .where(FarmingCaseMember.account_id == account_id)
            .order_by(FarmingCaseRecord.created_at)
        )
        records = list((await self._session.execute(stmt)).scalars().all())
        if open_only:
            records = [r for r in records if CaseStatus(r.status).is_open]
        return records
    
    async def list_clusters_by_status(
        self,
        status: ClusterStatus,
        limit: int = 100,
    ) -> List[FarmingClusterRecord]:
        stmt = (
            select(FarmingClusterRecord)
            .where(FarmingClusterRecord.status == status.value)
            .order_by(FarmingClusterRecord.updated_at.desc())
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())


__all__ = ["FarmingRepository"]
