"""
Abuse Detection - Repository.

============================================================
PURPOSE
============================================================
Persistence for abuse signals:
- upsert_signal: insert, or refresh count / promote severity
- save_signal: upsert and return the signal as stored
- resolve_signal: close a signal (admin)
- delete_resolved_before: retention cleanup
- list_active_for_user: trust score input

============================================================
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.types import SeverityTier

from .models import AbuseSignalRecord
from .types import AbuseSignal, SignalStatus


class AbuseSignalRepository:
    """Repository for the abuse_signals table."""
    
    def __init__(self, session: AsyncSession):
        self._session = session
    
    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------
    
    async def upsert_signal(self, signal: AbuseSignal) -> Tuple[AbuseSignalRecord, bool]:
        """
        Insert or refresh a signal.
        
        Count and detection time follow the latest evaluation;
        severity is only ever raised within a window.
        
        Returns:
            (record, created)
        """
        now = datetime.now(timezone.utc)
        record = await self._session.get(AbuseSignalRecord, signal.signal_id)
        
        if record is None:
            record = AbuseSignalRecord(
                signal_id=signal.signal_id,
                signal_type=signal.signal_type.value,
                user_id=signal.user_id,
                severity=signal.severity.value,
                count=signal.count,
                threshold=signal.threshold,
                window_seconds=int(signal.window.total_seconds()),
                rule_version=signal.rule_version,
                trigger=signal.trigger,
                details=dict(signal.metadata),
                status=SignalStatus.ACTIVE.value,
                first_detected_at=signal.detected_at,
                detected_at=signal.detected_at,
                updated_at=now,
            )
            self._session.add(record)
            await self._session.flush()
            return record, True
        
        current = SeverityTier.parse(record.severity, SeverityTier.LOW)
        if signal.severity.rank > current.rank:
            record.severity = signal.severity.value
        record.count = max(record.count, signal.count)
        record.detected_at = signal.detected_at
        record.rule_version = signal.rule_version
        record.updated_at = now
        await self._session.flush()
        return record, False
    
    async def save_signal(self, signal: AbuseSignal) -> AbuseSignal:
        """
        Upsert `signal` and return it as stored.
        
        A re-evaluation below the stored severity comes back with
        the stored (promoted) severity and the highest count seen.
        """
        record, _ = await self.upsert_signal(signal)
        return replace(
            signal,
            severity=SeverityTier.parse(record.severity, signal.severity),
            count=record.count,
        )
    
    async def resolve_signal(
        self,
        signal_id: str,
        resolved_by: str,
        note: Optional[str],
        at: datetime,
    ) -> Optional[AbuseSignalRecord]:
        record = await self._session.get(AbuseSignalRecord, signal_id)
        if record is None:
            return None
        record.status = SignalStatus.RESOLVED.value
        record.resolved_at = at
        record.resolved_by = resolved_by
        record.resolution_note = note
        record.updated_at = at
        await self._session.flush()
        return record
    
    async def delete_resolved_before(self, cutoff: datetime, limit: int = 500) -> int:
        """Delete at most `limit` signals resolved before `cutoff`."""
        ids_stmt = (
            select(AbuseSignalRecord.signal_id)
            .where(
                AbuseSignalRecord.status == SignalStatus.RESOLVED.value,
                AbuseSignalRecord.resolved_at < cutoff,
            )
            .limit(limit)
        )
        ids = list((await self._session.execute(ids_stmt)).scalars().all())
        if not ids:
            return 0
        await self._session.execute(
            delete(AbuseSignalRecord).where(AbuseSignalRecord.signal_id.in_(ids))
        )
        return len(ids)
    
    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------
    
    async def get(self, signal_id: str) -> Optional[AbuseSignalRecord]:
        return await self._session.get(AbuseSignalRecord, signal_id)
    
    async def list_active_for_user(
        self,
        user_id: str,
        since: Optional[datetime] = None,
    ) -> List[AbuseSignalRecord]:
        stmt = select(AbuseSignalRecord).where(
            AbuseSignalRecord.user_id == user_id,
            AbuseSignalRecord.status == SignalStatus.ACTIVE.value,
        )
        if since is not None:
            stmt = stmt.where(AbuseSignalRecord.detected_at >= since)
        result = await self._session.execute(stmt.order_by(AbuseSignalRecord.detected_at.desc()))
        return list(result.scalars().all())


__all__ = ["AbuseSignalRepository"]
