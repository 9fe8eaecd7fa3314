"""
Monitoring - Repository.

Persistence for dashboard alerts: save, acknowledge, resolve,
list open.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AlertRecord
from .types import Alert, AlertStatus


class AlertRepository:
    """Repository for the alert_records table."""
    
    def __init__(self, session: AsyncSession):
        self._session = session
    
    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------
    
    async def save(self, alert: Alert, channels: Sequence[str] = ()) -> AlertRecord:
        record = await self._session.get(AlertRecord, alert.alert_id)
        if record is None:
            record = AlertRecord(
                alert_id=alert.alert_id,
                alert_type=alert.alert_type,
                severity=alert.severity.value,
                title=alert.title[:255],
                message=alert.message,
                subject_id=alert.subject_id,
                data=dict(alert.data),
                channels=list(channels),
                status=AlertStatus.OPEN.value,
                created_at=alert.created_at,
            )
            self._session.add(record)
            await self._session.flush()
        return record
    
    async def acknowledge(self, alert_id: str, by: str, at: datetime) -> Optional[AlertRecord]:
        record = await self._session.get(AlertRecord, alert_id)
        if record is None:
            return None
        if record.status == AlertStatus.OPEN.value:
            record.status = AlertStatus.ACKNOWLEDGED.value
            record.acknowledged_at = at
            record.acknowledged_by = by
            await self._session.flush()
        return record
    
    async def resolve(self, alert_id: str, by: str, at: datetime) -> Optional[AlertRecord]:
        record = await self._session.get(AlertRecord, alert_id)
        if record is None:
            return None
        if record.status != AlertStatus.RESOLVED.value:
            record.status = AlertStatus.RESOLVED.value
            record.resolved_at = at
            record.resolved_by = by
            await self._session.flush()
        return record
    
    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------
    
    async def get(self, alert_id: str) -> Optional[AlertRecord]:
        return await self._session.get(AlertRecord, alert_id)
    
    async def list_unresolved(self, limit: int = 100) -> List[AlertRecord]:
        stmt = (
            select(AlertRecord)
            .where(AlertRecord.status != AlertStatus.RESOLVED.value)
            .order_by(AlertRecord.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["AlertRepository"]
