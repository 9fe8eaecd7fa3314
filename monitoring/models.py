"""
Monitoring - Persistence Models.

The dashboard channel writes every routed alert here; operators
acknowledge and resolve them from the dashboard.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base

from .types import AlertStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertRecord(Base):
    """Alert as shown on the operator dashboard."""
    
    __tablename__ = "alert_records"
    
    alert_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    subject_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    channels: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AlertStatus.OPEN.value,
        comment="open, acknowledged, resolved",
    )
    
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    
    __table_args__ = (
        Index("ix_alert_records_status_created", "status", "created_at"),
        Index("ix_alert_records_severity", "severity"),
    )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "subject_id": self.subject_id,
            "data": dict(self.data or {}),
            "channels": list(self.channels or []),
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "acknowledged_by": self.acknowledged_by,
            "resolved_by": self.resolved_by,
        }
    
    def __repr__(self) -> str:
        return f"AlertRecord(id={self.alert_id}, type={self.alert_type}, severity={self.severity}, status={self.status})"
