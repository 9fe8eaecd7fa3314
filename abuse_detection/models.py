"""
Abuse Detection - Persistence Models.

Signal ids are content-addressed from (rule, user, window
bucket), so a repeated detection inside one window updates the
same row.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import ensure_utc
from core.types import SeverityTier
from database.engine import Base

from .types import AbuseSignal, AbuseSignalType, SignalStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AbuseSignalRecord(Base):
    """Persisted abuse signal."""
    
    __tablename__ = "abuse_signals"
    
    signal_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    
    signal_type: Mapped[str] = mapped_column(String(40), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    window_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_version: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    trigger: Mapped[str] = mapped_column(String(40), nullable=False, default="scheduled")
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SignalStatus.ACTIVE.value,
        comment="active, resolved",
    )
    
    first_detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    __table_args__ = (
        Index("ix_abuse_signals_user_status", "user_id", "status"),
        Index("ix_abuse_signals_status_resolved_at", "status", "resolved_at"),
        Index("ix_abuse_signals_type_detected_at", "signal_type", "detected_at"),
    )
    
    def to_signal(self) -> AbuseSignal:
        return AbuseSignal(
            signal_id=self.signal_id,
            signal_type=AbuseSignalType(self.signal_type),
            user_id=self.user_id,
            severity=SeverityTier.parse(self.severity, SeverityTier.LOW),
            count=self.count,
            threshold=self.threshold,
            window=timedelta(seconds=self.window_seconds),
            detected_at=ensure_utc(self.detected_at),
            rule_version=self.rule_version,
            trigger=self.trigger,
            metadata=dict(self.details or {}),
        )
    
    def __repr__(self) -> str:
        return (
            f"AbuseSignalRecord(id={self.signal_id}, type={self.signal_type}, "
            f"user={self.user_id}, severity={self.severity}, status={self.status})"
        )
