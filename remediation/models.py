"""
Remediation - Persistence Models.

============================================================
MODELS
============================================================
1. AccountEnforcement: engine-owned enforcement flags per account
2. ActionRecordModel: one row per executed decision
3. UserNotice: user-facing warning queued for delivery

Flags are plain field sets; applying the same decision twice
leaves the row exactly as applying it once.

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountEnforcement(Base):
    """Current enforcement state of one account."""
    
    __tablename__ = "account_enforcements"
    
    account_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    
    wallet_frozen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    frozen_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    frozen_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    shadow_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shadow_banned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    rate_limited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rate_limited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    review_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    def __repr__(self) -> str:
        return (
            f"AccountEnforcement("
            f"account={self.account_id}, "
            f"frozen={self.wallet_frozen}, "
            f"shadow_banned={self.shadow_banned}, "
            f"rate_limited={self.rate_limited}, "
            f"review={self.review_required})"
        )


class ActionRecordModel(Base):
    """Remediation log entry keyed by (signal, target, action)."""
    
    __tablename__ = "action_records"
    
    record_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    signal_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="applied, dry_run, failed",
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    
    __table_args__ = (
        Index("ix_action_records_signal", "signal_id"),
        Index("ix_action_records_target", "target_id"),
    )
    
    def __repr__(self) -> str:
        return (
            f"ActionRecordModel("
            f"id={self.record_id}, "
            f"action={self.action}, "
            f"target={self.target_id}, "
            f"status={self.status})"
        )


class UserNotice(Base):
    """Warning queued for the user; delivery is handled by the platform."""
    
    __tablename__ = "user_notices"
    
    notice_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    signal_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    
    __table_args__ = (
        Index("ix_user_notices_user", "user_id", "delivered"),
    )


__all__ = ["AccountEnforcement", "ActionRecordModel", "UserNotice"]
