"""
Trust Scoring - Persistence Models.

One row per account, overwritten on every recompute. No
history is kept here.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Float, Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import ensure_utc
from database.engine import Base

from .types import TrustComponents, TrustLevel, TrustScore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrustScoreRecord(Base):
    """Latest trust score of an account."""
    
    __tablename__ = "trust_scores"
    
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    
    trust_score: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="LOW, MEDIUM, HIGH, ELITE",
    )
    
    quality_score: Mapped[float] = mapped_column(Float, nullable=False)
    reliability_score: Mapped[float] = mapped_column(Float, nullable=False)
    safety_score: Mapped[float] = mapped_column(Float, nullable=False)
    payout_score: Mapped[float] = mapped_column(Float, nullable=False)
    
    inputs: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    
    last_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    __table_args__ = (
        Index("ix_trust_scores_level", "level"),
        Index("ix_trust_scores_trust_score", "trust_score"),
    )
    
    def to_score(self) -> TrustScore:
        return TrustScore(
            user_id=self.user_id,
            trust_score=self.trust_score,
            level=TrustLevel(self.level),
            components=TrustComponents(
                quality=self.quality_score,
                reliability=self.reliability_score,
                safety=self.safety_score,
                payout=self.payout_score,
            ),
            computed_at=ensure_utc(self.last_updated_at),
        )
    
    def __repr__(self) -> str:
        return f"TrustScoreRecord(user={self.user_id}, score={self.trust_score}, level={self.level})"
