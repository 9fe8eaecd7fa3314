"""
Trust Scoring - Repository.

============================================================
PURPOSE
============================================================
Persistence for trust scores:
- upsert: overwrite an account's score
- get: latest score of an account
- list_by_level: accounts in a trust tier

============================================================
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import TrustScoreRecord
from .types import TrustLevel, TrustScore


class TrustScoreRepository:
    """Repository for the trust_scores table."""
    
    def __init__(self, session: AsyncSession):
        self._session = session
    
    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------
    
    async def upsert(self, score: TrustScore) -> TrustScoreRecord:
        """Replace the account's score with `score`."""
        record = await self._session.get(TrustScoreRecord, score.user_id)
        if record is None:
            record = TrustScoreRecord(user_id=score.user_id)
            self._session.add(record)
        
        record.trust_score = score.trust_score
        record.level = score.level.value
        record.quality_score = score.components.quality
        record.reliability_score = score.components.reliability
        record.safety_score = score.components.safety
        record.payout_score = score.components.payout
        record.inputs = score.inputs.to_dict() if score.inputs else None
        record.last_updated_at = score.computed_at
        
        await self._session.flush()
        return record
    
    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------
    
    async def get(self, user_id: str) -> Optional[TrustScoreRecord]:
        return await self._session.get(TrustScoreRecord, user_id)
    
    async def list_by_level(self, level: TrustLevel, limit: int = 100) -> List[TrustScoreRecord]:
        stmt = (
            select(TrustScoreRecord)
            .where(TrustScoreRecord.level == level.value)
            .order_by(TrustScoreRecord.trust_score.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["TrustScoreRepository"]
