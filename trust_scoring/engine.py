"""
Trust Scoring - Engine.

============================================================
PURPOSE
============================================================
gather (read-only upstream) -> calculate (pure) -> upsert

Entry points:
- recompute_user: one account, on demand
- recompute_users: a set of accounts (escalator hook, admin bulk)
- recompute_population: every account, page by page (daily job)

============================================================
ERROR HANDLING
============================================================
- A failed gather for one account is logged; other accounts
  continue
- DataSourceUnavailableError propagates (the whole datastore
  is down, nothing useful can be computed)
- Writes are committed in batches of at most 500; a failed
  batch does not roll back earlier ones

============================================================
"""

import logging
from typing import AsyncIterator, List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.batching import dedupe_preserving_order
from core.clock import ClockFactory, ClockProtocol
from core.exceptions import DataSourceError, DataSourceUnavailableError
from database.batch import write_in_batches
from database.engine import session_scope

from .calculator import TrustScoreCalculator
from .config import TrustScoringConfig
from .gatherer import TrustInputGatherer
from .repository import TrustScoreRepository
from .types import RecomputeResult, TrustScore


logger = logging.getLogger(__name__)


class TrustScoringEngine:
    """Recomputes and stores trust scores."""
    
    def __init__(
        self,
        gatherer: TrustInputGatherer,
        session_factory: async_sessionmaker,
        config: Optional[TrustScoringConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or TrustScoringConfig()
        self._gatherer = gatherer
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
        self._calculator = TrustScoreCalculator(self.config.weights, self._clock)
    
    async def compute(self, user_id: str) -> TrustScore:
        """Compute without persisting."""
        inputs = await self._gatherer.gather(user_id)
        return self._calculator.calculate(inputs)
    
    async def recompute_user(self, user_id: str) -> TrustScore:
        score = await self.compute(user_id)
        async with session_scope(self._session_factory, "trust_recompute_user") as session:
            await TrustScoreRepository(session).upsert(score)
        logger.info(f"Trust score {user_id}: {score.trust_score} ({score.level.value})")
        return score
    
    async def recompute_users(self, user_ids: Sequence[str]) -> RecomputeResult:
        user_ids = dedupe_preserving_order(user_ids)
        result = RecomputeResult(requested=len(user_ids))
        scores: List[TrustScore] = []
        
        for user_id in user_ids:
            try:
                scores.append(await self.compute(user_id))
            except DataSourceUnavailableError:
                raise
            except DataSourceError as e:
                result.failed_user_ids.append(user_id)
                result.errors.append(f"{user_id}: {e.message}")
                logger.error(f"Trust inputs unavailable for {user_id}: {e.message}")
        result.computed = len(scores)
        
        async def write(session, batch: List[TrustScore]) -> None:
            repo = TrustScoreRepository(session)
            for score in batch:
                await repo.upsert(score)
        
        written = await write_in_batches(
            self._session_factory,
            scores,
            write,
            batch_size=self.config.batch_size,
            operation="trust_recompute",
        )
        result.written = written.written
        result.errors.extend(written.errors)
        
        logger.info(
            f"Trust recompute: {result.written}/{result.requested} written, "
            f"{len(result.failed_user_ids)} failed"
        )
        return result
    
    async def recompute_population(self, pages: AsyncIterator[List[str]]) -> RecomputeResult:
        total = RecomputeResult()
        async for page in pages:
            total.absorb(await self.recompute_users(page))
        return total
    
    async def get_score(self, user_id: str) -> Optional[TrustScore]:
        async with session_scope(self._session_factory, "trust_get_score") as session:
            record = await TrustScoreRepository(session).get(user_id)
            return record.to_score() if record else None


__all__ = ["TrustScoringEngine"]
