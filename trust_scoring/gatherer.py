"""
Trust Scoring - Input Gatherer.

Reads the five upstream domains (performance, bookings, risk,
moderation, payouts) for one account and turns them into a
TrustScoreInput. Read-only; missing data maps to neutral values:

- no KPI snapshot      -> zero quality inputs
- no host bookings     -> zero rates, zero sessions
- no risk profile      -> risk score 0
- no payout attempts   -> payout sub-score 100
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol

from core.clock import ClockFactory, ClockProtocol
from data_sources.base import (
    BookingReader,
    ModerationReader,
    PayoutReader,
    PerformanceReader,
    RiskReader,
)

from .config import TrustScoringConfig
from .types import (
    PayoutInputs,
    QualityInputs,
    ReliabilityInputs,
    SafetyInputs,
    TrustScoreInput,
)


logger = logging.getLogger(__name__)


class AbuseSignalWeightSource(Protocol):
    """Weighted count of unresolved engine abuse signals for a user."""
    
    async def weighted_signal_count(self, user_id: str, since: datetime) -> float: ...


class TrustInputGatherer:
    
    def __init__(
        self,
        performance: PerformanceReader,
        bookings: BookingReader,
        risk: RiskReader,
        moderation: ModerationReader,
        payouts: PayoutReader,
        config: Optional[TrustScoringConfig] = None,
        abuse_signals: Optional[AbuseSignalWeightSource] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._performance = performance
        self._bookings = bookings
        self._risk = risk
        self._moderation = moderation
        self._payouts = payouts
        self.config = config or TrustScoringConfig()
        self._abuse_signals = abuse_signals if self.config.include_abuse_signals else None
        self._clock = clock or ClockFactory.get_clock()
    
    async def gather(self, user_id: str) -> TrustScoreInput:
        since = self._clock.since(timedelta(days=self.config.lookback_days))
        quality, reliability, safety, payout = await asyncio.gather(
            self._quality(user_id, since),
            self._reliability(user_id, since),
            self._safety(user_id, since),
            self._payout(user_id, since),
        )
        return TrustScoreInput(
            user_id=user_id,
            quality=quality,
            reliability=reliability,
            safety=safety,
            payout=payout,
        )
    
    async def _quality(self, user_id: str, since: datetime) -> QualityInputs:
        snapshot = await self._performance.get_latest(user_id, since)
        if snapshot is None:
            return QualityInputs()
        return QualityInputs(
            completion_rate=snapshot.completion_rate,
            avg_rating=snapshot.avg_rating,
            refund_rate=snapshot.refund_rate,
            sessions=snapshot.sessions,
        )
    
    async def _reliability(self, user_id: str, since: datetime) -> ReliabilityInputs:
        bookings = await self._bookings.list_host_bookings(user_id, since)
        if not bookings:
            return ReliabilityInputs()
        total = len(bookings)
        return ReliabilityInputs(
            cancel_rate=sum(1 for b in bookings if b.cancelled_by_host) / total,
            no_show_rate=sum(1 for b in bookings if b.is_no_show) / total,
            sessions=sum(1 for b in bookings if b.is_completed),
        )
    
    async def _safety(self, user_id: str, since: datetime) -> SafetyInputs:
        profile = await self._risk.get_profile(user_id)
        fraud_signals: float = await self._risk.count_fraud_signals(user_id, since)
        if self._abuse_signals is not None:
            fraud_signals += await self._abuse_signals.weighted_signal_count(user_id, since)
        actions = await self._moderation.list_actions(user_id, since)
        return SafetyInputs(
            risk_score=profile.risk_score if profile else 0.0,
            fraud_signals=fraud_signals,
            warnings=sum(1 for a in actions if a.is_warning),
            bans=sum(1 for a in actions if a.is_ban),
        )
    
    async def _payout(self, user_id: str, since: datetime) -> PayoutInputs:
        payouts = await self._payouts.list_payouts(user_id, since)
        if not payouts:
            return PayoutInputs()
        attempts = len(payouts)
        return PayoutInputs(
            attempts=attempts,
            success_rate=sum(1 for p in payouts if p.succeeded) / attempts,
            dispute_rate=sum(1 for p in payouts if p.disputed) / attempts,
        )


__all__ = ["AbuseSignalWeightSource", "TrustInputGatherer"]
