"""
Trust Scoring - Calculator.

============================================================
FORMULAS
============================================================
quality     = clamp(completion*30 + (rating/5)*40
                    + (1 - refundRate)*20 + min(sessions/100, 1)*10)
reliability = clamp(100 - cancelRate*40 - noShowRate*40
                    + min(sessions/10, 1)*20)
safety      = clamp(100 - riskScore/2 - min(fraudSignals*5, 30)
                    - min((warnings + 3*bans)*10, 20))
payout      = 100 with no attempts, else
              clamp(successRate*70 + (1 - disputeRate)*30)

trust = round_half_up(sum(component * weight))

All clamps are to [0, 100]. The composite is computed in
Decimal so that x.5 always rounds up (82.5 -> 83).

============================================================
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from core.clock import ClockFactory, ClockProtocol

from .config import TrustWeights
from .types import (
    PayoutInputs,
    QualityInputs,
    ReliabilityInputs,
    SafetyInputs,
    TrustComponents,
    TrustLevel,
    TrustScore,
    TrustScoreInput,
)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def quality_score(inputs: QualityInputs) -> float:
    return clamp(
        inputs.completion_rate * 30
        + (inputs.avg_rating / 5) * 40
        + (1 - inputs.refund_rate) * 20
        + min(inputs.sessions / 100, 1) * 10
    )


def reliability_score(inputs: ReliabilityInputs) -> float:
    return clamp(
        100
        - inputs.cancel_rate * 40
        - inputs.no_show_rate * 40
        + min(inputs.sessions / 10, 1) * 20
    )


def safety_score(inputs: SafetyInputs) -> float:
    return clamp(
        100
        - inputs.risk_score / 2
        - min(inputs.fraud_signals * 5, 30)
        - min((inputs.warnings + 3 * inputs.bans) * 10, 20)
    )


def payout_score(inputs: PayoutInputs) -> float:
    if inputs.attempts <= 0:
        return 100.0
    return clamp(inputs.success_rate * 70 + (1 - inputs.dispute_rate) * 30)


def composite_score(components: TrustComponents, weights: Optional[TrustWeights] = None) -> int:
    """Weighted sum of the sub-scores, rounded half up, clamped to 0..100."""
    weights = weights or TrustWeights()
    total = (
        Decimal(str(components.quality)) * Decimal(str(weights.quality))
        + Decimal(str(components.reliability)) * Decimal(str(weights.reliability))
        + Decimal(str(components.safety)) * Decimal(str(weights.safety))
        + Decimal(str(components.payout)) * Decimal(str(weights.payout))
    )
    rounded = int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))


class TrustScoreCalculator:
    """
    Pure trust score computation.
    
    No I/O: the same TrustScoreInput always yields the same
    score and level, so replaying a recompute is stable.
    """
    
    def __init__(
        self,
        weights: Optional[TrustWeights] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.weights = weights or TrustWeights()
        self._clock = clock or ClockFactory.get_clock()
    
    def components(self, inputs: TrustScoreInput) -> TrustComponents:
        return TrustComponents(
            quality=round(quality_score(inputs.quality), 2),
            reliability=round(reliability_score(inputs.reliability), 2),
            safety=round(safety_score(inputs.safety), 2),
            payout=round(payout_score(inputs.payout), 2),
        )
    
    def calculate(self, inputs: TrustScoreInput, computed_at: Optional[datetime] = None) -> TrustScore:
        components = self.components(inputs)
        score = composite_score(components, self.weights)
        return TrustScore(
            user_id=inputs.user_id,
            trust_score=score,
            level=TrustLevel.from_score(score),
            components=components,
            computed_at=computed_at or self._clock.now(),
            inputs=inputs,
        )


__all__ = [
    "clamp",
    "quality_score",
    "reliability_score",
    "safety_score",
    "payout_score",
    "composite_score",
    "TrustScoreCalculator",
]
