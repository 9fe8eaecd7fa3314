"""
Trust Scoring Package - Counterpart Trust Scores.

============================================================
PURPOSE
============================================================
Aggregates performance, booking reliability, risk, moderation
and payout history into a 0-100 trust score and tier.

============================================================
COMPONENTS
============================================================
- calculator: pure sub-score and composite formulas
- gatherer: read-only input collection from upstream
- engine: recompute single, set, or whole population
- repository: trust_scores upsert / lookup

============================================================
"""

from .types import (
    TrustLevel,
    QualityInputs,
    ReliabilityInputs,
    SafetyInputs,
    PayoutInputs,
    TrustScoreInput,
    TrustComponents,
    TrustScore,
    RecomputeResult,
)
from .config import TrustWeights, TrustScoringConfig, load_config_from_dict
from .calculator import TrustScoreCalculator, composite_score
from .gatherer import AbuseSignalWeightSource, TrustInputGatherer
from .engine import TrustScoringEngine


__all__ = [
    "TrustLevel",
    "QualityInputs",
    "ReliabilityInputs",
    "SafetyInputs",
    "PayoutInputs",
    "TrustScoreInput",
    "TrustComponents",
    "TrustScore",
    "RecomputeResult",
    "TrustWeights",
    "TrustScoringConfig",
    "load_config_from_dict",
    "TrustScoreCalculator",
    "composite_score",
    "AbuseSignalWeightSource",
    "TrustInputGatherer",
    "TrustScoringEngine",
]

__version__ = "1.0.0"
