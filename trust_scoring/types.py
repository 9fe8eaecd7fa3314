"""
Trust Scoring - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the trust score calculator.

A trust score is a 0-100 composite estimate of how trustworthy
an account is as a counterpart, built from four sub-scores:

1. QUALITY - delivered session quality (KPIs)
2. RELIABILITY - booking follow-through as a host
3. SAFETY - risk profile, fraud signals, moderation history
4. PAYOUT - payout success and dispute history

The score is recomputed, never appended: the latest value
replaces the prior one.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# ENUMS
# ============================================================


class TrustLevel(str, Enum):
    """
    Trust tier derived from the composite score.
    
    <25 LOW, 25-54 MEDIUM, 55-84 HIGH, >=85 ELITE
    """
    
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    ELITE = "ELITE"
    
    @classmethod
    def from_score(cls, score: int) -> "TrustLevel":
        if score >= 85:
            return cls.ELITE
        if score >= 55:
            return cls.HIGH
        if score >= 25:
            return cls.MEDIUM
        return cls.LOW


# ============================================================
# INPUT TYPES
# ============================================================


@dataclass(frozen=True)
class QualityInputs:
    completion_rate: float = 0.0
    avg_rating: float = 0.0
    refund_rate: float = 0.0
    sessions: int = 0


@dataclass(frozen=True)
class ReliabilityInputs:
    cancel_rate: float = 0.0
    no_show_rate: float = 0.0
    sessions: int = 0


@dataclass(frozen=True)
class SafetyInputs:
    risk_score: float = 0.0
    fraud_signals: float = 0.0
    warnings: int = 0
    bans: int = 0


@dataclass(frozen=True)
class PayoutInputs:
    attempts: int = 0
    success_rate: float = 0.0
    dispute_rate: float = 0.0


@dataclass(frozen=True)
class TrustScoreInput:
    """Everything the calculator needs for one account."""
    user_id: str
    quality: QualityInputs = field(default_factory=QualityInputs)
    reliability: ReliabilityInputs = field(default_factory=ReliabilityInputs)
    safety: SafetyInputs = field(default_factory=SafetyInputs)
    payout: PayoutInputs = field(default_factory=PayoutInputs)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "quality": vars(self.quality).copy(),
            "reliability": vars(self.reliability).copy(),
            "safety": vars(self.safety).copy(),
            "payout": vars(self.payout).copy(),
        }


# ============================================================
# OUTPUT TYPES
# ============================================================


@dataclass(frozen=True)
class TrustComponents:
    """The four sub-scores, each in [0, 100]."""
    quality: float
    reliability: float
    safety: float
    payout: float
    
    def to_dict(self) -> Dict[str, float]:
        return {
            "quality": self.quality,
            "reliability": self.reliability,
            "safety": self.safety,
            "payout": self.payout,
        }


@dataclass(frozen=True)
class TrustScore:
    """Computed trust score for one account."""
    user_id: str
    trust_score: int
    level: TrustLevel
    components: TrustComponents
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    inputs: Optional[TrustScoreInput] = field(default=None, compare=False)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "trust_score": self.trust_score,
            "level": self.level.value,
            "quality_score": self.components.quality,
            "reliability_score": self.components.reliability,
            "safety_score": self.components.safety,
            "payout_score": self.components.payout,
            "last_updated_at": self.computed_at.isoformat(),
        }


@dataclass
class RecomputeResult:
    """Outcome of a multi-account recompute."""
    
    requested: int = 0
    computed: int = 0
    written: int = 0
    failed_user_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    
    @property
    def success(self) -> bool:
        return not self.errors
    
    def absorb(self, other: "RecomputeResult") -> None:
        self.requested += other.requested
        self.computed += other.computed
        self.written += other.written
        self.failed_user_ids.extend(other.failed_user_ids)
        self.errors.extend(other.errors)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "computed": self.computed,
            "written": self.written,
            "failed_user_ids": list(self.failed_user_ids),
            "errors": list(self.errors),
        }


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
]
