"""
Trust Scoring - Configuration.

============================================================
DEFAULTS
============================================================
- Weights: quality 0.35, reliability 0.30, safety 0.25,
  payout 0.10 (sum must be 1.0)
- Lookback: 30 days for every input domain
- Bulk writes: 500 scores per commit

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class TrustWeights:
    quality: float = 0.35
    reliability: float = 0.30
    safety: float = 0.25
    payout: float = 0.10
    
    @property
    def total(self) -> float:
        return self.quality + self.reliability + self.safety + self.payout
    
    def to_dict(self) -> Dict[str, float]:
        return {
            "quality": self.quality,
            "reliability": self.reliability,
            "safety": self.safety,
            "payout": self.payout,
        }


@dataclass(frozen=True)
class TrustScoringConfig:
    """Complete trust scoring configuration."""
    
    weights: TrustWeights = field(default_factory=TrustWeights)
    lookback_days: int = 30
    
    # Unresolved engine abuse signals add their rule weight to the
    # upstream fraud signal count
    include_abuse_signals: bool = True
    
    batch_size: int = 500
    
    def validate(self) -> List[str]:
        errors = []
        if abs(self.weights.total - 1.0) > 1e-6:
            errors.append(f"trust weights must sum to 1.0, got {self.weights.total:.4f}")
        if any(w < 0 for w in self.weights.to_dict().values()):
            errors.append("trust weights must be non-negative")
        if self.lookback_days <= 0:
            errors.append("trust lookback_days must be positive")
        if not 1 <= self.batch_size <= 500:
            errors.append("trust batch_size must be within 1..500")
        return errors
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": self.weights.to_dict(),
            "lookback_days": self.lookback_days,
            "include_abuse_signals": self.include_abuse_signals,
            "batch_size": self.batch_size,
        }


def load_config_from_dict(data: Dict[str, Any]) -> TrustScoringConfig:
    defaults = TrustScoringConfig()
    weights = data.get("weights") or {}
    return TrustScoringConfig(
        weights=TrustWeights(
            quality=float(weights.get("quality", defaults.weights.quality)),
            reliability=float(weights.get("reliability", defaults.weights.reliability)),
            safety=float(weights.get("safety", defaults.weights.safety)),
            payout=float(weights.get("payout", defaults.weights.payout)),
        ),
        lookback_days=int(data.get("lookback_days", defaults.lookback_days)),
        include_abuse_signals=bool(data.get("include_abuse_signals", defaults.include_abuse_signals)),
        batch_size=int(data.get("batch_size", defaults.batch_size)),
    )


__all__ = ["TrustWeights", "TrustScoringConfig", "load_config_from_dict"]
