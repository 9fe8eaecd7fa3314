"""
Core Module - Shared Types.

Severity tiers are shared by farming cases, abuse signals and
alerts, so the ordering lives here once.
"""

from enum import Enum
from typing import List, Optional


class SeverityTier(str, Enum):
    """
    Severity tier driving alert intensity and remediation strength.
    
    Ordered: LOW < MEDIUM < HIGH < CRITICAL.
    """
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    
    @classmethod
    def ordered(cls) -> List["SeverityTier"]:
        return [cls.LOW, cls.MEDIUM, cls.HIGH, cls.CRITICAL]
    
    @property
    def rank(self) -> int:
        return SeverityTier.ordered().index(self)
    
    def next_up(self) -> "SeverityTier":
        """The next tier up; CRITICAL stays CRITICAL."""
        tiers = SeverityTier.ordered()
        return tiers[min(self.rank + 1, len(tiers) - 1)]
    
    @classmethod
    def parse(cls, value: Optional[str], default: "SeverityTier") -> "SeverityTier":
        """Parse a stored value, falling back to `default` on garbage."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return default


__all__ = ["SeverityTier"]
