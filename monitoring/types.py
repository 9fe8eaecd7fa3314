"""
Monitoring - Type Definitions.

Alert contracts shared by the router, the channels and the
dashboard service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from core.types import SeverityTier


# ============================================================
# ENUMS
# ============================================================


class AlertSeverity(str, Enum):
    """Alert severity; EMERGENCY sits above the remediation tiers."""
    
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    EMERGENCY = "emergency"
    
    @classmethod
    def from_tier(cls, tier: SeverityTier) -> "AlertSeverity":
        return cls(tier.value)
    
    @property
    def bypasses_throttle(self) -> bool:
        return self in (AlertSeverity.CRITICAL, AlertSeverity.EMERGENCY)


class AlertChannelName(str, Enum):
    DASHBOARD = "dashboard"
    CHAT = "chat"
    EMAIL = "email"
    PUSH = "push"


class AlertStatus(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


# ============================================================
# ALERT
# ============================================================


@dataclass(frozen=True)
class Alert:
    """
    One operator-facing alert.
    
    `alert_type` groups alerts for throttling (abuse_signal,
    farming_case, job_failure, ...). `subject_id` is the account,
    case or job the alert is about.
    """
    alert_type: str
    severity: AlertSeverity
    title: str
    message: str
    subject_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    alert_id: str = field(default_factory=lambda: f"alert_{uuid4().hex[:20]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "alert_type": self.alert_type,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "subject_id": self.subject_id,
            "data": dict(self.data),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class RouteResult:
    """What happened to one alert."""
    
    alert_id: str
    routed_to: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    throttled: bool = False
    routed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    @property
    def delivered(self) -> bool:
        return bool(self.routed_to)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "routed_to": list(self.routed_to),
            "failed": dict(self.failed),
            "throttled": self.throttled,
            "routed_at": self.routed_at.isoformat(),
        }


__all__ = [
    "AlertSeverity",
    "AlertChannelName",
    "AlertStatus",
    "Alert",
    "RouteResult",
]
