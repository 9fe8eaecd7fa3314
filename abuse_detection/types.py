"""
Abuse Detection - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the per-account abuse rules.

An AbuseSignal is the "detect" output: which rule fired, for
whom, how hard (count vs threshold) and at what severity. It
carries no remediation; the policy turns it into an
ActionDecision.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.types import SeverityTier


# ============================================================
# ENUMS
# ============================================================


class AbuseSignalType(str, Enum):
    """The abuse rules."""
    
    REFUND_LOOP = "refund_loop"
    PANIC_SPAM = "panic_spam"
    FAKE_MISMATCH = "fake_mismatch"
    BOT_VELOCITY = "bot_velocity"
    PROMPT_ABUSE = "prompt_abuse"
    CANCELLATION_FARMING = "cancellation_farming"
    TOKEN_DRAIN = "token_drain"
    PAYOUT_VELOCITY = "payout_velocity"
    PARALLEL_SESSIONS = "parallel_sessions"
    
    @property
    def impacts_wallet(self) -> bool:
        """Types whose abuse moves money out of the platform."""
        return self in (
            AbuseSignalType.REFUND_LOOP,
            AbuseSignalType.TOKEN_DRAIN,
            AbuseSignalType.CANCELLATION_FARMING,
            AbuseSignalType.PAYOUT_VELOCITY,
        )


class EventKind(str, Enum):
    """Upstream record events the engine reacts to."""
    
    REFUND_CREATED = "refund_created"
    SAFETY_EVENT_CREATED = "safety_event_created"
    TRANSACTION_CREATED = "transaction_created"
    AI_INTERACTION_CREATED = "ai_interaction_created"
    BOOKING_STATUS_CHANGED = "booking_status_changed"
    PAYOUT_REQUESTED = "payout_requested"
    SESSION_STARTED = "session_started"


class SignalStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


# ============================================================
# EVENT
# ============================================================


@dataclass(frozen=True)
class PlatformEvent:
    """
    A creation/update trigger on an upstream record.
    
    `user_id` is the account the event is evaluated against
    (refund payer, safety event subject, paid creator, AI user,
    booking host, payout requester, session owner).
    """
    kind: EventKind
    user_id: str
    record_id: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    occurred_at: Optional[datetime] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "user_id": self.user_id,
            "record_id": self.record_id,
            "attributes": dict(self.attributes),
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }


# ============================================================
# SIGNAL
# ============================================================


@dataclass(frozen=True)
class AbuseSignal:
    """
    Output of one rule evaluation above threshold.
    
    `signal_id` is derived from (rule, user, window bucket): the
    same condition detected twice in one window is one signal.
    """
    signal_id: str
    signal_type: AbuseSignalType
    user_id: str
    severity: SeverityTier
    count: int
    threshold: int
    window: timedelta
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rule_version: str = ""
    trigger: str = "scheduled"
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "signal_type": self.signal_type.value,
            "user_id": self.user_id,
            "severity": self.severity.value,
            "count": self.count,
            "threshold": self.threshold,
            "window_seconds": int(self.window.total_seconds()),
            "detected_at": self.detected_at.isoformat(),
            "rule_version": self.rule_version,
            "trigger": self.trigger,
            "metadata": dict(self.metadata),
        }


@dataclass
class DetectionResult:
    """Outcome of running a set of rules (event or scan)."""
    
    evaluated: int = 0
    signals: List[AbuseSignal] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    
    @property
    def success(self) -> bool:
        return not self.errors
    
    def absorb(self, other: "DetectionResult") -> None:
        self.evaluated += other.evaluated
        self.signals.extend(other.signals)
        self.errors.extend(other.errors)


__all__ = [
    "AbuseSignalType",
    "EventKind",
    "SignalStatus",
    "PlatformEvent",
    "AbuseSignal",
    "DetectionResult",
]
