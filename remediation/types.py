"""
Remediation - Type Definitions.

The decision record connects "decide" (policy) to "act"
(executor): detectors never apply actions themselves.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from core.identifiers import action_record_id_for
from core.types import SeverityTier


class AutoAction(str, Enum):
    """Deterministic remediation applied without human review."""
    
    FREEZE_WALLET = "freeze_wallet"
    SHADOW_BAN = "shadow_ban"
    RATE_LIMIT = "rate_limit"
    WARNING = "warning"
    MANUAL_REVIEW = "manual_review"
    NONE = "none"


class ActionStatus(str, Enum):
    APPLIED = "applied"
    DRY_RUN = "dry_run"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ActionDecision:
    """
    What should be done to whom, and because of which signal.
    
    `signal_id` is an abuse signal id or a farming case id; it is
    the idempotency key together with target and action.
    """
    signal_id: str
    target_id: str
    action: AutoAction
    severity: SeverityTier
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    
    @property
    def record_id(self) -> str:
        return action_record_id_for(self.signal_id, self.target_id, self.action.value)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "target_id": self.target_id,
            "action": self.action.value,
            "severity": self.severity.value,
            "reason": self.reason,
            "metadata": self.metadata,
        }


@dataclass
class ActionOutcome:
    """Result of executing one decision."""
    decision: ActionDecision
    status: ActionStatus
    record_id: Optional[str] = None
    already_applied: bool = False
    error: Optional[str] = None
    executed_at: Optional[datetime] = None
    
    @property
    def applied(self) -> bool:
        return self.status == ActionStatus.APPLIED


__all__ = ["AutoAction", "ActionStatus", "ActionDecision", "ActionOutcome"]
