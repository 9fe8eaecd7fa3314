"""
Abuse Detection - Rule Configuration.

============================================================
RULE TABLE
============================================================
Every threshold lives here, keyed by rule name, and the whole
table carries a version string that is stamped on each signal.

rule                  threshold  window  x   base     trigger
refund_loop           3          7d      2   medium   refund created
panic_spam            5          24h     2   high     safety event
fake_mismatch         3          30d     2   medium   safety event
bot_velocity          120        1h      2   high     hourly scan
prompt_abuse          10         1h      3   medium   AI interaction
cancellation_farming  5          7d      2   high     6h scan + booking
token_drain           5          24h     2   high     transaction
payout_velocity       3          1h      2   medium   payout request
parallel_sessions     3          5m      2   medium   session start

Severity is two-tier and inclusive on both ends:
    count >= threshold * multiple -> next tier above base
    count >= threshold            -> base
    otherwise                     -> no signal

`weight` is how much one unresolved signal of the rule counts
toward the trust score's fraud signal input.

============================================================
"""

import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import InvalidConfigError
from core.types import SeverityTier

from .types import AbuseSignalType, EventKind


@dataclass(frozen=True)
class RuleConfig:
    threshold: int
    window: timedelta
    base_severity: SeverityTier
    escalation_multiple: float = 2.0
    weight: float = 1.0
    enabled: bool = True
    events: Tuple[EventKind, ...] = ()
    scheduled: bool = False
    params: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    
    @property
    def escalation_threshold(self) -> int:
        return int(math.ceil(self.threshold * self.escalation_multiple))
    
    def classify(self, count: int) -> Optional[SeverityTier]:
        """Severity for `count`, or None below threshold."""
        if count >= self.escalation_threshold:
            return self.base_severity.next_up()
        if count >= self.threshold:
            return self.base_severity
        return None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "window_seconds": int(self.window.total_seconds()),
            "base_severity": self.base_severity.value,
            "escalation_multiple": self.escalation_multiple,
            "weight": self.weight,
            "enabled": self.enabled,
            "events": [e.value for e in self.events],
            "scheduled": self.scheduled,
            "params": dict(self.params),
        }


def _default_rules() -> Dict[AbuseSignalType, RuleConfig]:
    return {
        AbuseSignalType.REFUND_LOOP: RuleConfig(
            threshold=3,
            window=timedelta(days=7),
            base_severity=SeverityTier.MEDIUM,
            weight=1.0,
            events=(EventKind.REFUND_CREATED,),
        ),
        AbuseSignalType.PANIC_SPAM: RuleConfig(
            threshold=5,
            window=timedelta(hours=24),
            base_severity=SeverityTier.HIGH,
            weight=1.0,
            events=(EventKind.SAFETY_EVENT_CREATED,),
            params={"event_type": "panic"},
        ),
        AbuseSignalType.FAKE_MISMATCH: RuleConfig(
            threshold=3,
            window=timedelta(days=30),
            base_severity=SeverityTier.MEDIUM,
            weight=1.5,
            events=(EventKind.SAFETY_EVENT_CREATED,),
            params={"event_type": "identity_mismatch"},
        ),
        AbuseSignalType.BOT_VELOCITY: RuleConfig(
            threshold=120,
            window=timedelta(hours=1),
            base_severity=SeverityTier.HIGH,
            weight=1.0,
            scheduled=True,
        ),
        AbuseSignalType.PROMPT_ABUSE: RuleConfig(
            threshold=10,
            window=timedelta(hours=1),
            base_severity=SeverityTier.MEDIUM,
            escalation_multiple=3.0,
            weight=0.5,
            events=(EventKind.AI_INTERACTION_CREATED,),
        ),
        AbuseSignalType.CANCELLATION_FARMING: RuleConfig(
            threshold=5,
            window=timedelta(days=7),
            base_severity=SeverityTier.HIGH,
            weight=1.5,
            events=(EventKind.BOOKING_STATUS_CHANGED,),
            scheduled=True,
        ),
        AbuseSignalType.TOKEN_DRAIN: RuleConfig(
            threshold=5,
            window=timedelta(hours=24),
            base_severity=SeverityTier.HIGH,
            weight=2.0,
            events=(EventKind.TRANSACTION_CREATED,),
            params={"max_session_seconds": 60},
        ),
        AbuseSignalType.PAYOUT_VELOCITY: RuleConfig(
            threshold=3,
            window=timedelta(hours=1),
            base_severity=SeverityTier.MEDIUM,
            weight=1.5,
            events=(EventKind.PAYOUT_REQUESTED,),
        ),
        AbuseSignalType.PARALLEL_SESSIONS: RuleConfig(
            threshold=3,
            window=timedelta(minutes=5),
            base_severity=SeverityTier.MEDIUM,
            weight=0.5,
            events=(EventKind.SESSION_STARTED,),
        ),
    }


@dataclass(frozen=True)
class AbuseDetectionConfig:
    """Versioned rule table."""
    
    version: str = "2024.1"
    rules: Dict[AbuseSignalType, RuleConfig] = field(default_factory=_default_rules)
    scan_batch_size: int = 500
    retention_days: int = 90
    
    def rule(self, rule_type: AbuseSignalType) -> RuleConfig:
        try:
            return self.rules[rule_type]
        except KeyError:
            raise InvalidConfigError(
                key=f"abuse.rules.{rule_type.value}",
                value=None,
                reason="missing rule",
            )
    
    def rules_for_event(self, kind: EventKind) -> List[AbuseSignalType]:
        return [t for t, r in self.rules.items() if r.enabled and kind in r.events]
    
    def scheduled_rules(self) -> List[AbuseSignalType]:
        return [t for t, r in self.rules.items() if r.enabled and r.scheduled]
    
    def validate(self) -> List[str]:
        errors = []
        for rule_type in AbuseSignalType:
            rule = self.rules.get(rule_type)
            if rule is None:
                errors.append(f"abuse rule {rule_type.value} is not configured")
                continue
            if rule.threshold < 1:
                errors.append(f"abuse rule {rule_type.value}: threshold must be >= 1")
            if rule.escalation_multiple <= 1:
                errors.append(f"abuse rule {rule_type.value}: escalation_multiple must be > 1")
            if rule.window.total_seconds() <= 0:
                errors.append(f"abuse rule {rule_type.value}: window must be positive")
            if rule.weight < 0:
                errors.append(f"abuse rule {rule_type.value}: weight must be non-negative")
        if not 1 <= self.scan_batch_size <= 500:
            errors.append("abuse scan_batch_size must be within 1..500")
        return errors
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "rules": {t.value: r.to_dict() for t, r in self.rules.items()},
            "scan_batch_size": self.scan_batch_size,
            "retention_days": self.retention_days,
        }


def _rule_from_dict(data: Dict[str, Any], default: RuleConfig) -> RuleConfig:
    if "window_seconds" in data:
        window = timedelta(seconds=int(data["window_seconds"]))
    elif "window_hours" in data:
        window = timedelta(hours=float(data["window_hours"]))
    else:
        window = default.window
    events = data.get("events")
    params = dict(default.params)
    params.update(data.get("params") or {})
    return RuleConfig(
        threshold=int(data.get("threshold", default.threshold)),
        window=window,
        base_severity=SeverityTier.parse(data.get("base_severity"), default.base_severity),
        escalation_multiple=float(data.get("escalation_multiple", default.escalation_multiple)),
        weight=float(data.get("weight", default.weight)),
        enabled=bool(data.get("enabled", default.enabled)),
        events=tuple(EventKind(e) for e in events) if events is not None else default.events,
        scheduled=bool(data.get("scheduled", default.scheduled)),
        params=params,
    )


def load_config_from_dict(data: Dict[str, Any]) -> AbuseDetectionConfig:
    """
    Build the rule table from a dict such as
    `{"version": "...", "rules": {"refund_loop": {"threshold": 4}}}`.
    
    Rules not mentioned keep their defaults.
    """
    defaults = AbuseDetectionConfig()
    rules = dict(defaults.rules)
    for name, rule_data in (data.get("rules") or {}).items():
        try:
            rule_type = AbuseSignalType(name)
        except ValueError:
            raise InvalidConfigError(
                key=f"abuse.rules.{name}",
                value=name,
                reason="unknown rule",
            )
        rules[rule_type] = _rule_from_dict(rule_data or {}, rules[rule_type])
    return AbuseDetectionConfig(
        version=str(data.get("version", defaults.version)),
        rules=rules,
        scan_batch_size=int(data.get("scan_batch_size", defaults.scan_batch_size)),
        retention_days=int(data.get("retention_days", defaults.retention_days)),
    )


__all__ = ["RuleConfig", "AbuseDetectionConfig", "load_config_from_dict"]
