"""
Abuse Detection Package - Per-Account Abuse Rules.

============================================================
PURPOSE
============================================================
Detect -> decide, for individual accounts:

- rules: nine count-in-window rules over upstream data
- config: versioned threshold table, two-tier severity
- engine: event-triggered and scheduled evaluation, signal
  persistence and lifecycle
- policy: total (type, severity) -> auto action table

The resulting ActionDecisions are applied by the remediation
package.

============================================================
"""

from .types import (
    AbuseSignalType,
    EventKind,
    SignalStatus,
    PlatformEvent,
    AbuseSignal,
    DetectionResult,
)
from .config import RuleConfig, AbuseDetectionConfig, load_config_from_dict
from .rules import AbuseRule, create_default_rules
from .policy import DEFAULT_ACTION_TABLE, RemediationPolicy, missing_pairs
from .engine import AbuseDetectionEngine, AbuseSignalWeights, SignalNotFoundError


__all__ = [
    "AbuseSignalType",
    "EventKind",
    "SignalStatus",
    "PlatformEvent",
    "AbuseSignal",
    "DetectionResult",
    "RuleConfig",
    "AbuseDetectionConfig",
    "load_config_from_dict",
    "AbuseRule",
    "create_default_rules",
    "DEFAULT_ACTION_TABLE",
    "RemediationPolicy",
    "missing_pairs",
    "AbuseDetectionEngine",
    "AbuseSignalWeights",
    "SignalNotFoundError",
]

__version__ = "1.0.0"
