"""
Remediation Package - Action Executor.

============================================================
PURPOSE
============================================================
The "act" stage. Receives ActionDecisions (from the abuse
policy or the case escalator) and applies them to the
engine-owned enforcement record of the target account.

============================================================
COMPONENTS
============================================================
- types: AutoAction, ActionDecision, ActionOutcome
- config: RemediationConfig (dry run, notice texts)
- models / repository: enforcement flags, action log, notices
- executor: ActionExecutor

============================================================
"""

from .types import AutoAction, ActionStatus, ActionDecision, ActionOutcome
from .config import RemediationConfig, load_config_from_dict
from .executor import ActionExecutor


__all__ = [
    "AutoAction",
    "ActionStatus",
    "ActionDecision",
    "ActionOutcome",
    "RemediationConfig",
    "load_config_from_dict",
    "ActionExecutor",
]

__version__ = "1.0.0"
