"""
Abuse Detection - Remediation Policy.

============================================================
PURPOSE
============================================================
The "decide" stage: a static, total lookup from
(signal type, severity) to an auto action.

    low      -> none
    medium   -> warning
    high     -> rate_limit (bot_velocity, prompt_abuse,
                panic_spam, token_drain, payout_velocity,
                parallel_sessions)
                shadow_ban (fake_mismatch, cancellation_farming,
                refund_loop)
    critical -> freeze_wallet for wallet-impacting types,
                manual_review otherwise

Every pair is listed explicitly; a missing pair is a
configuration error, never a silent fallthrough.

============================================================
"""

import logging
from typing import Dict, Optional, Tuple

from core.exceptions import ConfigurationError
from core.types import SeverityTier
from remediation.types import ActionDecision, AutoAction

from .types import AbuseSignal, AbuseSignalType


logger = logging.getLogger(__name__)


T = AbuseSignalType
S = SeverityTier
A = AutoAction

ActionTable = Dict[Tuple[AbuseSignalType, SeverityTier], AutoAction]

DEFAULT_ACTION_TABLE: ActionTable = {
    (T.REFUND_LOOP, S.LOW): A.NONE,
    (T.REFUND_LOOP, S.MEDIUM): A.WARNING,
    (T.REFUND_LOOP, S.HIGH): A.SHADOW_BAN,
    (T.REFUND_LOOP, S.CRITICAL): A.FREEZE_WALLET,
    
    (T.PANIC_SPAM, S.LOW): A.NONE,
    (T.PANIC_SPAM, S.MEDIUM): A.WARNING,
    (T.PANIC_SPAM, S.HIGH): A.RATE_LIMIT,
    (T.PANIC_SPAM, S.CRITICAL): A.MANUAL_REVIEW,
    
    (T.FAKE_MISMATCH, S.LOW): A.NONE,
    (T.FAKE_MISMATCH, S.MEDIUM): A.WARNING,
    (T.FAKE_MISMATCH, S.HIGH): A.SHADOW_BAN,
    (T.FAKE_MISMATCH, S.CRITICAL): A.MANUAL_REVIEW,
    
    (T.BOT_VELOCITY, S.LOW): A.NONE,
    (T.BOT_VELOCITY, S.MEDIUM): A.WARNING,
    (T.BOT_VELOCITY, S.HIGH): A.RATE_LIMIT,
    (T.BOT_VELOCITY, S.CRITICAL): A.MANUAL_REVIEW,
    
    (T.PROMPT_ABUSE, S.LOW): A.NONE,
    (T.PROMPT_ABUSE, S.MEDIUM): A.WARNING,
    (T.PROMPT_ABUSE, S.HIGH): A.RATE_LIMIT,
    (T.PROMPT_ABUSE, S.CRITICAL): A.MANUAL_REVIEW,
    
    (T.CANCELLATION_FARMING, S.LOW): A.NONE,
    (T.CANCELLATION_FARMING, S.MEDIUM): A.WARNING,
    (T.CANCELLATION_FARMING, S.HIGH): A.SHADOW_BAN,
    (T.CANCELLATION_FARMING, S.CRITICAL): A.FREEZE_WALLET,
    
    (T.TOKEN_DRAIN, S.LOW): A.NONE,
    (T.TOKEN_DRAIN, S.MEDIUM): A.WARNING,
    (T.TOKEN_DRAIN, S.HIGH): A.RATE_LIMIT,
    (T.TOKEN_DRAIN, S.CRITICAL): A.FREEZE_WALLET,
    
    (T.PAYOUT_VELOCITY, S.LOW): A.NONE,
    (T.PAYOUT_VELOCITY, S.MEDIUM): A.WARNING,
    (T.PAYOUT_VELOCITY, S.HIGH): A.RATE_LIMIT,
    (T.PAYOUT_VELOCITY, S.CRITICAL): A.FREEZE_WALLET,
    
    (T.PARALLEL_SESSIONS, S.LOW): A.NONE,
    (T.PARALLEL_SESSIONS, S.MEDIUM): A.WARNING,
    (T.PARALLEL_SESSIONS, S.HIGH): A.RATE_LIMIT,
    (T.PARALLEL_SESSIONS, S.CRITICAL): A.MANUAL_REVIEW,
}


def missing_pairs(table: ActionTable) -> list:
    """Pairs of the full type x severity grid absent from `table`."""
    return [
        (signal_type, severity)
        for signal_type in AbuseSignalType
        for severity in SeverityTier.ordered()
        if (signal_type, severity) not in table
    ]


class RemediationPolicy:
    """Maps abuse signals to action decisions."""
    
    def __init__(self, table: Optional[ActionTable] = None):
        self._table = dict(table if table is not None else DEFAULT_ACTION_TABLE)
        missing = missing_pairs(self._table)
        if missing:
            names = ", ".join(f"{t.value}/{s.value}" for t, s in missing)
            raise ConfigurationError(
                f"Remediation table is not total, missing: {names}",
                config_key="remediation.action_table",
            )
    
    def resolve(self, signal_type: AbuseSignalType, severity: SeverityTier) -> AutoAction:
        return self._table[(signal_type, severity)]
    
    def decide(self, signal: AbuseSignal) -> ActionDecision:
        action = self.resolve(signal.signal_type, signal.severity)
        logger.debug(
            f"Policy: {signal.signal_type.value}/{signal.severity.value} "
            f"-> {action.value} for {signal.user_id}"
        )
        return ActionDecision(
            signal_id=signal.signal_id,
            target_id=signal.user_id,
            action=action,
            severity=signal.severity,
            reason=(
                f"{signal.signal_type.value}: {signal.count} events "
                f"in {int(signal.window.total_seconds())}s (threshold {signal.threshold})"
            ),
            metadata={
                "signal_type": signal.signal_type.value,
                "count": signal.count,
                "rule_version": signal.rule_version,
            },
        )


__all__ = [
    "ActionTable",
    "DEFAULT_ACTION_TABLE",
    "missing_pairs",
    "RemediationPolicy",
]
