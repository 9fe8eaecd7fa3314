"""
Abuse Detection - Rules.

============================================================
PURPOSE
============================================================
One class per abuse rule. A rule only knows how to count
qualifying upstream records for one account inside its
rolling window; thresholds and severity live in RuleConfig
and the engine.

rule                  counts
refund_loop           refunds requested by the payer
panic_spam            panic safety events raised by the user
fake_mismatch         identity mismatch reports against the user
bot_velocity          activity events by the user
prompt_abuse          flagged AI interactions by the user
cancellation_farming  host-initiated booking cancellations
token_drain           paid sessions shorter than N seconds
                      earned by the creator
payout_velocity       payout requests by the user
parallel_sessions     sessions started by the user

All counting is done with count queries against the
datastore; rules hold no state between evaluations.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict

from data_sources.base import (
    ActivityReader,
    AiInteractionReader,
    BookingReader,
    ModerationReader,
    PayoutReader,
    SessionReader,
    TransactionReader,
)
from data_sources.repositories import UpstreamRepositories

from .config import AbuseDetectionConfig, RuleConfig
from .types import AbuseSignalType, PlatformEvent


logger = logging.getLogger(__name__)


class AbuseRule(ABC):
    """Abstract base class for abuse rules."""
    
    signal_type: AbuseSignalType
    
    def __init__(self, config: RuleConfig):
        self.config = config
    
    @property
    def name(self) -> str:
        return self.signal_type.value
    
    def applies_to(self, event: PlatformEvent) -> bool:
        """Whether an event of a bound kind is relevant to this rule."""
        return True
    
    @abstractmethod
    async def count(self, user_id: str, since: datetime) -> int:
        """Qualifying records for `user_id` since `since`."""
        pass


class RefundLoopRule(AbuseRule):
    signal_type = AbuseSignalType.REFUND_LOOP
    
    def __init__(self, config: RuleConfig, transactions: TransactionReader):
        super().__init__(config)
        self._transactions = transactions
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._transactions.count_refunds(user_id, since)


class SafetyEventRule(AbuseRule):
    """Counts safety events of one type (`params["event_type"]`)."""
    
    def __init__(self, config: RuleConfig, moderation: ModerationReader):
        super().__init__(config)
        self._moderation = moderation
    
    @property
    def event_type(self) -> str:
        return str(self.config.params.get("event_type", ""))
    
    def applies_to(self, event: PlatformEvent) -> bool:
        return str(event.attributes.get("event_type", "")).lower() == self.event_type
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._moderation.count_safety_events(user_id, self.event_type, since)


class PanicSpamRule(SafetyEventRule):
    signal_type = AbuseSignalType.PANIC_SPAM


class FakeMismatchRule(SafetyEventRule):
    signal_type = AbuseSignalType.FAKE_MISMATCH


class BotVelocityRule(AbuseRule):
    signal_type = AbuseSignalType.BOT_VELOCITY
    
    def __init__(self, config: RuleConfig, activity: ActivityReader):
        super().__init__(config)
        self._activity = activity
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._activity.count_actions(user_id, since)


class PromptAbuseRule(AbuseRule):
    signal_type = AbuseSignalType.PROMPT_ABUSE
    
    def __init__(self, config: RuleConfig, ai_interactions: AiInteractionReader):
        super().__init__(config)
        self._ai_interactions = ai_interactions
    
    def applies_to(self, event: PlatformEvent) -> bool:
        flagged = event.attributes.get("flagged")
        return flagged is None or bool(flagged)
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._ai_interactions.count_flagged(user_id, since)


class CancellationFarmingRule(AbuseRule):
    signal_type = AbuseSignalType.CANCELLATION_FARMING
    
    def __init__(self, config: RuleConfig, bookings: BookingReader):
        super().__init__(config)
        self._bookings = bookings
    
    def applies_to(self, event: PlatformEvent) -> bool:
        return str(event.attributes.get("status", "")).lower() == "cancelled"
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._bookings.count_host_cancellations(user_id, since)


class TokenDrainRule(AbuseRule):
    signal_type = AbuseSignalType.TOKEN_DRAIN
    
    def __init__(self, config: RuleConfig, transactions: TransactionReader):
        super().__init__(config)
        self._transactions = transactions
    
    @property
    def max_session_seconds(self) -> int:
        return int(self.config.params.get("max_session_seconds", 60))
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._transactions.count_short_paid_sessions(
            user_id, since, self.max_session_seconds
        )


class PayoutVelocityRule(AbuseRule):
    """Payout requests in the window, failed and pending ones included."""
    
    signal_type = AbuseSignalType.PAYOUT_VELOCITY
    
    def __init__(self, config: RuleConfig, payouts: PayoutReader):
        super().__init__(config)
        self._payouts = payouts
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._payouts.count_payout_attempts(user_id, since)


class ParallelSessionsRule(AbuseRule):
    signal_type = AbuseSignalType.PARALLEL_SESSIONS
    
    def __init__(self, config: RuleConfig, sessions: SessionReader):
        super().__init__(config)
        self._sessions = sessions
    
    async def count(self, user_id: str, since: datetime) -> int:
        return await self._sessions.count_sessions(user_id, since)


def create_default_rules(
    repos: UpstreamRepositories,
    config: AbuseDetectionConfig,
) -> Dict[AbuseSignalType, AbuseRule]:
    """One rule instance per configured rule type."""
    factories = {
        AbuseSignalType.REFUND_LOOP: lambda c: RefundLoopRule(c, repos.transactions),
        AbuseSignalType.PANIC_SPAM: lambda c: PanicSpamRule(c, repos.moderation),
        AbuseSignalType.FAKE_MISMATCH: lambda c: FakeMismatchRule(c, repos.moderation),
        AbuseSignalType.BOT_VELOCITY: lambda c: BotVelocityRule(c, repos.activity),
        AbuseSignalType.PROMPT_ABUSE: lambda c: PromptAbuseRule(c, repos.ai_interactions),
        AbuseSignalType.CANCELLATION_FARMING: lambda c: CancellationFarmingRule(c, repos.bookings),
        AbuseSignalType.TOKEN_DRAIN: lambda c: TokenDrainRule(c, repos.transactions),
        AbuseSignalType.PAYOUT_VELOCITY: lambda c: PayoutVelocityRule(c, repos.payouts),
        AbuseSignalType.PARALLEL_SESSIONS: lambda c: ParallelSessionsRule(c, repos.sessions),
    }
    return {
        rule_type: factory(config.rule(rule_type))
        for rule_type, factory in factories.items()
    }


__all__ = [
    "AbuseRule",
    "RefundLoopRule",
    "SafetyEventRule",
    "PanicSpamRule",
    "FakeMismatchRule",
    "BotVelocityRule",
    "PromptAbuseRule",
    "CancellationFarmingRule",
    "TokenDrainRule",
    "PayoutVelocityRule",
    "ParallelSessionsRule",
    "create_default_rules",
]
