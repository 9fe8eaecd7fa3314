"""
Upstream Repositories - Read-only interfaces per data domain.

The engine never talks to raw upstream document shapes. Each
domain (accounts, sessions, messages, activity, transactions,
bookings, payouts, moderation, AI interactions, performance,
risk) is reached through one of these protocols, so detectors
and scorers can be tested against fakes.

None of these interfaces expose a write operation.
"""

from datetime import datetime
from typing import AsyncIterator, Optional, Protocol, Sequence

from data_sources.models import (
    AccountRecord,
    ActivityRecord,
    BookingRecord,
    MessageRecord,
    ModerationActionRecord,
    PayoutRecord,
    PerformanceSnapshot,
    RiskProfile,
    SessionRecord,
    TransactionRecord,
)


class AccountReader(Protocol):
    async def get_accounts(self, account_ids: Sequence[str]) -> list[AccountRecord]: ...
    
    def iter_account_id_pages(
        self,
        page_size: int,
        active_since: Optional[datetime] = None,
    ) -> AsyncIterator[list[str]]: ...


class SessionReader(Protocol):
    async def list_sessions(
        self, account_ids: Sequence[str], since: datetime
    ) -> list[SessionRecord]: ...
    
    async def count_sessions(self, user_id: str, since: datetime) -> int: ...


class MessageReader(Protocol):
    async def list_recent_messages(
        self, account_ids: Sequence[str], since: datetime, per_account_limit: int
    ) -> list[MessageRecord]: ...


class ActivityReader(Protocol):
    async def list_activity(
        self, account_ids: Sequence[str], since: datetime
    ) -> list[ActivityRecord]: ...
    
    async def count_actions(self, user_id: str, since: datetime) -> int: ...


class TransactionReader(Protocol):
    async def list_token_transfers(
        self, account_ids: Sequence[str], since: datetime
    ) -> list[TransactionRecord]: ...
    
    async def count_refunds(self, user_id: str, since: datetime) -> int: ...
    
    async def count_short_paid_sessions(
        self, creator_id: str, since: datetime, max_session_seconds: float
    ) -> int: ...


class BookingReader(Protocol):
    async def list_host_bookings(self, host_id: str, since: datetime) -> list[BookingRecord]: ...
    
    async def count_host_cancellations(self, host_id: str, since: datetime) -> int: ...


class PayoutReader(Protocol):
    async def list_payouts(self, user_id: str, since: datetime) -> list[PayoutRecord]: ...
    
    async def count_payout_attempts(self, user_id: str, since: datetime) -> int: ...


class ModerationReader(Protocol):
    async def list_actions(self, user_id: str, since: datetime) -> list[ModerationActionRecord]: ...
    
    async def count_safety_events(
        self,
        user_id: str,
        event_type: str,
        since: datetime,
        outcome: Optional[str] = None,
    ) -> int: ...


class AiInteractionReader(Protocol):
    async def count_flagged(self, user_id: str, since: datetime) -> int: ...


class PerformanceReader(Protocol):
    async def get_latest(self, user_id: str, since: datetime) -> Optional[PerformanceSnapshot]: ...


class RiskReader(Protocol):
    async def get_profile(self, user_id: str) -> Optional[RiskProfile]: ...
    
    async def count_fraud_signals(self, user_id: str, since: datetime) -> int: ...


__all__ = [
    "AccountReader",
    "SessionReader",
    "MessageReader",
    "ActivityReader",
    "TransactionReader",
    "BookingReader",
    "PayoutReader",
    "ModerationReader",
    "AiInteractionReader",
    "PerformanceReader",
    "RiskReader",
]
