"""
Upstream Repositories - Document store implementations.

Each repository issues filtered/count queries against a
DocumentStore and coerces documents into frozen records. Counts
are pushed down to the store rather than accumulated in memory.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Sequence

from core.batching import chunked
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
from data_sources.store import DocumentStore, where


logger = logging.getLogger(__name__)


# ============================================================
# COLLECTION NAMES
# ============================================================

ACCOUNTS = "accounts"
SESSIONS = "sessions"
MESSAGES = "messages"
ACTIVITY = "activity"
REFUNDS = "refunds"
TRANSACTIONS = "transactions"
BOOKINGS = "bookings"
PAYOUTS = "payouts"
MODERATION_ACTIONS = "moderation_actions"
SAFETY_EVENTS = "safety_events"
AI_INTERACTIONS = "ai_interactions"
PERFORMANCE_KPIS = "performance_kpis"
RISK_PROFILES = "risk_profiles"
FRAUD_SIGNALS = "fraud_signals"


class _DocumentRepository:
    def __init__(self, store: DocumentStore):
        self._store = store


# ============================================================
# ACCOUNTS / SESSIONS / MESSAGES / ACTIVITY
# ============================================================


class DocumentAccountRepository(_DocumentRepository):
    
    async def get_accounts(self, account_ids: Sequence[str]) -> list[AccountRecord]:
        records: list[AccountRecord] = []
        for batch in chunked(sorted(set(account_ids))):
            docs = await self._store.find(ACCOUNTS, [where("id", "in", batch)])
            records.extend(AccountRecord.from_document(doc) for doc in docs)
        return [r for r in records if r.account_id]
    
    async def iter_account_id_pages(
        self,
        page_size: int,
        active_since: Optional[datetime] = None,
    ) -> AsyncIterator[list[str]]:
        """Page through account ids in id order (keyset pagination)."""
        cursor: Optional[str] = None
        while True:
            filters = []
            if cursor is not None:
                filters.append(where("id", ">", cursor))
            if active_since is not None:
                filters.append(where("last_active_at", ">=", active_since))
            docs = await self._store.find(ACCOUNTS, filters, order_by="id", limit=page_size)
            ids = [AccountRecord.from_document(doc).account_id for doc in docs]
            ids = [account_id for account_id in ids if account_id]
            if not ids:
                return
            yield ids
            if len(docs) < page_size:
                return
            cursor = ids[-1]


class DocumentSessionRepository(_DocumentRepository):
    
    async def list_sessions(self, account_ids: Sequence[str], since: datetime) -> list[SessionRecord]:
        if not account_ids:
            return []
        docs = await self._store.find(
            SESSIONS,
            [where("user_id", "in", list(account_ids)), where("created_at", ">=", since)],
        )
        return [SessionRecord.from_document(doc) for doc in docs]
    
    async def count_sessions(self, user_id: str, since: datetime) -> int:
        return await self._store.count(
            SESSIONS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )


class DocumentMessageRepository(_DocumentRepository):
    
    async def list_recent_messages(
        self,
        account_ids: Sequence[str],
        since: datetime,
        per_account_limit: int,
    ) -> list[MessageRecord]:
        messages: list[MessageRecord] = []
        for account_id in account_ids:
            docs = await self._store.find(
                MESSAGES,
                [where("sender_id", "==", account_id), where("created_at", ">=", since)],
                order_by="created_at",
                descending=True,
                limit=per_account_limit,
            )
            messages.extend(MessageRecord.from_document(doc) for doc in docs)
        return messages


class DocumentActivityRepository(_DocumentRepository):
    
    async def list_activity(self, account_ids: Sequence[str], since: datetime) -> list[ActivityRecord]:
        if not account_ids:
            return []
        docs = await self._store.find(
            ACTIVITY,
            [where("user_id", "in", list(account_ids)), where("created_at", ">=", since)],
        )
        return [ActivityRecord.from_document(doc) for doc in docs]
    
    async def count_actions(self, user_id: str, since: datetime) -> int:
        return await self._store.count(
            ACTIVITY,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )


# ============================================================
# COMMERCE
# ============================================================


class DocumentTransactionRepository(_DocumentRepository):
    
    async def list_token_transfers(
        self,
        account_ids: Sequence[str],
        since: datetime,
    ) -> list[TransactionRecord]:
        """Paid transactions sent or received by any of the accounts."""
        by_key: dict[Any, TransactionRecord] = {}
        for batch in chunked(sorted(set(account_ids))):
            for field_name in ("payer_id", "creator_id"):
                docs = await self._store.find(
                    TRANSACTIONS,
                    [where(field_name, "in", batch), where("created_at", ">=", since)],
                )
                for doc in docs:
                    record = TransactionRecord.from_document(doc)
                    if record.tokens > 0:
                        key = record.transaction_id or (record.payer_id, record.creator_id, record.created_at)
                        by_key[key] = record
        return list(by_key.values())
    
    async def count_refunds(self, user_id: str, since: datetime) -> int:
        return await self._store.count(
            REFUNDS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )
    
    async def count_short_paid_sessions(
        self,
        creator_id: str,
        since: datetime,
        max_session_seconds: float,
    ) -> int:
        return await self._store.count(
            TRANSACTIONS,
            [
                where("creator_id", "==", creator_id),
                where("created_at", ">=", since),
                where("tokens", ">", 0),
                where("session_seconds", "<", max_session_seconds),
            ],
        )


class DocumentBookingRepository(_DocumentRepository):
    
    async def list_host_bookings(self, host_id: str, since: datetime) -> list[BookingRecord]:
        docs = await self._store.find(
            BOOKINGS,
            [where("host_id", "==", host_id), where("created_at", ">=", since)],
        )
        return [BookingRecord.from_document(doc) for doc in docs]
    
    async def count_host_cancellations(self, host_id: str, since: datetime) -> int:
        """Host cancellations made since `since`, whenever the booking was created."""
        docs = await self._store.find(
            BOOKINGS,
            [
                where("host_id", "==", host_id),
                where("status", "==", "cancelled"),
                where("cancelled_by", "==", host_id),
            ],
        )
        bookings = [BookingRecord.from_document(doc) for doc in docs]
        return sum(1 for b in bookings if b.cancelled_on is not None and b.cancelled_on >= since)


class DocumentPayoutRepository(_DocumentRepository):
    
    async def list_payouts(self, user_id: str, since: datetime) -> list[PayoutRecord]:
        docs = await self._store.find(
            PAYOUTS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )
        return [PayoutRecord.from_document(doc) for doc in docs]
    
    async def count_payout_attempts(self, user_id: str, since: datetime) -> int:
        """Every payout request, whatever its outcome."""
        return await self._store.count(
            PAYOUTS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )


# ============================================================
# MODERATION / AI / PERFORMANCE / RISK
# ============================================================


class DocumentModerationRepository(_DocumentRepository):
    
    async def list_actions(self, user_id: str, since: datetime) -> list[ModerationActionRecord]:
        docs = await self._store.find(
            MODERATION_ACTIONS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )
        return [ModerationActionRecord.from_document(doc) for doc in docs]
    
    async def count_safety_events(
        self,
        user_id: str,
        event_type: str,
        since: datetime,
        outcome: Optional[str] = None,
    ) -> int:
        filters = [
            where("user_id", "==", user_id),
            where("event_type", "==", event_type),
            where("created_at", ">=", since),
        ]
        if outcome is not None:
            filters.append(where("outcome", "==", outcome))
        return await self._store.count(SAFETY_EVENTS, filters)


class DocumentAiInteractionRepository(_DocumentRepository):
    
    async def count_flagged(self, user_id: str, since: datetime) -> int:
        return await self._store.count(
            AI_INTERACTIONS,
            [
                where("user_id", "==", user_id),
                where("flagged", "==", True),
                where("created_at", ">=", since),
            ],
        )


class DocumentPerformanceRepository(_DocumentRepository):
    
    async def get_latest(self, user_id: str, since: datetime) -> Optional[PerformanceSnapshot]:
        docs = await self._store.find(
            PERFORMANCE_KPIS,
            [where("user_id", "==", user_id), where("period_end", ">=", since)],
            order_by="period_end",
            descending=True,
            limit=1,
        )
        return PerformanceSnapshot.from_document(docs[0]) if docs else None


class DocumentRiskRepository(_DocumentRepository):
    
    async def get_profile(self, user_id: str) -> Optional[RiskProfile]:
        docs = await self._store.find(
            RISK_PROFILES,
            [where("user_id", "==", user_id)],
            order_by="updated_at",
            descending=True,
            limit=1,
        )
        return RiskProfile.from_document(docs[0]) if docs else None
    
    async def count_fraud_signals(self, user_id: str, since: datetime) -> int:
        return await self._store.count(
            FRAUD_SIGNALS,
            [where("user_id", "==", user_id), where("created_at", ">=", since)],
        )


# ============================================================
# BUNDLE
# ============================================================


@dataclass
class UpstreamRepositories:
    """All read-only upstream repositories, wired once at startup."""
    accounts: DocumentAccountRepository
    sessions: DocumentSessionRepository
    messages: DocumentMessageRepository
    activity: DocumentActivityRepository
    transactions: DocumentTransactionRepository
    bookings: DocumentBookingRepository
    payouts: DocumentPayoutRepository
    moderation: DocumentModerationRepository
    ai_interactions: DocumentAiInteractionRepository
    performance: DocumentPerformanceRepository
    risk: DocumentRiskRepository
    
    @classmethod
    def from_store(cls, store: DocumentStore) -> "UpstreamRepositories":
        return cls(
            accounts=DocumentAccountRepository(store),
            sessions=DocumentSessionRepository(store),
            messages=DocumentMessageRepository(store),
            activity=DocumentActivityRepository(store),
            transactions=DocumentTransactionRepository(store),
            bookings=DocumentBookingRepository(store),
            payouts=DocumentPayoutRepository(store),
            moderation=DocumentModerationRepository(store),
            ai_interactions=DocumentAiInteractionRepository(store),
            performance=DocumentPerformanceRepository(store),
            risk=DocumentRiskRepository(store),
        )


__all__ = [
    "ACCOUNTS",
    "SESSIONS",
    "MESSAGES",
    "ACTIVITY",
    "REFUNDS",
    "TRANSACTIONS",
    "BOOKINGS",
    "PAYOUTS",
    "MODERATION_ACTIONS",
    "SAFETY_EVENTS",
    "AI_INTERACTIONS",
    "PERFORMANCE_KPIS",
    "RISK_PROFILES",
    "FRAUD_SIGNALS",
    "DocumentAccountRepository",
    "DocumentSessionRepository",
    "DocumentMessageRepository",
    "DocumentActivityRepository",
    "DocumentTransactionRepository",
    "DocumentBookingRepository",
    "DocumentPayoutRepository",
    "DocumentModerationRepository",
    "DocumentAiInteractionRepository",
    "DocumentPerformanceRepository",
    "DocumentRiskRepository",
    "UpstreamRepositories",
]
