"""
Data Sources Package - Read-only access to upstream platform data.

Provides:
- Frozen record types with neutral-default coercion (models)
- Per-domain read-only repository protocols (base)
- Document store query surface and in-memory store (store)
- aiohttp client for the platform query gateway (http)
- Document-backed repositories and their bundle (repositories)
"""

from data_sources.models import (
    AccountRecord,
    SessionRecord,
    MessageRecord,
    ActivityRecord,
    TransactionRecord,
    BookingRecord,
    PayoutRecord,
    ModerationActionRecord,
    PerformanceSnapshot,
    RiskProfile,
)
from data_sources.store import Filter, where, DocumentStore, InMemoryDocumentStore
from data_sources.http import HttpDocumentStore
from data_sources.repositories import UpstreamRepositories


__all__ = [
    "AccountRecord",
    "SessionRecord",
    "MessageRecord",
    "ActivityRecord",
    "TransactionRecord",
    "BookingRecord",
    "PayoutRecord",
    "ModerationActionRecord",
    "PerformanceSnapshot",
    "RiskProfile",
    "Filter",
    "where",
    "DocumentStore",
    "InMemoryDocumentStore",
    "HttpDocumentStore",
    "UpstreamRepositories",
]
