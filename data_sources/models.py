"""
Data Source Models - Read-only upstream record shapes.

Every upstream document is coerced into one of these frozen
records. Missing or malformed fields fall back to neutral values
(empty string, zero, False, None) instead of raising, so one bad
document never aborts a batch scan.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


# ============================================================
# COERCION HELPERS
# ============================================================


def as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def as_optional_str(value: Any) -> Optional[str]:
    text = as_str(value)
    return text or None


def as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result or result in (float("inf"), float("-inf")):
        return default
    return result


def as_int(value: Any, default: int = 0) -> int:
    return int(as_float(value, float(default)))


def as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    return default


def as_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO 8601 strings and epoch seconds."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def as_rate(value: Any) -> float:
    """A ratio clamped to [0, 1]."""
    return max(0.0, min(1.0, as_float(value)))


# ============================================================
# ACCOUNT DOMAIN
# ============================================================


@dataclass(frozen=True)
class AccountRecord:
    """Account identity with referral linkage."""
    account_id: str
    referred_by: Optional[str] = None
    created_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "AccountRecord":
        account_id = as_str(doc.get("id"))
        referred_by = as_optional_str(doc.get("referred_by"))
        if referred_by == account_id:
            referred_by = None
        return cls(
            account_id=account_id,
            referred_by=referred_by,
            created_at=as_datetime(doc.get("created_at")),
            last_active_at=as_datetime(doc.get("last_active_at")),
        )


@dataclass(frozen=True)
class SessionRecord:
    """Login session with network and device fingerprint."""
    account_id: str
    ip_address: Optional[str]
    device_fingerprint: Optional[str]
    started_at: Optional[datetime]
    duration_seconds: float = 0.0
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "SessionRecord":
        return cls(
            account_id=as_str(doc.get("user_id")),
            ip_address=as_optional_str(doc.get("ip_address")),
            device_fingerprint=as_optional_str(doc.get("device_fingerprint")),
            started_at=as_datetime(doc.get("created_at")),
            duration_seconds=max(0.0, as_float(doc.get("duration_seconds"))),
        )


@dataclass(frozen=True)
class MessageRecord:
    """A chat message sent by an account."""
    account_id: str
    text: str
    sent_at: Optional[datetime]
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "MessageRecord":
        return cls(
            account_id=as_str(doc.get("sender_id")),
            text=as_str(doc.get("text")),
            sent_at=as_datetime(doc.get("created_at")),
        )


@dataclass(frozen=True)
class ActivityRecord:
    """A single user action (like, swipe, view, message, call)."""
    account_id: str
    action: str
    occurred_at: Optional[datetime]
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ActivityRecord":
        return cls(
            account_id=as_str(doc.get("user_id")),
            action=as_str(doc.get("action"), "unknown"),
            occurred_at=as_datetime(doc.get("created_at")),
        )


# ============================================================
# COMMERCE DOMAIN
# ============================================================


@dataclass(frozen=True)
class TransactionRecord:
    """Paid interaction between a payer and a creator."""
    transaction_id: str
    payer_id: str
    creator_id: str
    tokens: int
    session_seconds: float
    created_at: Optional[datetime]
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "TransactionRecord":
        return cls(
            transaction_id=as_str(doc.get("id")),
            payer_id=as_str(doc.get("payer_id")),
            creator_id=as_str(doc.get("creator_id")),
            tokens=max(0, as_int(doc.get("tokens"))),
            session_seconds=max(0.0, as_float(doc.get("session_seconds"))),
            created_at=as_datetime(doc.get("created_at")),
        )


@dataclass(frozen=True)
class BookingRecord:
    """Calendar booking hosted by a creator."""
    booking_id: str
    host_id: str
    guest_id: str
    status: str
    cancelled_by: Optional[str]
    created_at: Optional[datetime]
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "BookingRecord":
        return cls(
            booking_id=as_str(doc.get("id")),
            host_id=as_str(doc.get("host_id")),
            guest_id=as_str(doc.get("guest_id")),
            status=as_str(doc.get("status"), "unknown").lower(),
            cancelled_by=as_optional_str(doc.get("cancelled_by")),
            created_at=as_datetime(doc.get("created_at")),
            cancelled_at=as_datetime(doc.get("cancelled_at")),
            updated_at=as_datetime(doc.get("updated_at")),
        )
    
    @property
    def cancelled_on(self) -> Optional[datetime]:
        """When the booking was cancelled; older documents only carry updated_at."""
        return self.cancelled_at or self.updated_at or self.created_at
    
    @property
    def cancelled_by_host(self) -> bool:
        return self.status == "cancelled" and self.cancelled_by == self.host_id
    
    @property
    def is_no_show(self) -> bool:
        return self.status == "no_show"
    
    @property
    def is_completed(self) -> bool:
        return self.status == "completed"


@dataclass(frozen=True)
class PayoutRecord:
    """Payout attempt to a creator."""
    user_id: str
    status: str
    disputed: bool
    created_at: Optional[datetime]
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "PayoutRecord":
        return cls(
            user_id=as_str(doc.get("user_id")),
            status=as_str(doc.get("status"), "unknown").lower(),
            disputed=as_bool(doc.get("disputed")),
            created_at=as_datetime(doc.get("created_at")),
        )
    
    @property
    def succeeded(self) -> bool:
        return self.status in ("paid", "completed", "succeeded")


# ============================================================
# MODERATION / PERFORMANCE / RISK DOMAINS
# ============================================================


@dataclass(frozen=True)
class ModerationActionRecord:
    """Enforcement action taken by moderators."""
    user_id: str
    action: str
    created_at: Optional[datetime]
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ModerationActionRecord":
        return cls(
            user_id=as_str(doc.get("user_id")),
            action=as_str(doc.get("action"), "unknown").lower(),
            created_at=as_datetime(doc.get("created_at")),
        )
    
    @property
    def is_warning(self) -> bool:
        return self.action == "warning"
    
    @property
    def is_ban(self) -> bool:
        return self.action in ("ban", "suspension")


@dataclass(frozen=True)
class PerformanceSnapshot:
    """Creator performance KPIs for a reporting period."""
    user_id: str
    completion_rate: float = 0.0
    avg_rating: float = 0.0
    refund_rate: float = 0.0
    sessions: int = 0
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "PerformanceSnapshot":
        return cls(
            user_id=as_str(doc.get("user_id")),
            completion_rate=as_rate(doc.get("completion_rate")),
            avg_rating=max(0.0, min(5.0, as_float(doc.get("avg_rating")))),
            refund_rate=as_rate(doc.get("refund_rate")),
            sessions=max(0, as_int(doc.get("sessions"))),
        )


@dataclass(frozen=True)
class RiskProfile:
    """Upstream risk assessment for a user."""
    user_id: str
    risk_score: float = 0.0
    
    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "RiskProfile":
        return cls(
            user_id=as_str(doc.get("user_id")),
            risk_score=max(0.0, min(100.0, as_float(doc.get("risk_score")))),
        )


__all__ = [
    "as_str",
    "as_optional_str",
    "as_float",
    "as_int",
    "as_bool",
    "as_datetime",
    "as_rate",
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
]
