"""
Tests for the Core Module.

============================================================
PURPOSE
============================================================
1. Deterministic identifiers
2. Batching limits
3. Severity tier ordering
4. Error classification
5. Mock clock

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.batching import MAX_BATCH_SIZE, chunked, dedupe_preserving_order
from core.clock import MockClock, ensure_utc
from core.exceptions import (
    DataSourceError,
    DataSourceUnavailableError,
    InvalidConfigError,
    JobLockedError,
    JobNotFoundError,
    PermissionDeniedError,
    PersistenceError,
    UnauthenticatedError,
)
from core.identifiers import (
    abuse_signal_id_for,
    account_set_key,
    action_record_id_for,
    case_id_for,
    cluster_id_for,
    window_bucket,
)
from core.types import SeverityTier


# ============================================================
# IDENTIFIER TESTS
# ============================================================

class TestIdentifiers:
    """Stable ids derived from content."""
    
    def test_cluster_id_ignores_order_and_duplicates(self):
        assert cluster_id_for(["b", "a", "c"]) == cluster_id_for(["c", "a", "b", "a"])
        assert cluster_id_for(["a", "b"]).startswith("cl_")
    
    def test_cluster_and_case_ids_differ_for_same_set(self):
        accounts = ["u1", "u2", "u3"]
        assert cluster_id_for(accounts)[3:] != case_id_for(accounts)[3:]
        assert case_id_for(accounts).startswith("fc_")
    
    def test_account_set_key_sorted(self):
        assert account_set_key(["z", "a", "m"]) == "a,m,z"
    
    def test_signal_id_stable_within_window(self):
        window = timedelta(hours=1)
        start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        first = abuse_signal_id_for("bot_velocity", "u1", start + timedelta(minutes=5), window)
        second = abuse_signal_id_for("bot_velocity", "u1", start + timedelta(minutes=55), window)
        later = abuse_signal_id_for("bot_velocity", "u1", start + timedelta(minutes=65), window)
        
        assert first == second
        assert first != later
        assert first.startswith("as_")
    
    def test_signal_id_depends_on_user_and_rule(self):
        window = timedelta(days=1)
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert abuse_signal_id_for("refund_loop", "u1", at, window) != abuse_signal_id_for("refund_loop", "u2", at, window)
        assert abuse_signal_id_for("refund_loop", "u1", at, window) != abuse_signal_id_for("panic_spam", "u1", at, window)
    
    def test_window_bucket(self):
        at = datetime.fromtimestamp(7200, tz=timezone.utc)
        assert window_bucket(at, timedelta(hours=1)) == 2
    
    def test_action_record_id(self):
        assert action_record_id_for("as_1", "u1", "freeze_wallet") == action_record_id_for("as_1", "u1", "freeze_wallet")
        assert action_record_id_for("as_1", "u1", "freeze_wallet") != action_record_id_for("as_1", "u1", "warning")


# ============================================================
# BATCHING TESTS
# ============================================================

class TestBatching:
    """Batch sizes never exceed the persistence limit."""
    
    def test_chunked_splits_evenly(self):
        batches = list(chunked(range(7), 3))
        assert batches == [[0, 1, 2], [3, 4, 5], [6]]
    
    def test_chunked_clamps_to_max(self):
        batches = list(chunked(range(1200), 10_000))
        assert [len(b) for b in batches] == [MAX_BATCH_SIZE, MAX_BATCH_SIZE, 200]
    
    def test_chunked_clamps_non_positive_size(self):
        assert list(chunked(["a", "b"], 0)) == [["a"], ["b"]]
    
    def test_chunked_empty(self):
        assert list(chunked([], 5)) == []
    
    def test_dedupe_preserving_order(self):
        assert dedupe_preserving_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


# ============================================================
# SEVERITY TESTS
# ============================================================

class TestSeverityTier:
    
    def test_ordering(self):
        assert SeverityTier.LOW.rank < SeverityTier.MEDIUM.rank < SeverityTier.HIGH.rank < SeverityTier.CRITICAL.rank
    
    def test_next_up_saturates(self):
        assert SeverityTier.MEDIUM.next_up() == SeverityTier.HIGH
        assert SeverityTier.HIGH.next_up() == SeverityTier.CRITICAL
        assert SeverityTier.CRITICAL.next_up() == SeverityTier.CRITICAL
    
    def test_parse_falls_back(self):
        assert SeverityTier.parse("HIGH", SeverityTier.LOW) == SeverityTier.HIGH
        assert SeverityTier.parse("bogus", SeverityTier.LOW) == SeverityTier.LOW
        assert SeverityTier.parse(None, SeverityTier.MEDIUM) == SeverityTier.MEDIUM


# ============================================================
# EXCEPTION TESTS
# ============================================================

class TestExceptions:
    """Error classification drives job failure handling."""
    
    def test_datastore_outage_is_fatal(self):
        error = DataSourceUnavailableError("down", domain="sessions")
        assert error.is_fatal
        assert not error.is_recoverable
    
    def test_data_source_error_is_transient(self):
        error = DataSourceError("timeout", domain="bookings")
        assert error.is_recoverable
        assert not error.is_fatal
    
    def test_persistence_error_keeps_cause(self):
        cause = RuntimeError("disk full")
        error = PersistenceError("write failed", operation="upsert", cause=cause)
        assert error.cause is cause
        assert error.context["cause_type"] == "RuntimeError"
        assert error.is_recoverable
    
    def test_invalid_config_not_recoverable(self):
        error = InvalidConfigError(key="threshold", value=-1, reason="must be positive")
        assert not error.is_recoverable
        assert error.to_dict()["type"] == "InvalidConfigError"
    
    def test_authorization_codes(self):
        assert UnauthenticatedError("no identity").code == "unauthenticated"
        assert PermissionDeniedError("nope", caller_id="u1").code == "permission-denied"
    
    def test_job_errors(self):
        locked = JobLockedError("cluster_scan", holder="host:1")
        assert locked.message == "Job already running: cluster_scan"
        assert locked.is_recoverable
        
        missing = JobNotFoundError("nope")
        assert not missing.is_recoverable
        assert not missing.is_fatal


# ============================================================
# CLOCK TESTS
# ============================================================

class TestClock:
    
    def test_mock_clock_advance(self):
        clock = MockClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        clock.advance(hours=2)
        assert clock.now() == datetime(2024, 1, 1, 2, tzinfo=timezone.utc)
        assert clock.since(timedelta(hours=1)) == datetime(2024, 1, 1, 1, tzinfo=timezone.utc)
    
    def test_mock_clock_naive_start_is_utc(self):
        clock = MockClock(datetime(2024, 1, 1))
        assert clock.now().tzinfo == timezone.utc
    
    def test_ensure_utc(self):
        assert ensure_utc(datetime(2024, 1, 1)).tzinfo == timezone.utc
