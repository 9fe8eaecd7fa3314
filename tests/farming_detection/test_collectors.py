"""
Tests for Farming Detection Collectors.

============================================================
PURPOSE
============================================================
1. Shared IP / device grouping and confidence curves
2. Behavioral similarity and message scripts
3. Referral cycles (including out-of-batch referrers)
4. Synchronized activity matching
5. Token laundering cycles
6. Fail-safe collector execution

============================================================
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from core.exceptions import DataSourceUnavailableError
from data_sources.models import MessageRecord, SessionRecord, TransactionRecord
from data_sources.repositories import ACCOUNTS, ACTIVITY, MESSAGES, SESSIONS, TRANSACTIONS
from farming_detection.collectors import (
    BehavioralSimilarityCollector,
    IpCorrelationCollector,
    MessageScriptCollector,
    ReferralLoopCollector,
    SynchronizedActivityCollector,
    TokenLaunderingCollector,
    create_default_collectors,
)
from farming_detection.collectors.behavior import (
    count_synchronized_pairs,
    detect_message_scripts,
    detect_synchronized_activity,
    script_samples,
    tokenize,
)
from farming_detection.collectors.network import detect_shared_devices, detect_shared_ips
from farming_detection.collectors.laundering import (
    detect_token_laundering,
    find_token_cycles,
    transfer_graph,
)
from farming_detection.collectors.referral import find_referral_cycles
from farming_detection.config import (
    DeviceCorrelationConfig,
    IpCorrelationConfig,
    MessageScriptConfig,
    SynchronizedActivityConfig,
    TokenLaunderingConfig,
)
from farming_detection.types import SignalType


# ============================================================
# FIXTURES
# ============================================================

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _session(account_id, ip=None, device=None, at=NOW):
    return SessionRecord(
        account_id=account_id,
        ip_address=ip,
        device_fingerprint=device,
        started_at=at,
    )


def _message(account_id, text):
    return MessageRecord(account_id=account_id, text=text, sent_at=NOW)


SCRIPT = [
    "Hey there, check out my profile for something special",
    "I only answer on the other app, add me there please",
    "Send me a gift and I will send you a private photo",
]


# ============================================================
# NETWORK TESTS
# ============================================================

class TestSharedIp:
    """Accounts grouped by session IP."""
    
    def test_three_accounts_minimum(self):
        sessions = [_session("a", ip="10.0.0.1"), _session("b", ip="10.0.0.1")]
        assert detect_shared_ips(sessions, IpCorrelationConfig(), NOW) == []
    
    def test_confidence_curve(self):
        three = [_session(a, ip="10.0.0.1") for a in ("a", "b", "c")]
        five = [_session(a, ip="10.0.0.2") for a in ("a", "b", "c", "d", "e")]
        
        clusters = detect_shared_ips(three + five, IpCorrelationConfig(), NOW)
        by_size = {c.size: c for c in clusters}
        
        assert by_size[3].confidence == 0.5
        assert by_size[5].confidence == 0.7
        assert by_size[5].signals[0].evidence["ip_address"] == "10.0.0.2"
    
    def test_confidence_capped(self):
        sessions = [_session(f"u{i}", ip="10.0.0.9") for i in range(40)]
        clusters = detect_shared_ips(sessions, IpCorrelationConfig(), NOW)
        assert clusters[0].confidence == 0.95
    
    def test_repeated_sessions_count_once(self):
        sessions = [_session("a", ip="10.0.0.1") for _ in range(5)] + [_session("b", ip="10.0.0.1")]
        assert detect_shared_ips(sessions, IpCorrelationConfig(), NOW) == []


class TestSharedDevice:
    
    def test_pair_sharing_device(self):
        sessions = [_session("a", device="fp-1"), _session("b", device="fp-1"), _session("c", device=None)]
        clusters = detect_shared_devices(sessions, DeviceCorrelationConfig(), NOW)
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"a", "b"})
        assert clusters[0].confidence == 0.6
        assert clusters[0].signals[0].type == SignalType.DEVICE_CORRELATION
    
    @pytest.mark.asyncio
    async def test_collector_reads_sessions(self, store, repos, clock):
        at = (NOW - timedelta(days=1)).isoformat()
        store.add(SESSIONS, *[
            {"user_id": a, "ip_address": "192.168.1.5", "created_at": at} for a in ("a", "b", "c")
        ])
        store.add(SESSIONS, {"user_id": "d", "ip_address": "192.168.1.5", "created_at": (NOW - timedelta(days=90)).isoformat()})
        
        result = await IpCorrelationCollector(repos.sessions, clock=clock).run(["a", "b", "c", "d"])
        
        assert result.succeeded
        assert len(result.clusters) == 1
        assert result.clusters[0].account_ids == frozenset({"a", "b", "c"})


# ============================================================
# BEHAVIOR TESTS
# ============================================================

class TestMessageScripts:
    """Identical long messages across a pair of accounts."""
    
    def test_length_is_strictly_greater(self):
        exactly_twenty = "x" * 20
        messages = [
            _message("a", exactly_twenty),
            _message("a", "y" * 21),
        ]
        samples = script_samples(messages, 20)
        assert samples == {"a": {"y" * 21}}
    
    def test_three_identical_messages(self):
        samples = {"a": set(SCRIPT), "b": set(SCRIPT) | {"something else entirely here"}, "c": {SCRIPT[0]}}
        clusters = detect_message_scripts(samples, MessageScriptConfig(), NOW)
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"a", "b"})
        assert clusters[0].confidence == 0.9
        assert clusters[0].signals[0].evidence["identical_count"] == 3
    
    @pytest.mark.asyncio
    async def test_collector(self, store, repos, clock):
        for account in ("a", "b"):
            for i, text in enumerate(SCRIPT):
                store.add(MESSAGES, {
                    "sender_id": account,
                    "text": text,
                    "created_at": (NOW - timedelta(hours=i + 1)).isoformat(),
                })
        
        clusters = await MessageScriptCollector(repos.messages, clock=clock).collect(["a", "b"])
        
        assert [c.account_ids for c in clusters] == [frozenset({"a", "b"})]


class TestBehavioralSimilarity:
    
    def test_tokenize_min_length(self):
        assert tokenize("Hi there, GOOD day to you", 3) == {"there", "good", "day", "you"}
    
    @pytest.mark.asyncio
    async def test_identical_profiles_cluster(self, store, repos, clock):
        for account in ("a", "b"):
            for hour in (1, 2, 3):
                store.add(ACTIVITY, {
                    "user_id": account,
                    "action": "swipe",
                    "created_at": NOW.replace(hour=hour).isoformat(),
                })
            store.add(MESSAGES, {
                "sender_id": account,
                "text": "hello darling send tokens",
                "created_at": NOW.replace(hour=4).isoformat(),
            })
        store.add(ACTIVITY, {"user_id": "c", "action": "view", "created_at": NOW.replace(hour=9).isoformat()})
        
        collector = BehavioralSimilarityCollector(repos.sessions, repos.activity, repos.messages, clock=clock)
        clusters = await collector.collect(["a", "b", "c"])
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"a", "b"})
        assert clusters[0].confidence == 1.0


class TestSynchronizedActivity:
    
    def test_greedy_matching(self):
        left = [0.0, 100.0, 1000.0]
        right = [50.0, 60.0, 5000.0]
        assert count_synchronized_pairs(left, right, 300) == 2
    
    def test_each_timestamp_used_once(self):
        assert count_synchronized_pairs([0.0], [1.0, 2.0, 3.0], 300) == 1
    
    def test_detects_lockstep_pair(self):
        base = NOW.timestamp()
        timelines = {
            "a": [base, base + 3600, base + 7200],
            "b": [base + 10, base + 3610, base + 7210],
            "c": [base + 100_000, base + 200_000, base + 300_000],
            "d": [base + 50_000],
        }
        clusters = detect_synchronized_activity(timelines, SynchronizedActivityConfig(), NOW)
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"a", "b"})
        assert clusters[0].confidence == 1.0
    
    def test_short_timelines_compared(self):
        base = NOW.timestamp()
        timelines = {"a": [base, base + 3600], "b": [base + 10, base + 3610], "c": []}
        
        clusters = detect_synchronized_activity(timelines, SynchronizedActivityConfig(), NOW)
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"a", "b"})
        assert clusters[0].signals[0].evidence["synchronization"] == 1.0
    
    @pytest.mark.asyncio
    async def test_collector(self, store, repos, clock):
        for account, offset in (("a", 0), ("b", 30)):
            for hour in (1, 5, 9):
                at = NOW.replace(hour=hour) + timedelta(seconds=offset)
                store.add(ACTIVITY, {"user_id": account, "action": "like", "created_at": at.isoformat()})
        
        clusters = await SynchronizedActivityCollector(repos.activity, clock=clock).collect(["a", "b"])
        assert len(clusters) == 1


# ============================================================
# REFERRAL TESTS
# ============================================================

class TestReferralLoops:
    """Cycles in the account -> referrer graph."""
    
    def test_find_cycle(self):
        referrers = {"a": "b", "b": "c", "c": "a", "d": "a", "e": None}
        cycles = find_referral_cycles(referrers)
        assert cycles == [["a", "b", "c"]]
    
    def test_two_account_cycle(self):
        assert find_referral_cycles({"x": "y", "y": "x"}) == [["x", "y"]]
    
    def test_chain_without_cycle(self):
        assert find_referral_cycles({"a": "b", "b": "c", "c": None}) == []
    
    def test_self_referral_is_a_cycle(self):
        assert find_referral_cycles({"a": "a", "b": "a"}) == [["a"]]
    
    def test_cycles_start_at_smallest_id(self):
        referrers = {"q": "p", "p": "r", "r": "q", "y": "x", "x": "y"}
        assert find_referral_cycles(referrers) == [["p", "r", "q"], ["x", "y"]]
    
    @pytest.mark.asyncio
    async def test_collector_resolves_referrers_outside_batch(self, store, repos, clock):
        store.add(
            ACCOUNTS,
            {"id": "acct_01", "referred_by": "acct_02"},
            {"id": "acct_02", "referred_by": "acct_03"},
            {"id": "acct_03", "referred_by": "acct_01"},
        )
        
        clusters = await ReferralLoopCollector(repos.accounts, clock=clock).collect(["acct_01"])
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"acct_01", "acct_02", "acct_03"})
        assert clusters[0].confidence == 0.85
        assert clusters[0].signals[0].type == SignalType.REFERRAL_LOOP


# ============================================================
# TOKEN LAUNDERING TESTS
# ============================================================

def _transfer(payer, creator, tokens=10):
    return TransactionRecord(
        transaction_id=f"{payer}-{creator}-{tokens}",
        payer_id=payer,
        creator_id=creator,
        tokens=tokens,
        session_seconds=300,
        created_at=NOW,
    )


class TestTokenLaundering:
    """Cycles in the payer -> creator token flow graph."""
    
    def test_transfer_graph_sums_repeated_edges(self):
        graph = transfer_graph([_transfer("u1", "c1", 10), _transfer("u1", "c1", 20), _transfer("u1", "u1")])
        
        assert list(graph.edges) == [("u1", "c1")]
        assert graph["u1"]["c1"]["tokens"] == 30
        assert graph["u1"]["c1"]["transactions"] == 2
    
    def test_finds_ring(self):
        graph = transfer_graph([
            _transfer("b", "c"), _transfer("c", "a"), _transfer("a", "b"), _transfer("d", "a"),
        ])
        assert find_token_cycles(graph, max_length=6, max_cycles=500) == [["a", "b", "c"]]
    
    def test_cycle_length_bound(self):
        graph = transfer_graph([
            _transfer("a", "b"), _transfer("b", "c"), _transfer("c", "d"), _transfer("d", "a"),
        ])
        assert find_token_cycles(graph, max_length=3, max_cycles=500) == []
        assert find_token_cycles(graph, max_length=4, max_cycles=500) == [["a", "b", "c", "d"]]
    
    def test_cycles_sharing_accounts_form_one_cluster(self):
        transfers = [
            _transfer("a", "b", 10), _transfer("b", "a", 10),
            _transfer("b", "c", 5), _transfer("c", "b", 5),
            _transfer("x", "y"), _transfer("y", "x"),
        ]
        
        clusters = detect_token_laundering(transfers, TokenLaunderingConfig(), NOW)
        
        assert [c.account_ids for c in clusters] == [frozenset({"a", "b", "c"}), frozenset({"x", "y"})]
        assert [c.confidence for c in clusters] == [0.7, 0.6]
        evidence = clusters[0].signals[0].evidence
        assert evidence["cycle_count"] == 2
        assert evidence["total_tokens"] == 30
        assert evidence["cycles"] == ["a -> b", "b -> c"]
    
    def test_large_network_bonus(self):
        ring = ["n1", "n2", "n3", "n4", "n5", "n6"]
        transfers = [_transfer(ring[i], ring[(i + 1) % 6]) for i in range(6)]
        
        clusters = detect_token_laundering(transfers, TokenLaunderingConfig(), NOW)
        
        assert len(clusters) == 1
        assert clusters[0].confidence == 0.8
    
    def test_one_way_flow_is_clean(self):
        transfers = [_transfer("a", "b"), _transfer("b", "c"), _transfer("a", "c")]
        assert detect_token_laundering(transfers, TokenLaunderingConfig(), NOW) == []
    
    @pytest.mark.asyncio
    async def test_collector_reads_transfers(self, store, repos, clock):
        created = clock.now().isoformat()
        store.add(
            TRANSACTIONS,
            {"id": "t1", "payer_id": "acct_01", "creator_id": "acct_02", "tokens": 100, "created_at": created},
            {"id": "t2", "payer_id": "acct_02", "creator_id": "acct_01", "tokens": 90, "created_at": created},
        )
        
        clusters = await TokenLaunderingCollector(repos.transactions, clock=clock).collect(["acct_01"])
        
        assert len(clusters) == 1
        assert clusters[0].account_ids == frozenset({"acct_01", "acct_02"})
        assert clusters[0].signals[0].type == SignalType.TOKEN_LAUNDERING
        assert clusters[0].signals[0].evidence["total_tokens"] == 190


# ============================================================
# FAIL-SAFE TESTS
# ============================================================

class TestCollectorFailSafe:
    
    @pytest.mark.asyncio
    async def test_error_is_captured(self, clock):
        sessions = AsyncMock()
        sessions.list_sessions.side_effect = RuntimeError("bad document")
        
        result = await IpCorrelationCollector(sessions, clock=clock).run(["a", "b"])
        
        assert not result.succeeded
        assert result.clusters == []
        assert "RuntimeError" in result.error
    
    @pytest.mark.asyncio
    async def test_outage_propagates(self, store, repos, clock):
        store.set_available(False)
        with pytest.raises(DataSourceUnavailableError):
            await IpCorrelationCollector(repos.sessions, clock=clock).run(["a", "b"])
    
    @pytest.mark.asyncio
    async def test_empty_working_set(self, clock):
        sessions = AsyncMock()
        result = await IpCorrelationCollector(sessions, clock=clock).run(["", ""])
        assert result.clusters == []
        sessions.list_sessions.assert_not_called()
    
    def test_default_collectors(self, repos, clock):
        names = [c.name for c in create_default_collectors(repos, clock=clock)]
        assert names == [
            "ip_correlation",
            "device_correlation",
            "behavioral_similarity",
            "message_script",
            "referral_loop",
            "synchronized_activity",
            "token_laundering",
        ]