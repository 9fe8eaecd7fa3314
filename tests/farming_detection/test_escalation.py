"""
Tests for Farming Escalation, Case Management and the Scan Engine.

============================================================
PURPOSE
============================================================
1. Confidence thresholds: persist / case / critical
2. Idempotent case creation and downstream fan-out
3. Investigator lifecycle and farming risk score
4. Retention of dismissed clusters
5. End-to-end scan with a failing collector

============================================================
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from core.exceptions import DataSourceUnavailableError, PersistenceError
from core.types import SeverityTier
from data_sources.repositories import SESSIONS
from database.engine import session_scope
from farming_detection.cases import CaseNotFoundError, FarmingCaseService
from farming_detection.collectors import DeviceCorrelationCollector, IpCorrelationCollector
from farming_detection.config import EscalationConfig
from farming_detection.engine import FarmingScanEngine
from farming_detection.escalator import CaseEscalator, case_severity
from farming_detection.merger import ClusterMerger
from farming_detection.repository import FarmingRepository
from farming_detection.types import (
    CaseStatus,
    CaseType,
    Cluster,
    ClusterStatus,
    Signal,
    SignalType,
)
from remediation.types import AutoAction


# ============================================================
# FIXTURES
# ============================================================

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _cluster(accounts, confidence, signal_type=SignalType.DEVICE_CORRELATION):
    signal = Signal(type=signal_type, strength=confidence)
    return Cluster.create(accounts, [signal], confidence, detected_at=NOW)


@pytest.fixture
def trust_hook():
    return AsyncMock()


@pytest.fixture
def action_sink():
    return AsyncMock()


@pytest.fixture
def escalator(session_factory, trust_hook, action_sink, clock):
    return CaseEscalator(
        session_factory,
        EscalationConfig(),
        trust_hook=trust_hook,
        action_sink=action_sink,
        clock=clock,
    )


# ============================================================
# SEVERITY TESTS
# ============================================================

class TestCaseSeverity:
    
    def test_bands(self):
        config = EscalationConfig()
        assert case_severity(0.96, config) == SeverityTier.CRITICAL
        assert case_severity(0.95, config) == SeverityTier.HIGH
        assert case_severity(0.86, config) == SeverityTier.HIGH
        assert case_severity(0.85, config) == SeverityTier.MEDIUM


# ============================================================
# ESCALATOR TESTS
# ============================================================

class TestCaseEscalator:
    """Persist, open cases, recompute trust, request review."""
    
    @pytest.mark.asyncio
    async def test_low_confidence_not_persisted(self, escalator, session_factory, trust_hook):
        cluster = _cluster(["a", "b"], 0.7)
        result = await escalator.escalate([cluster])
        
        assert result.persisted_cluster_ids == []
        trust_hook.recompute_users.assert_not_called()
        async with session_scope(session_factory) as session:
            assert await FarmingRepository(session).get_cluster(cluster.cluster_id) is None
    
    @pytest.mark.asyncio
    async def test_medium_confidence_persisted_without_case(self, escalator, session_factory, action_sink):
        cluster = _cluster(["a", "b"], 0.8)
        result = await escalator.escalate([cluster])
        
        assert result.persisted_cluster_ids == [cluster.cluster_id]
        assert result.created_case_ids == []
        action_sink.execute.assert_not_called()
        async with session_scope(session_factory) as session:
            record = await FarmingRepository(session).get_cluster(cluster.cluster_id)
            assert record.status == ClusterStatus.SUSPECTED.value
    
    @pytest.mark.asyncio
    async def test_high_confidence_opens_case(self, escalator, session_factory, trust_hook, action_sink):
        cluster = _cluster(["b", "a", "c"], 0.9)
        result = await escalator.escalate([cluster])
        
        assert len(result.created_case_ids) == 1
        case = result.created_cases[0]
        assert case.severity == SeverityTier.HIGH
        assert case.type == CaseType.MULTI_ACCOUNT
        assert case.status == CaseStatus.DETECTED
        assert case.involved_user_ids == frozenset({"a", "b", "c"})
        
        trust_hook.recompute_users.assert_awaited_once_with(["a", "b", "c"])
        assert result.rescored_user_ids == ["a", "b", "c"]
        
        assert result.review_decisions == 3
        decisions = [call.args[0] for call in action_sink.execute.await_args_list]
        assert {d.target_id for d in decisions} == {"a", "b", "c"}
        assert all(d.action == AutoAction.MANUAL_REVIEW for d in decisions)
        assert all(d.signal_id == case.case_id for d in decisions)
        
        async with session_scope(session_factory) as session:
            repo = FarmingRepository(session)
            record = await repo.get_cluster(cluster.cluster_id)
            assert record.status == ClusterStatus.CONFIRMED.value
            assert record.investigation_id == case.case_id
            assert len(await repo.list_cases_for_account("b")) == 1
    
    @pytest.mark.asyncio
    async def test_critical_severity(self, escalator):
        result = await escalator.escalate([_cluster(["a", "b"], 0.97)])
        assert result.created_cases[0].severity == SeverityTier.CRITICAL
    
    @pytest.mark.asyncio
    async def test_case_creation_is_idempotent(self, escalator):
        cluster = _cluster(["a", "b"], 0.9)
        
        first = await escalator.escalate([cluster])
        second = await escalator.escalate([cluster])
        
        assert len(first.created_case_ids) == 1
        assert second.created_case_ids == []
        assert second.existing_case_ids == first.created_case_ids
    
    @pytest.mark.asyncio
    async def test_trust_failure_recorded(self, escalator, trust_hook):
        trust_hook.recompute_users.side_effect = PersistenceError("db down")
        result = await escalator.escalate([_cluster(["a", "b"], 0.9)])
        
        assert len(result.created_case_ids) == 1
        assert result.rescored_user_ids == []
        assert any("trust_recompute" in e for e in result.errors)
    
    @pytest.mark.asyncio
    async def test_trust_outage_propagates(self, escalator, trust_hook):
        trust_hook.recompute_users.side_effect = DataSourceUnavailableError("down")
        with pytest.raises(DataSourceUnavailableError):
            await escalator.escalate([_cluster(["a", "b"], 0.9)])


# ============================================================
# CASE SERVICE TESTS
# ============================================================

class TestFarmingCaseService:
    """Investigator operations."""
    
    @pytest.fixture
    def service(self, session_factory, action_sink, clock):
        return FarmingCaseService(session_factory, action_sink=action_sink, clock=clock)
    
    @pytest.mark.asyncio
    async def test_lifecycle(self, escalator, service, action_sink):
        result = await escalator.escalate([_cluster(["a", "b"], 0.9)])
        case_id = result.created_case_ids[0]
        action_sink.reset_mock()
        
        investigating = await service.investigate_case(case_id, "analyst-1")
        assert investigating.status == CaseStatus.INVESTIGATING
        
        resolved = await service.resolve_case(
            case_id, CaseStatus.CONFIRMED, "farm confirmed", "analyst-1", AutoAction.SHADOW_BAN
        )
        assert resolved.status == CaseStatus.CONFIRMED
        assert resolved.resolved_by == "analyst-1"
        assert resolved.resolution == "farm confirmed"
        
        decisions = [call.args[0] for call in action_sink.execute.await_args_list]
        assert [d.target_id for d in decisions] == ["a", "b"]
        assert all(d.action == AutoAction.SHADOW_BAN for d in decisions)
    
    @pytest.mark.asyncio
    async def test_false_positive_dismisses_cluster(self, escalator, service, session_factory, action_sink):
        cluster = _cluster(["a", "b"], 0.9)
        result = await escalator.escalate([cluster])
        action_sink.reset_mock()
        
        await service.resolve_case(
            result.created_case_ids[0], CaseStatus.FALSE_POSITIVE, "shared office wifi", "analyst-1",
            AutoAction.FREEZE_WALLET,
        )
        
        action_sink.execute.assert_not_called()
        async with session_scope(session_factory) as session:
            record = await FarmingRepository(session).get_cluster(cluster.cluster_id)
            assert record.status == ClusterStatus.DISMISSED.value
    
    @pytest.mark.asyncio
    async def test_non_closing_outcome_rejected(self, service):
        with pytest.raises(ValueError):
            await service.resolve_case("fc_x", CaseStatus.INVESTIGATING, "n/a", "analyst-1")
    
    @pytest.mark.asyncio
    async def test_unknown_case(self, service):
        with pytest.raises(CaseNotFoundError):
            await service.investigate_case("fc_missing", "analyst-1")
        with pytest.raises(CaseNotFoundError):
            await service.dismiss_cluster("cl_missing")
    
    @pytest.mark.asyncio
    async def test_farming_risk_score(self, escalator, service):
        await escalator.escalate([_cluster(["a", "b"], 0.97)])
        await escalator.escalate([_cluster(["a", "c"], 0.9)])
        
        score = await service.farming_risk_score("a")
        
        assert score.score == 0.55
        assert score.level == "medium"
        assert [f["factor"] for f in score.factors] == ["farming_cases", "open_case_severity"]
        
        clean = await service.farming_risk_score("z")
        assert clean.score == 0.0
        assert clean.level == "low"
    
    @pytest.mark.asyncio
    async def test_purge_dismissed_clusters(self, escalator, service, session_factory, clock):
        old = _cluster(["a", "b"], 0.8)
        fresh = _cluster(["c", "d"], 0.8)
        kept = _cluster(["e", "f"], 0.8)
        await escalator.escalate([old, fresh, kept])
        
        await service.dismiss_cluster(old.cluster_id)
        clock.advance(days=100)
        await service.dismiss_cluster(fresh.cluster_id)
        
        deleted = await service.purge_dismissed_clusters(timedelta(days=90), batch_size=1)
        
        assert deleted == 1
        async with session_scope(session_factory) as session:
            repo = FarmingRepository(session)
            assert await repo.get_cluster(old.cluster_id) is None
            assert await repo.get_cluster(fresh.cluster_id) is not None
            assert await repo.get_cluster(kept.cluster_id) is not None


# ============================================================
# SCAN ENGINE TESTS
# ============================================================

class TestFarmingScanEngine:
    
    @pytest.fixture
    def shared_device_sessions(self, store):
        at = (NOW - timedelta(days=1)).isoformat()
        store.add(SESSIONS, *[
            {"user_id": account, "device_fingerprint": "fp-farm", "created_at": at}
            for account in ("acct_01", "acct_02", "acct_03")
        ])
        return store
    
    @pytest.mark.asyncio
    async def test_scan_escalates_and_survives_failing_collector(
        self, shared_device_sessions, repos, escalator, clock
    ):
        broken = IpCorrelationCollector(AsyncMock(**{"list_sessions.side_effect": RuntimeError("boom")}), clock=clock)
        engine = FarmingScanEngine(
            [broken, DeviceCorrelationCollector(repos.sessions, clock=clock)],
            ClusterMerger(),
            escalator,
        )
        
        result = await engine.scan(["acct_01", "acct_02", "acct_03"])
        
        assert result.failed_collectors == ["ip_correlation"]
        assert result.candidate_clusters == 1
        # 3 accounts on one device: 0.6 + 0.15 = 0.75, persisted without a case
        assert len(result.escalation.persisted_cluster_ids) == 1
        assert result.escalation.created_case_ids == []
    
    @pytest.mark.asyncio
    async def test_scan_only_selected_collectors(self, shared_device_sessions, repos, escalator, clock):
        engine = FarmingScanEngine(
            [IpCorrelationCollector(repos.sessions, clock=clock), DeviceCorrelationCollector(repos.sessions, clock=clock)],
            ClusterMerger(),
            escalator,
        )
        result = await engine.scan(["acct_01", "acct_02", "acct_03"], only=["ip_correlation"])
        
        assert [r.collector_name for r in result.collector_results] == ["ip_correlation"]
        assert result.candidate_clusters == 0
    
    @pytest.mark.asyncio
    async def test_scan_population_pages(self, shared_device_sessions, repos, escalator, clock):
        engine = FarmingScanEngine([DeviceCorrelationCollector(repos.sessions, clock=clock)], ClusterMerger(), escalator)
        
        async def pages():
            yield ["acct_01", "acct_02"]
            yield ["acct_03"]
        
        result = await engine.scan_population(pages())
        
        assert result.scanned_accounts == 3
        assert result.candidate_clusters == 1
    
    @pytest.mark.asyncio
    async def test_datastore_outage_propagates(self, store, repos, escalator, clock):
        engine = FarmingScanEngine([DeviceCorrelationCollector(repos.sessions, clock=clock)], ClusterMerger(), escalator)
        store.set_available(False)
        with pytest.raises(DataSourceUnavailableError):
            await engine.scan(["acct_01", "acct_02"])
