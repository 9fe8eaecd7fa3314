"""
Tests for the Remediation Pipeline.

============================================================
PURPOSE
============================================================
1. Signal -> decision -> action -> alert
2. Replayed signals neither re-apply nor re-alert
3. A failed action is reported and still alerted
4. Case and job-failure alerts

============================================================
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from abuse_detection.policy import RemediationPolicy
from abuse_detection.types import AbuseSignal, AbuseSignalType
from core.exceptions import RemediationError
from core.identifiers import abuse_signal_id_for
from core.types import SeverityTier
from farming_detection.types import CaseStatus, CaseType, FarmingCase
from monitoring.alert_router import AlertRouter
from monitoring.types import AlertSeverity
from orchestrator.pipeline import (
    RemediationPipeline,
    alert_for_case,
    alert_for_job_failure,
    alert_for_signal,
)
from remediation.config import RemediationConfig
from remediation.executor import ActionExecutor
from remediation.types import ActionStatus


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def executor(session_factory, clock):
    return ActionExecutor(session_factory, RemediationConfig(), clock)


@pytest.fixture
def router(channels, clock):
    return AlertRouter(channels, clock=clock)


@pytest.fixture
def pipeline(executor, router):
    return RemediationPipeline(RemediationPolicy(), executor, router)


def _signal(signal_type, user_id, severity, at, count=5):
    window = timedelta(hours=24)
    return AbuseSignal(
        signal_id=abuse_signal_id_for(signal_type.value, user_id, at, window),
        signal_type=signal_type,
        user_id=user_id,
        severity=severity,
        count=count,
        threshold=5,
        window=window,
        detected_at=at,
    )


def _case(fixed_now):
    return FarmingCase(
        case_id="case_1",
        type=CaseType.MULTI_ACCOUNT,
        status=CaseStatus.DETECTED,
        severity=SeverityTier.HIGH,
        involved_user_ids=frozenset({"b", "a"}),
        evidence=(),
        confidence=0.9,
        cluster_id="cl_1",
        created_at=fixed_now,
    )


# ============================================================
# ALERT BUILDER TESTS
# ============================================================

class TestAlertBuilders:
    
    def test_signal_without_outcome(self, fixed_now):
        signal = _signal(AbuseSignalType.TOKEN_DRAIN, "c1", SeverityTier.CRITICAL, fixed_now)
        alert = alert_for_signal(signal, None)
        
        assert alert.alert_type == "abuse_signal"
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.subject_id == "c1"
        assert alert.data["action"] == "none"
        assert alert.data["action_status"] == "skipped"
        assert alert.created_at == fixed_now
    
    def test_case(self, fixed_now):
        alert = alert_for_case(_case(fixed_now))
        
        assert alert.alert_type == "farming_case"
        assert alert.severity == AlertSeverity.HIGH
        assert alert.subject_id == "case_1"
        assert alert.data["accounts"] == ["a", "b"]
    
    def test_job_failure(self):
        assert alert_for_job_failure("cluster_scan", "boom", fatal=True).severity == AlertSeverity.EMERGENCY
        assert alert_for_job_failure("cluster_scan", "boom", fatal=False).severity == AlertSeverity.HIGH


# ============================================================
# PIPELINE TESTS
# ============================================================

class TestRemediationPipeline:
    """decide -> act -> alert."""
    
    @pytest.mark.asyncio
    async def test_signal_applied_and_alerted(self, pipeline, chat, fixed_now):
        signal = _signal(AbuseSignalType.CANCELLATION_FARMING, "host", SeverityTier.HIGH, fixed_now)
        
        result = await pipeline.process_signals([signal])
        
        assert result.signals == 1
        assert result.applied == 1
        assert [o.status for o in result.outcomes] == [ActionStatus.APPLIED]
        assert result.to_dict()["alerts_routed"] == 1
        assert len(chat.sent) == 1
        assert chat.sent[0].data["action"] == "shadow_ban"
        assert chat.sent[0].data["action_status"] == "applied"
    
    @pytest.mark.asyncio
    async def test_replay_not_alerted_again(self, pipeline, chat, clock, fixed_now):
        signal = _signal(AbuseSignalType.CANCELLATION_FARMING, "host", SeverityTier.HIGH, fixed_now)
        await pipeline.process_signals([signal])
        clock.advance(minutes=10)
        
        result = await pipeline.process_signals([signal])
        
        assert result.outcomes[0].already_applied
        assert result.applied == 0
        assert result.routes == []
        assert len(chat.sent) == 1
    
    @pytest.mark.asyncio
    async def test_promoted_signal_gets_new_action(self, pipeline, chat, clock, fixed_now):
        medium = _signal(AbuseSignalType.REFUND_LOOP, "u1", SeverityTier.MEDIUM, fixed_now)
        high = _signal(AbuseSignalType.REFUND_LOOP, "u1", SeverityTier.HIGH, fixed_now, count=8)
        
        first = await pipeline.process_signals([medium])
        second = await pipeline.process_signals([high])
        
        assert first.outcomes[0].decision.action.value == "warning"
        assert second.outcomes[0].decision.action.value == "shadow_ban"
        assert second.applied == 1
    
    @pytest.mark.asyncio
    async def test_failed_action_reported_and_alerted(self, pipeline, executor, chat, fixed_now):
        signal = _signal(AbuseSignalType.TOKEN_DRAIN, "c1", SeverityTier.CRITICAL, fixed_now)
        failing = AsyncMock(side_effect=RemediationError("wallet service rejected freeze"))
        
        with patch.object(executor, "execute", failing):
            result = await pipeline.process_signals([signal])
        
        assert result.outcomes[0].status == ActionStatus.FAILED
        assert result.errors == [f"{signal.signal_id}: wallet service rejected freeze"]
        assert chat.sent[0].data["action"] == "freeze_wallet"
        assert chat.sent[0].data["action_status"] == "failed"
    
    @pytest.mark.asyncio
    async def test_empty_batch(self, pipeline):
        result = await pipeline.process_signals([])
        assert result.to_dict() == {
            "signals": 0,
            "applied": 0,
            "outcomes": [],
            "alerts_routed": 0,
            "errors": [],
        }
    
    @pytest.mark.asyncio
    async def test_notify_cases(self, pipeline, chat, fixed_now):
        results = await pipeline.notify_cases([_case(fixed_now)])
        
        assert len(results) == 1
        assert sorted(results[0].routed_to) == ["chat", "dashboard"]
        assert chat.sent[0].alert_type == "farming_case"
    
    @pytest.mark.asyncio
    async def test_notify_fatal_job_failure(self, pipeline, chat):
        result = await pipeline.notify_job_failure("trust_recompute", "InvalidConfigError: weights", True)
        
        assert sorted(result.routed_to) == ["chat", "dashboard"]
        assert result.failed == {"email": "not configured", "push": "not configured"}
        assert chat.sent[0].severity == AlertSeverity.EMERGENCY
