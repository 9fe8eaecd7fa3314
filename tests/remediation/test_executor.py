"""
Tests for the Remediation Action Executor.

============================================================
PURPOSE
============================================================
1. Each action maps to its enforcement flag or notice
2. Replayed decisions are acknowledged, not re-applied
3. Dry run records without enforcing
4. Write failures surface as RemediationError

============================================================
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import RemediationError
from core.types import SeverityTier
from database.engine import session_scope
from remediation.config import RemediationConfig, load_config_from_dict
from remediation.executor import ActionExecutor
from remediation.repository import RemediationRepository
from remediation.types import ActionDecision, ActionStatus, AutoAction


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def executor(session_factory, clock):
    return ActionExecutor(session_factory, RemediationConfig(), clock)


def _decision(action, target="u1", signal_id="as_1", signal_type="refund_loop"):
    return ActionDecision(
        signal_id=signal_id,
        target_id=target,
        action=action,
        severity=SeverityTier.HIGH,
        reason=f"{signal_type}: test",
        metadata={"signal_type": signal_type},
    )


async def _enforcement(session_factory, account_id):
    async with session_scope(session_factory) as session:
        return await RemediationRepository(session).get_enforcement(account_id)


# ============================================================
# EXECUTION TESTS
# ============================================================

class TestActionExecutor:
    """Decisions applied to enforcement state."""
    
    @pytest.mark.asyncio
    async def test_none_is_skipped(self, executor, session_factory):
        outcome = await executor.execute(_decision(AutoAction.NONE))
        
        assert outcome.status == ActionStatus.SKIPPED
        assert outcome.record_id is None
        assert await _enforcement(session_factory, "u1") is None
    
    @pytest.mark.asyncio
    async def test_flags(self, executor, session_factory):
        await executor.execute(_decision(AutoAction.FREEZE_WALLET))
        await executor.execute(_decision(AutoAction.SHADOW_BAN))
        await executor.execute(_decision(AutoAction.RATE_LIMIT))
        await executor.execute(_decision(AutoAction.MANUAL_REVIEW))
        
        record = await _enforcement(session_factory, "u1")
        assert record.wallet_frozen
        assert record.frozen_reason == "refund_loop: test"
        assert record.shadow_banned
        assert record.rate_limited
        assert record.review_required
    
    @pytest.mark.asyncio
    async def test_outcome_applied(self, executor, clock):
        decision = _decision(AutoAction.RATE_LIMIT)
        outcome = await executor.execute(decision)
        
        assert outcome.applied
        assert not outcome.already_applied
        assert outcome.record_id == decision.record_id
        assert outcome.executed_at == clock.now()
    
    @pytest.mark.asyncio
    async def test_replay_is_idempotent(self, executor, session_factory):
        decision = _decision(AutoAction.FREEZE_WALLET)
        
        first = await executor.execute(decision)
        second = await executor.execute(decision)
        
        assert not first.already_applied
        assert second.already_applied
        assert second.status == ActionStatus.APPLIED
        
        async with session_scope(session_factory) as session:
            records = await RemediationRepository(session).list_actions_for_signal("as_1")
            assert len(records) == 1
    
    def test_record_id_depends_on_action(self):
        assert _decision(AutoAction.WARNING).record_id != _decision(AutoAction.RATE_LIMIT).record_id
        assert _decision(AutoAction.WARNING).record_id == _decision(AutoAction.WARNING).record_id
    
    @pytest.mark.asyncio
    async def test_warning_enqueues_notice(self, executor, session_factory):
        await executor.execute(_decision(AutoAction.WARNING, signal_type="panic_spam"))
        await executor.execute(_decision(AutoAction.WARNING, signal_type="panic_spam"))
        
        async with session_scope(session_factory) as session:
            notices = await RemediationRepository(session).list_pending_notices("u1")
        
        assert len(notices) == 1
        assert notices[0].message == "The safety button is reserved for real emergencies."
        assert await _enforcement(session_factory, "u1") is None
    
    @pytest.mark.asyncio
    async def test_unknown_signal_type_uses_default_notice(self, session_factory, clock):
        config = load_config_from_dict({"notice_templates": {"default": "Please review our rules."}})
        executor = ActionExecutor(session_factory, config, clock)
        
        await executor.execute(_decision(AutoAction.WARNING, signal_type="farming_case"))
        
        async with session_scope(session_factory) as session:
            notices = await RemediationRepository(session).list_pending_notices("u1")
        assert notices[0].message == "Please review our rules."


class TestDryRun:
    
    @pytest.mark.asyncio
    async def test_dry_run_leaves_flags(self, session_factory, clock):
        executor = ActionExecutor(session_factory, RemediationConfig(dry_run=True), clock)
        decision = _decision(AutoAction.FREEZE_WALLET)
        
        outcome = await executor.execute(decision)
        
        assert outcome.status == ActionStatus.DRY_RUN
        assert await _enforcement(session_factory, "u1") is None
        async with session_scope(session_factory) as session:
            record = await RemediationRepository(session).get_action_record(decision.record_id)
            assert record.status == ActionStatus.DRY_RUN.value
    
    @pytest.mark.asyncio
    async def test_dry_run_then_live_applies(self, session_factory, clock):
        decision = _decision(AutoAction.SHADOW_BAN)
        await ActionExecutor(session_factory, RemediationConfig(dry_run=True), clock).execute(decision)
        
        outcome = await ActionExecutor(session_factory, RemediationConfig(), clock).execute(decision)
        
        assert outcome.applied
        assert not outcome.already_applied
        assert (await _enforcement(session_factory, "u1")).shadow_banned


class TestExecutionFailures:
    
    @pytest.mark.asyncio
    async def test_write_failure_raises(self, executor):
        failing = AsyncMock(side_effect=SQLAlchemyError("disk full"))
        with patch.object(RemediationRepository, "apply_flag", failing):
            with pytest.raises(RemediationError) as exc_info:
                await executor.execute(_decision(AutoAction.FREEZE_WALLET))
        
        assert exc_info.value.cause is not None
    
    @pytest.mark.asyncio
    async def test_execute_many_continues(self, executor, session_factory):
        failing = AsyncMock(side_effect=SQLAlchemyError("disk full"))
        decisions = [
            _decision(AutoAction.RATE_LIMIT, target="u1"),
            _decision(AutoAction.NONE, target="u2"),
        ]
        with patch.object(RemediationRepository, "apply_flag", failing):
            outcomes = await executor.execute_many(decisions)
        
        assert [o.status for o in outcomes] == [ActionStatus.FAILED, ActionStatus.SKIPPED]
        assert outcomes[0].error
        assert await _enforcement(session_factory, "u1") is None
