"""
Remediation - Action Executor.

============================================================
PURPOSE
============================================================
Applies ActionDecisions to engine-owned enforcement state:

- freeze_wallet  -> wallet_frozen + reason + timestamp
- shadow_ban     -> shadow_banned
- rate_limit     -> rate_limited
- warning        -> user notice enqueued
- manual_review  -> review_required
- none           -> nothing

============================================================
IDEMPOTENCY
============================================================
Every decision has a content-addressed record id built from
(signal id, target, action). A decision whose record is already
APPLIED is acknowledged without touching anything; flags are set,
never incremented, so even a racing duplicate converges.

============================================================
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import PersistenceError, RemediationError
from database.engine import session_scope

from .config import RemediationConfig
from .repository import RemediationRepository
from .types import ActionDecision, ActionOutcome, ActionStatus, AutoAction


logger = logging.getLogger(__name__)


class ActionExecutor:
    """Executes remediation decisions idempotently."""
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[RemediationConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self.config = config or RemediationConfig()
        self._clock = clock or ClockFactory.get_clock()
    
    async def execute(self, decision: ActionDecision) -> ActionOutcome:
        """
        Apply one decision.
        
        Raises:
            RemediationError: the write failed
        """
        if decision.action == AutoAction.NONE:
            return ActionOutcome(decision=decision, status=ActionStatus.SKIPPED)
        
        now = self._clock.now()
        try:
            async with session_scope(self._session_factory, "execute_action") as session:
                repo = RemediationRepository(session)
                
                existing = await repo.get_action_record(decision.record_id)
                if existing is not None and existing.status == ActionStatus.APPLIED.value:
                    logger.debug(f"Action {decision.record_id} already applied, skipping")
                    return ActionOutcome(
                        decision=decision,
                        status=ActionStatus.APPLIED,
                        record_id=decision.record_id,
                        already_applied=True,
                        executed_at=existing.executed_at,
                    )
                
                if self.config.dry_run:
                    await repo.record_action(decision, ActionStatus.DRY_RUN, now)
                    logger.info(
                        f"DRY RUN {decision.action.value} on {decision.target_id} "
                        f"(signal {decision.signal_id})"
                    )
                    return ActionOutcome(
                        decision=decision,
                        status=ActionStatus.DRY_RUN,
                        record_id=decision.record_id,
                        executed_at=now,
                    )
                
                if decision.action == AutoAction.WARNING:
                    signal_type = str(decision.metadata.get("signal_type", "default"))
                    await repo.enqueue_notice(decision, self.config.notice_text(signal_type), now)
                else:
                    await repo.apply_flag(decision, now)
                await repo.record_action(decision, ActionStatus.APPLIED, now)
        except PersistenceError as e:
            logger.error(
                f"Failed to apply {decision.action.value} to {decision.target_id} "
                f"(signal {decision.signal_id}): {e.message}"
            )
            raise RemediationError(
                f"Could not apply {decision.action.value}",
                action=decision.action.value,
                target_id=decision.target_id,
                cause=e,
            ) from e
        
        logger.warning(
            f"ACTION APPLIED: {decision.action.value} on {decision.target_id} "
            f"severity={decision.severity.value} signal={decision.signal_id}"
        )
        return ActionOutcome(
            decision=decision,
            status=ActionStatus.APPLIED,
            record_id=decision.record_id,
            executed_at=now,
        )
    
    async def execute_many(self, decisions: Sequence[ActionDecision]) -> List[ActionOutcome]:
        """Apply decisions one by one; a failure is recorded and the rest continue."""
        outcomes = []
        for decision in decisions:
            try:
                outcomes.append(await self.execute(decision))
            except RemediationError as e:
                outcomes.append(ActionOutcome(
                    decision=decision,
                    status=ActionStatus.FAILED,
                    record_id=decision.record_id,
                    error=e.message,
                ))
        return outcomes


__all__ = ["ActionExecutor"]
