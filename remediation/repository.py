"""
Remediation - Repository.

Idempotent writes for enforcement flags, action records and
user notices.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.identifiers import notice_id_for

from .models import AccountEnforcement, ActionRecordModel, UserNotice
from .types import ActionDecision, ActionStatus, AutoAction


class RemediationRepository:
    """Repository for enforcement state and the remediation log."""
    
    def __init__(self, session: AsyncSession):
        self._session = session
    
    # --------------------------------------------------------
    # WRITE OPERATIONS
    # --------------------------------------------------------
    
    async def _enforcement(self, account_id: str, at: datetime) -> AccountEnforcement:
        record = await self._session.get(AccountEnforcement, account_id)
        if record is None:
            record = AccountEnforcement(
                account_id=account_id,
                wallet_frozen=False,
                shadow_banned=False,
                rate_limited=False,
                review_required=False,
                updated_at=at,
            )
            self._session.add(record)
        return record
    
    async def apply_flag(self, decision: ActionDecision, at: datetime) -> AccountEnforcement:
        """
        Set the flag for `decision.action` on the target account.
        
        Already-set flags keep their original timestamp and reason.
        """
        record = await self._enforcement(decision.target_id, at)
        
        if decision.action == AutoAction.FREEZE_WALLET:
            if not record.wallet_frozen:
                record.wallet_frozen = True
                record.frozen_reason = decision.reason
                record.frozen_at = at
        elif decision.action == AutoAction.SHADOW_BAN:
            if not record.shadow_banned:
                record.shadow_banned = True
                record.shadow_banned_at = at
        elif decision.action == AutoAction.RATE_LIMIT:
            if not record.rate_limited:
                record.rate_limited = True
                record.rate_limited_at = at
        elif decision.action == AutoAction.MANUAL_REVIEW:
            if not record.review_required:
                record.review_required = True
                record.review_reason = decision.reason
                record.review_requested_at = at
        else:
            raise ValueError(f"{decision.action.value} does not map to an enforcement flag")
        
        record.updated_at = at
        await self._session.flush()
        return record
    
    async def enqueue_notice(self, decision: ActionDecision, message: str, at: datetime) -> UserNotice:
        notice_id = notice_id_for(decision.signal_id, decision.target_id)
        notice = await self._session.get(UserNotice, notice_id)
        if notice is None:
            notice = UserNotice(
                notice_id=notice_id,
                user_id=decision.target_id,
                signal_id=decision.signal_id,
                message=message,
                delivered=False,
                created_at=at,
            )
            self._session.add(notice)
            await self._session.flush()
        return notice
    
    async def record_action(
        self,
        decision: ActionDecision,
        status: ActionStatus,
        at: datetime,
    ) -> ActionRecordModel:
        record = await self._session.get(ActionRecordModel, decision.record_id)
        if record is None:
            record = ActionRecordModel(
                record_id=decision.record_id,
                signal_id=decision.signal_id,
                target_id=decision.target_id,
                action=decision.action.value,
                severity=decision.severity.value,
                status=status.value,
                reason=decision.reason,
                details=dict(decision.metadata),
                executed_at=at,
            )
            self._session.add(record)
        else:
            record.status = status.value
            record.executed_at = at
        await self._session.flush()
        return record
    
    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------
    
    async def get_action_record(self, record_id: str) -> Optional[ActionRecordModel]:
        return await self._session.get(ActionRecordModel, record_id)
    
    async def get_enforcement(self, account_id: str) -> Optional[AccountEnforcement]:
        return await self._session.get(AccountEnforcement, account_id)
    
    async def list_actions_for_signal(self, signal_id: str) -> List[ActionRecordModel]:
        stmt = select(ActionRecordModel).where(ActionRecordModel.signal_id == signal_id)
        return list((await self._session.execute(stmt)).scalars().all())
    
    async def list_pending_notices(self, user_id: str) -> List[UserNotice]:
        stmt = (
            select(UserNotice)
            .where(UserNotice.user_id == user_id, UserNotice.delivered.is_(False))
            .order_by(UserNotice.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())


__all__ = ["RemediationRepository"]
