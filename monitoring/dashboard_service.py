"""
Dashboard Service.

============================================================
PURPOSE
============================================================
Operator-side alert lifecycle:

    open -> acknowledged -> resolved

Acknowledging an acknowledged or resolved alert, or resolving a
resolved one, is a no-op that returns the current state.

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import FraudEngineError
from database.engine import session_scope

from .repository import AlertRepository


logger = logging.getLogger(__name__)


class AlertNotFoundError(FraudEngineError):
    """No alert with the given id."""


class AlertDashboardService:
    
    def __init__(self, session_factory: async_sessionmaker, clock: Optional[ClockProtocol] = None):
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
    
    async def acknowledge(self, alert_id: str, operator_id: str) -> Dict[str, Any]:
        async with session_scope(self._session_factory, "acknowledge_alert") as session:
            record = await AlertRepository(session).acknowledge(alert_id, operator_id, self._clock.now())
            if record is None:
                raise AlertNotFoundError(f"Alert not found: {alert_id}", context={"alert_id": alert_id})
            state = record.to_dict()
        logger.info(f"Alert {alert_id} acknowledged by {operator_id}")
        return state
    
    async def resolve(self, alert_id: str, operator_id: str) -> Dict[str, Any]:
        async with session_scope(self._session_factory, "resolve_alert") as session:
            record = await AlertRepository(session).resolve(alert_id, operator_id, self._clock.now())
            if record is None:
                raise AlertNotFoundError(f"Alert not found: {alert_id}", context={"alert_id": alert_id})
            state = record.to_dict()
        logger.info(f"Alert {alert_id} resolved by {operator_id}")
        return state
    
    async def list_unresolved(self, limit: int = 100) -> List[Dict[str, Any]]:
        async with session_scope(self._session_factory, "list_alerts") as session:
            return [r.to_dict() for r in await AlertRepository(session).list_unresolved(limit)]


__all__ = ["AlertNotFoundError", "AlertDashboardService"]
