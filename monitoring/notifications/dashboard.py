"""
Dashboard Channel.

Persists the alert to alert_records, where the operator
dashboard reads it, together with the channel set it was
routed to.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import AlertDeliveryError, PersistenceError
from database.engine import session_scope

from ..config import MonitoringConfig
from ..repository import AlertRepository
from ..types import Alert, AlertChannelName
from .base import AlertChannel


logger = logging.getLogger(__name__)


class DashboardChannel(AlertChannel):
    channel = AlertChannelName.DASHBOARD
    
    def __init__(self, session_factory: async_sessionmaker, config: Optional[MonitoringConfig] = None):
        self._session_factory = session_factory
        self._config = config or MonitoringConfig()
    
    async def send(self, alert: Alert) -> None:
        channels = [c.value for c in self._config.channels_for(alert.severity)]
        try:
            async with session_scope(self._session_factory, "save_alert") as session:
                await AlertRepository(session).save(alert, channels)
        except PersistenceError as e:
            raise AlertDeliveryError(
                f"Could not store alert {alert.alert_id}",
                channel=self.name,
                cause=e,
            ) from e
        logger.debug(f"Alert {alert.alert_id} stored for dashboard")
