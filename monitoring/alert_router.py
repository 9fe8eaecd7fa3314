"""
Monitoring - Alert Router.

============================================================
RESPONSIBILITY
============================================================
Routes alerts to the channels configured for their severity.

- emergency / critical -> dashboard + chat + email + push
- high                 -> dashboard + chat
- medium / low         -> dashboard

============================================================
DESIGN PRINCIPLES
============================================================
- Each channel is attempted independently
- A failed delivery is logged and reported in the RouteResult,
  never raised to the caller
- Repeated alerts of one (type, severity) are throttled;
  critical and emergency alerts never are

============================================================
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import AlertDeliveryError

from .config import MonitoringConfig
from .notifications.base import AlertChannel
from .types import Alert, AlertChannelName, RouteResult


logger = logging.getLogger(__name__)


# ============================================================
# THROTTLE
# ============================================================


class AlertThrottle:
    """Per (alert type, severity) cool-down."""
    
    def __init__(self, window_seconds: int = 300, clock: Optional[ClockProtocol] = None):
        self._window = timedelta(seconds=window_seconds)
        self._clock = clock or ClockFactory.get_clock()
        self._last_sent: Dict[Tuple[str, str], datetime] = {}
    
    def allow(self, alert: Alert) -> bool:
        if alert.severity.bypasses_throttle or self._window.total_seconds() <= 0:
            return True
        key = (alert.alert_type, alert.severity.value)
        now = self._clock.now()
        last = self._last_sent.get(key)
        if last is not None and now - last < self._window:
            return False
        self._last_sent[key] = now
        return True
    
    def reset(self) -> None:
        self._last_sent.clear()


# ============================================================
# ROUTER
# ============================================================


class AlertRouter:
    """Routes alerts to channels."""
    
    def __init__(
        self,
        channels: Dict[AlertChannelName, AlertChannel],
        config: Optional[MonitoringConfig] = None,
        throttle: Optional[AlertThrottle] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or MonitoringConfig()
        self._channels = dict(channels)
        self._clock = clock or ClockFactory.get_clock()
        self._throttle = throttle or AlertThrottle(self.config.throttle_seconds, self._clock)
        self._history: List[RouteResult] = []
    
    @property
    def channel_names(self) -> List[str]:
        return [name.value for name in self._channels]
    
    async def route(self, alert: Alert) -> RouteResult:
        """Deliver `alert` to its channels. Never raises."""
        result = RouteResult(alert_id=alert.alert_id, routed_at=self._clock.now())
        
        if not self._throttle.allow(alert):
            result.throttled = True
            logger.debug(f"Alert throttled: {alert.alert_type}/{alert.severity.value}")
            self._record(result)
            return result
        
        targets = []
        for name in self.config.channels_for(alert.severity):
            channel = self._channels.get(name)
            if channel is None:
                logger.warning(f"No {name.value} channel configured, alert {alert.alert_id} not sent there")
                result.failed[name.value] = "not configured"
                continue
            targets.append(channel)
        
        outcomes = await asyncio.gather(*(self._deliver(channel, alert) for channel in targets))
        for channel, error in zip(targets, outcomes):
            if error is None:
                result.routed_to.append(channel.name)
            else:
                result.failed[channel.name] = error
        
        self._record(result)
        return result
    
    async def _deliver(self, channel: AlertChannel, alert: Alert) -> Optional[str]:
        try:
            await channel.send(alert)
            return None
        except AlertDeliveryError as e:
            logger.error(f"Alert {alert.alert_id} delivery via {channel.name} failed: {e.message}")
            return e.message
        except Exception as e:
            logger.error(f"Alert {alert.alert_id} delivery via {channel.name} crashed: {e}", exc_info=True)
            return f"{type(e).__name__}: {e}"
    
    def _record(self, result: RouteResult, max_history: int = 1000) -> None:
        self._history.append(result)
        if len(self._history) > max_history:
            self._history = self._history[-max_history:]
    
    def get_history(self, limit: int = 100) -> List[RouteResult]:
        """Most recent routing results, newest first."""
        return self._history[-limit:][::-1]
    
    async def close(self) -> None:
        for channel in self._channels.values():
            await channel.close()


__all__ = ["AlertThrottle", "AlertRouter"]
