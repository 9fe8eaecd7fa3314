"""
Alert Channel Interface.

A channel delivers one alert to one destination. `send` raises
AlertDeliveryError on failure; the router catches it, so a
channel never has to protect its caller.
"""

from abc import ABC, abstractmethod

from ..types import Alert, AlertChannelName


class AlertChannel(ABC):
    """Abstract base class for alert channels."""
    
    channel: AlertChannelName
    
    @property
    def name(self) -> str:
        return self.channel.value
    
    @abstractmethod
    async def send(self, alert: Alert) -> None:
        """Deliver `alert` or raise AlertDeliveryError."""
        pass
    
    async def close(self) -> None:
        return None
