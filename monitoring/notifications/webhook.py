"""
Webhook Channels.

Email and push delivery go through the platform's notification
gateways, which accept a JSON alert on an HTTP endpoint.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from core.exceptions import AlertDeliveryError

from ..types import Alert, AlertChannelName
from .base import AlertChannel


logger = logging.getLogger(__name__)


class WebhookChannel(AlertChannel):
    """POSTs the alert as JSON to a gateway URL."""
    
    def __init__(
        self,
        channel: AlertChannelName,
        url: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.channel = channel
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
    
    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session
    
    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None
    
    async def send(self, alert: Alert) -> None:
        if not self._url:
            raise AlertDeliveryError(f"{self.name} gateway URL not configured", channel=self.name)
        
        payload = {"channel": self.name, "alert": alert.to_dict()}
        try:
            session = await self._get_session()
            async with session.post(self._url, json=payload) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise AlertDeliveryError(
                        f"{self.name} gateway returned {response.status}: {body[:200]}",
                        channel=self.name,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AlertDeliveryError(
                f"{self.name} gateway unreachable: {e}",
                channel=self.name,
                cause=e,
            ) from e


def email_channel(url: str, timeout: float = 10.0) -> WebhookChannel:
    return WebhookChannel(AlertChannelName.EMAIL, url, timeout)


def push_channel(url: str, timeout: float = 10.0) -> WebhookChannel:
    return WebhookChannel(AlertChannelName.PUSH, url, timeout)


__all__ = ["WebhookChannel", "email_channel", "push_channel"]
