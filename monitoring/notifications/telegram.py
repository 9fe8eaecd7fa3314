"""
Telegram Chat Channel.

============================================================
PURPOSE
============================================================
Push alerts into the fraud operations Telegram chat(s).

- One HTML message per alert, fanned out to every chat id
- Outbound only: the bot never reads or acts on replies
- Sends are capped per minute and per hour

============================================================
"""

import asyncio
import html
import logging
from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict, List, Optional, Sequence

import aiohttp

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import AlertDeliveryError

from ..types import Alert, AlertChannelName, AlertSeverity
from .base import AlertChannel


logger = logging.getLogger(__name__)

MAX_DETAIL_ITEMS = 5
MAX_LIST_ITEMS = 3


# ============================================================
# MESSAGE FORMAT
# ============================================================

class TelegramFormatter:
    """Renders an Alert as Telegram HTML."""
    
    SEVERITY_ICONS = {
        AlertSeverity.LOW: "ℹ️",
        AlertSeverity.MEDIUM: "🔎",
        AlertSeverity.HIGH: "⚠️",
        AlertSeverity.CRITICAL: "🚨",
        AlertSeverity.EMERGENCY: "🆘",
    }
    
    TYPE_ICONS = {
        "abuse_signal": "🛡",
        "farming_case": "🕸",
        "job_failure": "⚙️",
    }
    
    @classmethod
    def format_alert(cls, alert: Alert) -> str:
        header = "{} <b>{}</b> {}".format(
            cls.SEVERITY_ICONS.get(alert.severity, "📌"),
            html.escape(alert.title),
            cls.TYPE_ICONS.get(alert.alert_type, "📋"),
        )
        parts = [
            header,
            html.escape(alert.message),
            "\n".join(cls._meta_lines(alert)),
        ]
        details = cls.detail_lines(alert.data or {})
        if details:
            parts.append("<b>Details:</b>\n" + "\n".join(details))
        return "\n\n".join(parts)
    
    @staticmethod
    def _meta_lines(alert: Alert) -> List[str]:
        meta = [
            f"🏷 <code>[{alert.severity.value}]</code>",
            f"🕐 {alert.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        ]
        if alert.subject_id:
            meta.append(f"👤 <code>{html.escape(alert.subject_id)}</code>")
        return meta
    
    @staticmethod
    def render_value(value: Any) -> str:
        if isinstance(value, float):
            return f"{value:.4f}"
        if isinstance(value, (list, tuple)):
            shown = [str(v) for v in value[:MAX_LIST_ITEMS]]
            if len(value) > MAX_LIST_ITEMS:
                shown.append("...")
            return ", ".join(shown)
        return str(value)
    
    @classmethod
    def detail_lines(cls, data: Dict[str, Any]) -> List[str]:
        items = list(data.items())
        lines = [
            f"• <code>{html.escape(str(key))}</code>: {html.escape(cls.render_value(value))}"
            for key, value in items[:MAX_DETAIL_ITEMS]
        ]
        hidden = len(items) - MAX_DETAIL_ITEMS
        if hidden > 0:
            lines.append(f"<i>... and {hidden} more</i>")
        return lines


# ============================================================
# SEND CAP
# ============================================================

class TelegramRateLimiter:
    """Caps sends within the trailing minute and the trailing hour."""
    
    def __init__(
        self,
        max_per_minute: int = 20,
        max_per_hour: int = 100,
        clock: Optional[ClockProtocol] = None,
    ):
        self._limits = ((timedelta(minutes=1), max_per_minute), (timedelta(hours=1), max_per_hour))
        self._clock = clock or ClockFactory.get_clock()
        self._sent: Deque = deque()
        self._lock = asyncio.Lock()
    
    async def acquire(self) -> bool:
        """Reserve a send slot, or return False if a cap is reached."""
        async with self._lock:
            now = self._clock.now()
            horizon = now - self._limits[-1][0]
            while self._sent and self._sent[0] <= horizon:
                self._sent.popleft()
            
            for span, cap in self._limits:
                start = now - span
                if sum(1 for t in self._sent if t > start) >= cap:
                    return False
            
            self._sent.append(now)
            return True


# ============================================================
# TELEGRAM CHANNEL
# ============================================================

class TelegramChannel(AlertChannel):
    """Delivers alerts to every configured chat id via the Bot API."""
    
    channel = AlertChannelName.CHAT
    
    BASE_URL = "https://api.telegram.org/bot"
    
    def __init__(
        self,
        bot_token: str,
        chat_ids: Sequence[str],
        rate_limiter: Optional[TelegramRateLimiter] = None,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._bot_token = bot_token
        self._chat_ids = list(chat_ids)
        self._rate_limiter = rate_limiter or TelegramRateLimiter()
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        
        if self.configured:
            logger.info(f"TelegramChannel enabled with {len(self._chat_ids)} chat(s)")
        else:
            logger.warning("TelegramChannel NOT configured - check TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID")
    
    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_ids)
    
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
        if not self.configured:
            raise AlertDeliveryError("Telegram channel not configured", channel=self.name)
        
        if not await self._rate_limiter.acquire():
            raise AlertDeliveryError("Telegram rate limit reached", channel=self.name)
        
        message = TelegramFormatter.format_alert(alert)
        failed = []
        for chat_id in self._chat_ids:
            if not await self._send_message(chat_id, message):
                failed.append(chat_id)
        
        if failed:
            raise AlertDeliveryError(
                f"Telegram delivery failed for {len(failed)}/{len(self._chat_ids)} chats",
                channel=self.name,
                context={"chat_ids": failed},
            )
    
    async def _send_message(self, chat_id: str, message: str, parse_mode: str = "HTML") -> bool:
        payload = {
            "chat_id": chat_id,
            "text": message,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            session = await self._get_session()
            async with session.post(f"{self.BASE_URL}{self._bot_token}/sendMessage", json=payload) as response:
                if response.status == 200:
                    return True
                body = await response.text()
                logger.error(f"Telegram API error: {response.status} - {body}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending Telegram message: {e}")
            return False


__all__ = ["TelegramFormatter", "TelegramRateLimiter", "TelegramChannel"]
