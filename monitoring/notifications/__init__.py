"""
Notifications Package.

Alert channels: dashboard (database), chat (Telegram), email
and push (gateway webhooks).
"""

from .base import AlertChannel
from .dashboard import DashboardChannel
from .telegram import TelegramFormatter, TelegramRateLimiter, TelegramChannel
from .webhook import WebhookChannel, email_channel, push_channel


__all__ = [
    "AlertChannel",
    "DashboardChannel",
    "TelegramFormatter",
    "TelegramRateLimiter",
    "TelegramChannel",
    "WebhookChannel",
    "email_channel",
    "push_channel",
]
