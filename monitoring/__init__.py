"""
Monitoring Package - Alert Routing.

============================================================
PURPOSE
============================================================
Fans operator alerts out to dashboard, chat, email and push by
severity, with per-type throttling, and manages the dashboard
alert lifecycle.

============================================================
"""

from .types import AlertSeverity, AlertChannelName, AlertStatus, Alert, RouteResult
from .config import MonitoringConfig, load_config_from_dict
from .alert_router import AlertThrottle, AlertRouter
from .dashboard_service import AlertNotFoundError, AlertDashboardService
from .notifications import (
    AlertChannel,
    DashboardChannel,
    TelegramChannel,
    WebhookChannel,
    email_channel,
    push_channel,
)


__all__ = [
    "AlertSeverity",
    "AlertChannelName",
    "AlertStatus",
    "Alert",
    "RouteResult",
    "MonitoringConfig",
    "load_config_from_dict",
    "AlertThrottle",
    "AlertRouter",
    "AlertNotFoundError",
    "AlertDashboardService",
    "AlertChannel",
    "DashboardChannel",
    "TelegramChannel",
    "WebhookChannel",
    "email_channel",
    "push_channel",
]

__version__ = "1.0.0"
