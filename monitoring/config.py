"""
Monitoring - Configuration.

============================================================
DEFAULT ROUTES
============================================================
emergency, critical -> dashboard + chat + email + push
high                -> dashboard + chat
medium, low         -> dashboard

Throttle: one alert per (type, severity) per 5 minutes;
critical and emergency are never throttled.

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .types import AlertChannelName, AlertSeverity


C = AlertChannelName

ALL_CHANNELS: Tuple[AlertChannelName, ...] = (C.DASHBOARD, C.CHAT, C.EMAIL, C.PUSH)


def _default_routes() -> Dict[AlertSeverity, Tuple[AlertChannelName, ...]]:
    return {
        AlertSeverity.EMERGENCY: ALL_CHANNELS,
        AlertSeverity.CRITICAL: ALL_CHANNELS,
        AlertSeverity.HIGH: (C.DASHBOARD, C.CHAT),
        AlertSeverity.MEDIUM: (C.DASHBOARD,),
        AlertSeverity.LOW: (C.DASHBOARD,),
    }


@dataclass(frozen=True)
class MonitoringConfig:
    routes: Dict[AlertSeverity, Tuple[AlertChannelName, ...]] = field(default_factory=_default_routes)
    throttle_seconds: int = 300
    
    telegram_bot_token: str = ""
    telegram_chat_ids: Tuple[str, ...] = ()
    email_webhook_url: str = ""
    push_webhook_url: str = ""
    http_timeout_seconds: float = 10.0
    
    def channels_for(self, severity: AlertSeverity) -> Tuple[AlertChannelName, ...]:
        return self.routes.get(severity, (C.DASHBOARD,))
    
    def validate(self) -> List[str]:
        errors = []
        for severity in AlertSeverity:
            channels = self.routes.get(severity)
            if not channels:
                errors.append(f"no alert route for severity {severity.value}")
            elif C.DASHBOARD not in channels:
                errors.append(f"alert route for {severity.value} must include the dashboard")
        if self.throttle_seconds < 0:
            errors.append("throttle_seconds must be non-negative")
        return errors
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "routes": {s.value: [c.value for c in chans] for s, chans in self.routes.items()},
            "throttle_seconds": self.throttle_seconds,
            "telegram_configured": bool(self.telegram_bot_token and self.telegram_chat_ids),
            "email_configured": bool(self.email_webhook_url),
            "push_configured": bool(self.push_webhook_url),
            "http_timeout_seconds": self.http_timeout_seconds,
        }


def load_config_from_dict(data: Dict[str, Any]) -> MonitoringConfig:
    defaults = MonitoringConfig()
    routes = dict(defaults.routes)
    for severity, channels in (data.get("routes") or {}).items():
        routes[AlertSeverity(severity)] = tuple(AlertChannelName(c) for c in channels)
    chat_ids = data.get("telegram_chat_ids", defaults.telegram_chat_ids)
    if isinstance(chat_ids, str):
        chat_ids = [c.strip() for c in chat_ids.split(",") if c.strip()]
    return MonitoringConfig(
        routes=routes,
        throttle_seconds=int(data.get("throttle_seconds", defaults.throttle_seconds)),
        telegram_bot_token=str(data.get("telegram_bot_token", defaults.telegram_bot_token)),
        telegram_chat_ids=tuple(chat_ids),
        email_webhook_url=str(data.get("email_webhook_url", defaults.email_webhook_url)),
        push_webhook_url=str(data.get("push_webhook_url", defaults.push_webhook_url)),
        http_timeout_seconds=float(data.get("http_timeout_seconds", defaults.http_timeout_seconds)),
    )


__all__ = ["ALL_CHANNELS", "MonitoringConfig", "load_config_from_dict"]
