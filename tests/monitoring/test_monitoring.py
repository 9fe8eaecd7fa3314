"""
Tests for the Monitoring & Alerting Subsystem.

============================================================
PURPOSE
============================================================
1. Severity-based routing and channel isolation
2. Throttling with critical bypass
3. Dashboard persistence and alert lifecycle
4. Telegram formatting and rate limiting

TEST PRINCIPLES:
- Routing never raises
- A broken channel never blocks the others

============================================================
"""

from unittest.mock import AsyncMock, patch

import pytest

from core.exceptions import AlertDeliveryError
from core.types import SeverityTier
from monitoring.alert_router import AlertRouter, AlertThrottle
from monitoring.config import ALL_CHANNELS, MonitoringConfig, load_config_from_dict
from monitoring.dashboard_service import AlertDashboardService, AlertNotFoundError
from monitoring.notifications import (
    AlertChannel,
    DashboardChannel,
    TelegramChannel,
    TelegramFormatter,
    TelegramRateLimiter,
    email_channel,
)
from monitoring.types import Alert, AlertChannelName, AlertSeverity, AlertStatus


# ============================================================
# FIXTURES
# ============================================================

class RecordingChannel(AlertChannel):
    """In-memory channel that records or fails deliveries."""
    
    def __init__(self, channel, error=None):
        self.channel = channel
        self.error = error
        self.sent = []
    
    async def send(self, alert):
        if self.error is not None:
            raise self.error
        self.sent.append(alert)


def _alert(severity=AlertSeverity.HIGH, alert_type="abuse_signal", **kwargs):
    return Alert(
        alert_type=alert_type,
        severity=severity,
        title=kwargs.pop("title", "Abuse signal"),
        message=kwargs.pop("message", "token_drain for c1"),
        **kwargs,
    )


@pytest.fixture
def channels():
    return {name: RecordingChannel(name) for name in ALL_CHANNELS}


@pytest.fixture
def router(channels, clock):
    return AlertRouter(channels, MonitoringConfig(), clock=clock)


# ============================================================
# TYPE TESTS
# ============================================================

class TestAlertTypes:
    
    def test_from_tier(self):
        assert AlertSeverity.from_tier(SeverityTier.CRITICAL) == AlertSeverity.CRITICAL
        assert AlertSeverity.from_tier(SeverityTier.LOW) == AlertSeverity.LOW
    
    def test_throttle_bypass(self):
        assert AlertSeverity.EMERGENCY.bypasses_throttle
        assert AlertSeverity.CRITICAL.bypasses_throttle
        assert not AlertSeverity.HIGH.bypasses_throttle


# ============================================================
# CONFIG TESTS
# ============================================================

class TestMonitoringConfig:
    
    def test_default_routes(self):
        config = MonitoringConfig()
        assert config.channels_for(AlertSeverity.CRITICAL) == ALL_CHANNELS
        assert config.channels_for(AlertSeverity.HIGH) == (AlertChannelName.DASHBOARD, AlertChannelName.CHAT)
        assert config.channels_for(AlertSeverity.LOW) == (AlertChannelName.DASHBOARD,)
        assert config.validate() == []
    
    def test_dashboard_required(self):
        config = load_config_from_dict({"routes": {"high": ["chat"]}})
        assert any("dashboard" in e for e in config.validate())
    
    def test_chat_ids_from_string(self):
        config = load_config_from_dict({"telegram_bot_token": "t", "telegram_chat_ids": "-100, -200,"})
        assert config.telegram_chat_ids == ("-100", "-200")
        assert config.to_dict()["telegram_configured"]


# ============================================================
# ROUTER TESTS
# ============================================================

class TestAlertRouter:
    """Routing by severity; failures isolated per channel."""
    
    @pytest.mark.asyncio
    async def test_critical_goes_everywhere(self, router, channels):
        result = await router.route(_alert(AlertSeverity.CRITICAL))
        
        assert sorted(result.routed_to) == sorted(c.value for c in ALL_CHANNELS)
        assert result.failed == {}
        assert all(len(c.sent) == 1 for c in channels.values())
    
    @pytest.mark.asyncio
    async def test_high_goes_to_dashboard_and_chat(self, router, channels):
        result = await router.route(_alert(AlertSeverity.HIGH))
        
        assert sorted(result.routed_to) == ["chat", "dashboard"]
        assert channels[AlertChannelName.EMAIL].sent == []
    
    @pytest.mark.asyncio
    async def test_medium_dashboard_only(self, router):
        result = await router.route(_alert(AlertSeverity.MEDIUM))
        assert result.routed_to == ["dashboard"]
    
    @pytest.mark.asyncio
    async def test_failing_channel_isolated(self, channels, clock):
        channels[AlertChannelName.CHAT] = RecordingChannel(
            AlertChannelName.CHAT, AlertDeliveryError("Telegram rate limit reached")
        )
        channels[AlertChannelName.EMAIL] = RecordingChannel(AlertChannelName.EMAIL, RuntimeError("socket closed"))
        router = AlertRouter(channels, clock=clock)
        
        result = await router.route(_alert(AlertSeverity.EMERGENCY))
        
        assert sorted(result.routed_to) == ["dashboard", "push"]
        assert result.failed == {
            "chat": "Telegram rate limit reached",
            "email": "RuntimeError: socket closed",
        }
        assert result.delivered
    
    @pytest.mark.asyncio
    async def test_missing_channel_reported(self, clock):
        router = AlertRouter({AlertChannelName.DASHBOARD: RecordingChannel(AlertChannelName.DASHBOARD)}, clock=clock)
        
        result = await router.route(_alert(AlertSeverity.HIGH))
        
        assert result.routed_to == ["dashboard"]
        assert result.failed == {"chat": "not configured"}
        assert router.channel_names == ["dashboard"]
    
    @pytest.mark.asyncio
    async def test_throttle_repeats(self, router, channels, clock):
        first = await router.route(_alert(AlertSeverity.HIGH))
        second = await router.route(_alert(AlertSeverity.HIGH))
        other_type = await router.route(_alert(AlertSeverity.HIGH, alert_type="farming_case"))
        
        assert not first.throttled
        assert second.throttled
        assert second.routed_to == []
        assert not other_type.throttled
        
        clock.advance(seconds=301)
        assert not (await router.route(_alert(AlertSeverity.HIGH))).throttled
    
    @pytest.mark.asyncio
    async def test_critical_never_throttled(self, router):
        results = [await router.route(_alert(AlertSeverity.CRITICAL)) for _ in range(3)]
        assert not any(r.throttled for r in results)
    
    @pytest.mark.asyncio
    async def test_history_newest_first(self, router):
        a = _alert(AlertSeverity.LOW, alert_type="a")
        b = _alert(AlertSeverity.LOW, alert_type="b")
        await router.route(a)
        await router.route(b)
        
        history = router.get_history()
        assert [r.alert_id for r in history] == [b.alert_id, a.alert_id]
        assert len(router.get_history(limit=1)) == 1


class TestAlertThrottle:
    
    def test_disabled_window(self, clock):
        throttle = AlertThrottle(window_seconds=0, clock=clock)
        alert = _alert(AlertSeverity.LOW)
        assert throttle.allow(alert)
        assert throttle.allow(alert)
    
    def test_reset(self, clock):
        throttle = AlertThrottle(window_seconds=60, clock=clock)
        alert = _alert(AlertSeverity.LOW)
        assert throttle.allow(alert)
        assert not throttle.allow(alert)
        throttle.reset()
        assert throttle.allow(alert)


# ============================================================
# DASHBOARD TESTS
# ============================================================

class TestDashboard:
    """Alerts stored for operators, with ack / resolve."""
    
    @pytest.mark.asyncio
    async def test_channel_stores_alert(self, session_factory, clock):
        channel = DashboardChannel(session_factory)
        alert = _alert(AlertSeverity.HIGH, subject_id="c1", data={"count": 7})
        
        await channel.send(alert)
        await channel.send(alert)
        
        alerts = await AlertDashboardService(session_factory, clock).list_unresolved()
        assert len(alerts) == 1
        assert alerts[0]["alert_id"] == alert.alert_id
        assert alerts[0]["channels"] == ["dashboard", "chat"]
        assert alerts[0]["status"] == AlertStatus.OPEN.value
        assert alerts[0]["data"] == {"count": 7}
    
    @pytest.mark.asyncio
    async def test_lifecycle(self, session_factory, clock):
        alert = _alert(AlertSeverity.MEDIUM)
        await DashboardChannel(session_factory).send(alert)
        service = AlertDashboardService(session_factory, clock)
        
        acked = await service.acknowledge(alert.alert_id, "op-1")
        assert acked["status"] == AlertStatus.ACKNOWLEDGED.value
        assert acked["acknowledged_by"] == "op-1"
        
        again = await service.acknowledge(alert.alert_id, "op-2")
        assert again["acknowledged_by"] == "op-1"
        
        resolved = await service.resolve(alert.alert_id, "op-2")
        assert resolved["status"] == AlertStatus.RESOLVED.value
        assert await service.list_unresolved() == []
    
    @pytest.mark.asyncio
    async def test_unknown_alert(self, session_factory, clock):
        service = AlertDashboardService(session_factory, clock)
        with pytest.raises(AlertNotFoundError):
            await service.acknowledge("alert_missing", "op-1")
        with pytest.raises(AlertNotFoundError):
            await service.resolve("alert_missing", "op-1")


# ============================================================
# TELEGRAM TESTS
# ============================================================

class TestTelegramFormatter:
    
    def test_escapes_html(self, fixed_now):
        alert = _alert(
            AlertSeverity.CRITICAL,
            title="<script>",
            message="a & b",
            subject_id="<u1>",
            created_at=fixed_now,
        )
        text = TelegramFormatter.format_alert(alert)
        
        assert "&lt;script&gt;" in text
        assert "a &amp; b" in text
        assert "&lt;u1&gt;" in text
        assert "2024-06-01 12:00:00 UTC" in text
    
    def test_details_truncated(self):
        alert = _alert(data={f"k{i}": i for i in range(7)})
        text = TelegramFormatter.format_alert(alert)
        
        assert "<b>Details:</b>" in text
        assert "<code>k4</code>" in text
        assert "<code>k5</code>" not in text
        assert "... and 2 more" in text
    
    def test_formats_floats_and_lists(self):
        text = TelegramFormatter.format_alert(_alert(data={"confidence": 0.9, "accounts": ["a", "b", "c", "d"]}))
        assert "0.9000" in text
        assert "a, b, c, ..." in text


class TestTelegramChannel:
    
    @pytest.mark.asyncio
    async def test_rate_limiter(self):
        limiter = TelegramRateLimiter(max_per_minute=2)
        assert await limiter.acquire()
        assert await limiter.acquire()
        assert not await limiter.acquire()
    
    @pytest.mark.asyncio
    async def test_not_configured(self):
        channel = TelegramChannel("", [])
        assert not channel.configured
        with pytest.raises(AlertDeliveryError):
            await channel.send(_alert())
    
    @pytest.mark.asyncio
    async def test_partial_chat_failure(self):
        channel = TelegramChannel("token", ["-100", "-200"])
        with patch.object(channel, "_send_message", AsyncMock(side_effect=[True, False])) as send:
            with pytest.raises(AlertDeliveryError) as exc_info:
                await channel.send(_alert())
        
        assert send.await_count == 2
        assert exc_info.value.context["chat_ids"] == ["-200"]
    
    @pytest.mark.asyncio
    async def test_all_chats_delivered(self):
        channel = TelegramChannel("token", ["-100"])
        with patch.object(channel, "_send_message", AsyncMock(return_value=True)):
            await channel.send(_alert())


class TestWebhookChannel:
    
    @pytest.mark.asyncio
    async def test_missing_url(self):
        channel = email_channel("")
        assert channel.name == "email"
        with pytest.raises(AlertDeliveryError):
            await channel.send(_alert())
