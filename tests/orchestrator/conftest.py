"""
Orchestrator test fixtures.

============================================================
FIXTURES
============================================================
- channels: dashboard persisted, chat recorded in memory
- container: EngineContainer over the in-memory store and
  database, with an in-memory job lock

============================================================
"""

import pytest

from monitoring.notifications import AlertChannel, DashboardChannel
from monitoring.types import AlertChannelName
from orchestrator.config import EngineConfig
from orchestrator.core import EngineContainer
from orchestrator.locks import InMemoryJobLock


class RecordingChannel(AlertChannel):
    """Records deliveries instead of sending them."""
    
    def __init__(self, channel):
        self.channel = channel
        self.sent = []
    
    async def send(self, alert):
        self.sent.append(alert)


@pytest.fixture
def chat():
    return RecordingChannel(AlertChannelName.CHAT)


@pytest.fixture
def channels(session_factory, chat):
    return {
        AlertChannelName.DASHBOARD: DashboardChannel(session_factory),
        AlertChannelName.CHAT: chat,
    }


@pytest.fixture
def container(store, session_factory, clock, channels):
    return EngineContainer.build(
        EngineConfig(),
        store=store,
        session_factory=session_factory,
        clock=clock,
        lock=InMemoryJobLock(clock),
        channels=channels,
    )
