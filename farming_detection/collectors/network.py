"""
Farming Detection - Shared IP and Device Collectors.

Accounts are grouped by the IP address or device fingerprint of
their recent sessions. A group large enough to be suspicious
becomes one cluster.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from core.clock import ClockProtocol
from data_sources.base import SessionReader
from data_sources.models import SessionRecord

from ..config import DeviceCorrelationConfig, IpCorrelationConfig, LinearConfidence
from ..types import Cluster, Signal, SignalType
from .base import BaseCollector


logger = logging.getLogger(__name__)


def group_accounts_by(
    sessions: Iterable[SessionRecord],
    key: Callable[[SessionRecord], Optional[str]],
) -> Dict[str, Set[str]]:
    groups: Dict[str, Set[str]] = defaultdict(set)
    for session in sessions:
        value = key(session)
        if value and session.account_id:
            groups[value].add(session.account_id)
    return groups


def detect_shared_attribute(
    groups: Dict[str, Set[str]],
    min_accounts: int,
    curve: LinearConfidence,
    signal_type: SignalType,
    evidence_key: str,
    detected_at: datetime,
) -> List[Cluster]:
    clusters = []
    for value in sorted(groups):
        accounts = groups[value]
        if len(accounts) < min_accounts:
            continue
        confidence = curve.at(len(accounts))
        signal = Signal(
            type=signal_type,
            strength=confidence,
            evidence={evidence_key: value, "account_count": len(accounts)},
            description=f"{len(accounts)} accounts share {evidence_key} {value}",
        )
        clusters.append(Cluster.create(accounts, [signal], confidence, detected_at=detected_at))
    return clusters


def detect_shared_ips(
    sessions: Iterable[SessionRecord],
    config: IpCorrelationConfig,
    detected_at: datetime,
) -> List[Cluster]:
    """One cluster per IP shared by at least `min_accounts` accounts."""
    groups = group_accounts_by(sessions, lambda s: s.ip_address)
    return detect_shared_attribute(
        groups, config.min_accounts, config.confidence,
        SignalType.IP_CORRELATION, "ip_address", detected_at,
    )


def detect_shared_devices(
    sessions: Iterable[SessionRecord],
    config: DeviceCorrelationConfig,
    detected_at: datetime,
) -> List[Cluster]:
    """One cluster per device fingerprint shared by at least `min_accounts` accounts."""
    groups = group_accounts_by(sessions, lambda s: s.device_fingerprint)
    return detect_shared_attribute(
        groups, config.min_accounts, config.confidence,
        SignalType.DEVICE_CORRELATION, "device_fingerprint", detected_at,
    )


class IpCorrelationCollector(BaseCollector):
    name = "ip_correlation"
    signal_type = SignalType.IP_CORRELATION
    
    def __init__(
        self,
        sessions: SessionReader,
        config: Optional[IpCorrelationConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._sessions = sessions
        self.config = config or IpCorrelationConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        sessions = await self._sessions.list_sessions(account_ids, self._since(now, self.config.lookback_days))
        return detect_shared_ips(sessions, self.config, now)


class DeviceCorrelationCollector(BaseCollector):
    name = "device_correlation"
    signal_type = SignalType.DEVICE_CORRELATION
    
    def __init__(
        self,
        sessions: SessionReader,
        config: Optional[DeviceCorrelationConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._sessions = sessions
        self.config = config or DeviceCorrelationConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        sessions = await self._sessions.list_sessions(account_ids, self._since(now, self.config.lookback_days))
        return detect_shared_devices(sessions, self.config, now)


__all__ = [
    "group_accounts_by",
    "detect_shared_ips",
    "detect_shared_devices",
    "IpCorrelationCollector",
    "DeviceCorrelationCollector",
]
