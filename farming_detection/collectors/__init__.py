"""
Farming Detection - Signal Collectors.

Independent heuristics, each turning a working set of
account ids into candidate clusters:

1. IpCorrelationCollector - shared session IPs
2. DeviceCorrelationCollector - shared device fingerprints
3. BehavioralSimilarityCollector - active-hour and vocabulary overlap
4. MessageScriptCollector - identical long messages
5. ReferralLoopCollector - cycles in the referral graph
6. SynchronizedActivityCollector - lockstep activity timelines
7. TokenLaunderingCollector - cycles in the token flow graph
"""

from typing import List, Optional

from core.clock import ClockProtocol
from data_sources.repositories import UpstreamRepositories

from ..config import FarmingDetectionConfig
from .base import BaseCollector, iter_pairs, jaccard
from .network import IpCorrelationCollector, DeviceCorrelationCollector
from .behavior import (
    BehavioralSimilarityCollector,
    MessageScriptCollector,
    SynchronizedActivityCollector,
)
from .referral import ReferralLoopCollector
from .laundering import TokenLaunderingCollector


def create_default_collectors(
    repos: UpstreamRepositories,
    config: Optional[FarmingDetectionConfig] = None,
    clock: Optional[ClockProtocol] = None,
) -> List[BaseCollector]:
    """All collectors wired to the upstream repositories."""
    config = config or FarmingDetectionConfig()
    return [
        IpCorrelationCollector(repos.sessions, config.ip, clock),
        DeviceCorrelationCollector(repos.sessions, config.device, clock),
        BehavioralSimilarityCollector(
            repos.sessions, repos.activity, repos.messages, config.behavioral, clock
        ),
        MessageScriptCollector(repos.messages, config.message_script, clock),
        ReferralLoopCollector(repos.accounts, config.referral_loop, clock),
        SynchronizedActivityCollector(repos.activity, config.synchronized, clock),
        TokenLaunderingCollector(repos.transactions, config.token_laundering, clock),
    ]


__all__ = [
    "BaseCollector",
    "iter_pairs",
    "jaccard",
    "IpCorrelationCollector",
    "DeviceCorrelationCollector",
    "BehavioralSimilarityCollector",
    "MessageScriptCollector",
    "ReferralLoopCollector",
    "SynchronizedActivityCollector",
    "TokenLaunderingCollector",
    "create_default_collectors",
]
