"""
Farming Detection - Pairwise Behavior Collectors.

Three pairwise heuristics over each account pair of the working
set:

- Behavioral similarity: active hours and vocabulary overlap
- Message script: identical long messages sent by both accounts
- Synchronized activity: action timelines moving in lockstep

Each emits a two-account cluster per suspicious pair; the merger
later folds overlapping pairs together.
"""

import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from core.clock import ClockProtocol
from data_sources.base import ActivityReader, MessageReader, SessionReader
from data_sources.models import ActivityRecord, MessageRecord, SessionRecord

from ..config import (
    BehavioralSimilarityConfig,
    MessageScriptConfig,
    SynchronizedActivityConfig,
)
from ..types import Cluster, Signal, SignalType
from .base import BaseCollector, iter_pairs, jaccard


logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9']+")


# ============================================================
# BEHAVIORAL SIMILARITY
# ============================================================


def tokenize(text: str, min_length: int) -> Set[str]:
    return {t for t in TOKEN_PATTERN.findall(text.lower()) if len(t) >= min_length}


def build_behavior_profiles(
    sessions: Iterable[SessionRecord],
    activity: Iterable[ActivityRecord],
    messages: Iterable[MessageRecord],
    min_token_length: int,
) -> Dict[str, Dict[str, Set]]:
    """account -> {"hours": active UTC hours, "tokens": message vocabulary}"""
    profiles: Dict[str, Dict[str, Set]] = defaultdict(lambda: {"hours": set(), "tokens": set()})
    for session in sessions:
        if session.account_id and session.started_at:
            profiles[session.account_id]["hours"].add(session.started_at.hour)
    for event in activity:
        if event.account_id and event.occurred_at:
            profiles[event.account_id]["hours"].add(event.occurred_at.hour)
    for message in messages:
        if message.account_id and message.text:
            profiles[message.account_id]["tokens"] |= tokenize(message.text, min_token_length)
    return dict(profiles)


def behavioral_similarity(left: Dict[str, Set], right: Dict[str, Set]) -> float:
    return (jaccard(left["hours"], right["hours"]) + jaccard(left["tokens"], right["tokens"])) / 2


def detect_behavioral_similarity(
    profiles: Dict[str, Dict[str, Set]],
    config: BehavioralSimilarityConfig,
    detected_at: datetime,
) -> List[Cluster]:
    clusters = []
    for left, right in iter_pairs(list(profiles)):
        similarity = round(behavioral_similarity(profiles[left], profiles[right]), 4)
        if similarity <= config.similarity_threshold:
            continue
        signal = Signal(
            type=SignalType.BEHAVIORAL_SIMILARITY,
            strength=similarity,
            evidence={
                "pair": [left, right],
                "hour_overlap": round(jaccard(profiles[left]["hours"], profiles[right]["hours"]), 4),
                "token_overlap": round(jaccard(profiles[left]["tokens"], profiles[right]["tokens"]), 4),
            },
            description=f"Behavioral similarity {similarity:.2f}",
        )
        clusters.append(Cluster.create([left, right], [signal], similarity, detected_at=detected_at))
    return clusters


class BehavioralSimilarityCollector(BaseCollector):
    name = "behavioral_similarity"
    signal_type = SignalType.BEHAVIORAL_SIMILARITY
    
    def __init__(
        self,
        sessions: SessionReader,
        activity: ActivityReader,
        messages: MessageReader,
        config: Optional[BehavioralSimilarityConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._sessions = sessions
        self._activity = activity
        self._messages = messages
        self.config = config or BehavioralSimilarityConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        since = self._since(now, self.config.lookback_days)
        sessions = await self._sessions.list_sessions(account_ids, since)
        activity = await self._activity.list_activity(account_ids, since)
        messages = await self._messages.list_recent_messages(
            account_ids, since, self.config.message_sample_size
        )
        profiles = build_behavior_profiles(sessions, activity, messages, self.config.min_token_length)
        return detect_behavioral_similarity(profiles, self.config, now)


# ============================================================
# MESSAGE SCRIPT
# ============================================================


def script_samples(messages: Iterable[MessageRecord], min_length: int) -> Dict[str, Set[str]]:
    """account -> distinct trimmed messages longer than `min_length` chars."""
    samples: Dict[str, Set[str]] = defaultdict(set)
    for message in messages:
        text = message.text.strip()
        if message.account_id and len(text) > min_length:
            samples[message.account_id].add(text)
    return dict(samples)


def detect_message_scripts(
    samples: Dict[str, Set[str]],
    config: MessageScriptConfig,
    detected_at: datetime,
) -> List[Cluster]:
    clusters = []
    for left, right in iter_pairs(list(samples)):
        shared = samples[left] & samples[right]
        if len(shared) < config.min_identical_messages:
            continue
        confidence = config.confidence.at(len(shared))
        signal = Signal(
            type=SignalType.MESSAGE_SCRIPT,
            strength=confidence,
            evidence={
                "pair": [left, right],
                "identical_count": len(shared),
                "examples": sorted(shared)[:3],
            },
            description=f"{len(shared)} identical scripted messages",
        )
        clusters.append(Cluster.create([left, right], [signal], confidence, detected_at=detected_at))
    return clusters


class MessageScriptCollector(BaseCollector):
    name = "message_script"
    signal_type = SignalType.MESSAGE_SCRIPT
    
    def __init__(
        self,
        messages: MessageReader,
        config: Optional[MessageScriptConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._messages = messages
        self.config = config or MessageScriptConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        messages = await self._messages.list_recent_messages(
            account_ids,
            self._since(now, self.config.lookback_days),
            self.config.message_sample_size,
        )
        return detect_message_scripts(
            script_samples(messages, self.config.min_message_length), self.config, now
        )


# ============================================================
# SYNCHRONIZED ACTIVITY
# ============================================================


def count_synchronized_pairs(
    left: Sequence[float],
    right: Sequence[float],
    window_seconds: float,
) -> int:
    """
    Greedy one-to-one matching of timestamps within the window.
    
    Both inputs must be sorted ascending. Each timestamp is used
    at most once, so the result never exceeds min(len(left), len(right)).
    """
    i = j = matches = 0
    while i < len(left) and j < len(right):
        delta = left[i] - right[j]
        if abs(delta) <= window_seconds:
            matches += 1
            i += 1
            j += 1
        elif delta < 0:
            i += 1
        else:
            j += 1
    return matches


def build_timelines(activity: Iterable[ActivityRecord]) -> Dict[str, List[float]]:
    timelines: Dict[str, List[float]] = defaultdict(list)
    for event in activity:
        if event.account_id and event.occurred_at:
            timelines[event.account_id].append(event.occurred_at.timestamp())
    return {account: sorted(stamps) for account, stamps in timelines.items()}


def detect_synchronized_activity(
    timelines: Dict[str, List[float]],
    config: SynchronizedActivityConfig,
    detected_at: datetime,
) -> List[Cluster]:
    eligible = [a for a, t in timelines.items() if t]
    clusters = []
    for left, right in iter_pairs(eligible):
        matches = count_synchronized_pairs(timelines[left], timelines[right], config.window_seconds)
        shortest = min(len(timelines[left]), len(timelines[right]))
        synchronization = round(matches / shortest, 4) if shortest else 0.0
        if synchronization <= config.synchronization_threshold:
            continue
        confidence = min(1.0, synchronization)
        signal = Signal(
            type=SignalType.SYNCHRONIZED_ACTIVITY,
            strength=confidence,
            evidence={
                "pair": [left, right],
                "matches": matches,
                "synchronization": synchronization,
                "window_seconds": config.window_seconds,
            },
            description=f"Activity synchronized at {synchronization:.0%}",
        )
        clusters.append(Cluster.create([left, right], [signal], confidence, detected_at=detected_at))
    return clusters


class SynchronizedActivityCollector(BaseCollector):
    name = "synchronized_activity"
    signal_type = SignalType.SYNCHRONIZED_ACTIVITY
    
    def __init__(
        self,
        activity: ActivityReader,
        config: Optional[SynchronizedActivityConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(clock)
        self._activity = activity
        self.config = config or SynchronizedActivityConfig()
    
    async def _collect(self, account_ids: List[str], now: datetime) -> List[Cluster]:
        activity = await self._activity.list_activity(
            account_ids, self._since(now, self.config.lookback_days)
        )
        return detect_synchronized_activity(build_timelines(activity), self.config, now)


__all__ = [
    "tokenize",
    "build_behavior_profiles",
    "behavioral_similarity",
    "detect_behavioral_similarity",
    "BehavioralSimilarityCollector",
    "script_samples",
    "detect_message_scripts",
    "MessageScriptCollector",
    "count_synchronized_pairs",
    "build_timelines",
    "detect_synchronized_activity",
    "SynchronizedActivityCollector",
]
