"""
Farming Detection - Configuration.

============================================================
PURPOSE
============================================================
Thresholds and confidence curves for the collectors, the
merge strategy and the escalation thresholds.

============================================================
CONFIDENCE CURVES
============================================================
Collectors with a linear curve compute:

    confidence = min(max_confidence, base + step * (n - offset))

where n is the group size, pair count, cycle length or (token
laundering) the number of cycles.

============================================================
ESCALATION THRESHOLDS
============================================================
- > persist_threshold (0.70): cluster is persisted
- > case_threshold (0.85): farming case opened, cluster confirmed
- > critical_threshold (0.95): case severity CRITICAL

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


# ============================================================
# CONFIDENCE CURVE
# ============================================================


@dataclass(frozen=True)
class LinearConfidence:
    """min(max_confidence, base + step * (n - offset)), rounded to 4 dp."""
    base: float
    step: float
    offset: int
    max_confidence: float
    
    def at(self, n: float) -> float:
        value = min(self.max_confidence, self.base + self.step * (n - self.offset))
        return round(max(0.0, min(1.0, value)), 4)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "base": self.base,
            "step": self.step,
            "offset": self.offset,
            "max_confidence": self.max_confidence,
        }


# ============================================================
# COLLECTOR CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class IpCorrelationConfig:
    """Accounts sharing a session IP."""
    
    min_accounts: int = 3
    lookback_days: int = 30
    confidence: LinearConfidence = LinearConfidence(base=0.5, step=0.1, offset=3, max_confidence=0.95)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_accounts": self.min_accounts,
            "lookback_days": self.lookback_days,
            "confidence": self.confidence.to_dict(),
        }


@dataclass(frozen=True)
class DeviceCorrelationConfig:
    """Accounts sharing a device fingerprint."""
    
    min_accounts: int = 2
    lookback_days: int = 30
    confidence: LinearConfidence = LinearConfidence(base=0.6, step=0.15, offset=2, max_confidence=0.98)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_accounts": self.min_accounts,
            "lookback_days": self.lookback_days,
            "confidence": self.confidence.to_dict(),
        }


@dataclass(frozen=True)
class BehavioralSimilarityConfig:
    """
    Pairwise behavioral fingerprint overlap.
    
    similarity = mean(jaccard(active hours), jaccard(message tokens))
    Emits when similarity > similarity_threshold.
    """
    
    similarity_threshold: float = 0.7
    lookback_days: int = 30
    message_sample_size: int = 100
    min_token_length: int = 3
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "similarity_threshold": self.similarity_threshold,
            "lookback_days": self.lookback_days,
            "message_sample_size": self.message_sample_size,
            "min_token_length": self.min_token_length,
        }


@dataclass(frozen=True)
class MessageScriptConfig:
    """Identical scripted messages across two accounts."""
    
    min_message_length: int = 20          # strictly longer than this
    min_identical_messages: int = 3
    message_sample_size: int = 50
    lookback_days: int = 7
    confidence: LinearConfidence = LinearConfidence(base=0.6, step=0.1, offset=0, max_confidence=0.95)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_message_length": self.min_message_length,
            "min_identical_messages": self.min_identical_messages,
            "message_sample_size": self.message_sample_size,
            "lookback_days": self.lookback_days,
            "confidence": self.confidence.to_dict(),
        }


@dataclass(frozen=True)
class ReferralLoopConfig:
    """Cycles in the account -> referrer graph."""
    
    max_resolution_rounds: int = 10       # referrer lookups outside the working set
    confidence: LinearConfidence = LinearConfidence(base=0.7, step=0.05, offset=0, max_confidence=0.9)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_resolution_rounds": self.max_resolution_rounds,
            "confidence": self.confidence.to_dict(),
        }


@dataclass(frozen=True)
class SynchronizedActivityConfig:
    """
    Pairwise activity timelines moving in lockstep.
    
    synchronization = matched pairs / min(len(t1), len(t2))
    """
    
    window_seconds: float = 300.0
    synchronization_threshold: float = 0.6
    lookback_days: int = 7
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_seconds": self.window_seconds,
            "synchronization_threshold": self.synchronization_threshold,
            "lookback_days": self.lookback_days,
        }


@dataclass(frozen=True)
class TokenLaunderingConfig:
    """
    Cycles in the payer -> creator token flow graph.
    
    confidence = min(max_confidence,
                     base + step * cycles + bonus if accounts > large_network_size)
    """
    
    lookback_days: int = 7
    max_cycle_length: int = 6
    max_cycles: int = 500
    large_network_size: int = 5
    large_network_bonus: float = 0.2
    confidence: LinearConfidence = LinearConfidence(base=0.5, step=0.1, offset=0, max_confidence=0.95)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "lookback_days": self.lookback_days,
            "max_cycle_length": self.max_cycle_length,
            "max_cycles": self.max_cycles,
            "large_network_size": self.large_network_size,
            "large_network_bonus": self.large_network_bonus,
            "confidence": self.confidence.to_dict(),
        }


# ============================================================
# MERGE / ESCALATION CONFIGURATION
# ============================================================


class MergeStrategy(str, Enum):
    """
    SINGLE_PASS groups each cluster with its direct neighbours in
    list order. UNION_FIND groups the full transitive closure of
    clusters connected by shared accounts.
    """
    
    SINGLE_PASS = "single_pass"
    UNION_FIND = "union_find"


@dataclass(frozen=True)
class MergeConfig:
    strategy: MergeStrategy = MergeStrategy.SINGLE_PASS
    confirm_threshold: float = 0.85
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "confirm_threshold": self.confirm_threshold,
        }


@dataclass(frozen=True)
class EscalationConfig:
    persist_threshold: float = 0.7
    case_threshold: float = 0.85
    critical_threshold: float = 0.95
    trigger_trust_recompute: bool = True
    request_manual_review: bool = True
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "persist_threshold": self.persist_threshold,
            "case_threshold": self.case_threshold,
            "critical_threshold": self.critical_threshold,
            "trigger_trust_recompute": self.trigger_trust_recompute,
            "request_manual_review": self.request_manual_review,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class FarmingDetectionConfig:
    """Complete farming detection configuration."""
    
    ip: IpCorrelationConfig = field(default_factory=IpCorrelationConfig)
    device: DeviceCorrelationConfig = field(default_factory=DeviceCorrelationConfig)
    behavioral: BehavioralSimilarityConfig = field(default_factory=BehavioralSimilarityConfig)
    message_script: MessageScriptConfig = field(default_factory=MessageScriptConfig)
    referral_loop: ReferralLoopConfig = field(default_factory=ReferralLoopConfig)
    synchronized: SynchronizedActivityConfig = field(default_factory=SynchronizedActivityConfig)
    token_laundering: TokenLaunderingConfig = field(default_factory=TokenLaunderingConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    escalation: EscalationConfig = field(default_factory=EscalationConfig)
    scan_batch_size: int = 500
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "ip": self.ip.to_dict(),
            "device": self.device.to_dict(),
            "behavioral": self.behavioral.to_dict(),
            "message_script": self.message_script.to_dict(),
            "referral_loop": self.referral_loop.to_dict(),
            "synchronized": self.synchronized.to_dict(),
            "token_laundering": self.token_laundering.to_dict(),
            "merge": self.merge.to_dict(),
            "escalation": self.escalation.to_dict(),
            "scan_batch_size": self.scan_batch_size,
        }


def _curve(data: Dict[str, Any], default: LinearConfidence) -> LinearConfidence:
    if not data:
        return default
    return LinearConfidence(
        base=float(data.get("base", default.base)),
        step=float(data.get("step", default.step)),
        offset=int(data.get("offset", default.offset)),
        max_confidence=float(data.get("max_confidence", default.max_confidence)),
    )


def load_config_from_dict(data: Dict[str, Any]) -> FarmingDetectionConfig:
    """
    Build a FarmingDetectionConfig from a plain dict (YAML section).
    
    Unknown keys are ignored; missing keys keep their defaults.
    """
    defaults = FarmingDetectionConfig()
    
    def section(name: str) -> Dict[str, Any]:
        value = data.get(name) or {}
        return dict(value) if isinstance(value, dict) else {}
    
    ip = section("ip")
    device = section("device")
    behavioral = section("behavioral")
    script = section("message_script")
    referral = section("referral_loop")
    sync = section("synchronized")
    laundering = section("token_laundering")
    merge = section("merge")
    escalation = section("escalation")
    
    return FarmingDetectionConfig(
        ip=IpCorrelationConfig(
            min_accounts=int(ip.get("min_accounts", defaults.ip.min_accounts)),
            lookback_days=int(ip.get("lookback_days", defaults.ip.lookback_days)),
            confidence=_curve(ip.get("confidence"), defaults.ip.confidence),
        ),
        device=DeviceCorrelationConfig(
            min_accounts=int(device.get("min_accounts", defaults.device.min_accounts)),
            lookback_days=int(device.get("lookback_days", defaults.device.lookback_days)),
            confidence=_curve(device.get("confidence"), defaults.device.confidence),
        ),
        behavioral=BehavioralSimilarityConfig(
            **{k: v for k, v in behavioral.items() if k in BehavioralSimilarityConfig.__dataclass_fields__}
        ),
        message_script=MessageScriptConfig(
            min_message_length=int(script.get("min_message_length", defaults.message_script.min_message_length)),
            min_identical_messages=int(script.get("min_identical_messages", defaults.message_script.min_identical_messages)),
            message_sample_size=int(script.get("message_sample_size", defaults.message_script.message_sample_size)),
            lookback_days=int(script.get("lookback_days", defaults.message_script.lookback_days)),
            confidence=_curve(script.get("confidence"), defaults.message_script.confidence),
        ),
        referral_loop=ReferralLoopConfig(
            max_resolution_rounds=int(referral.get("max_resolution_rounds", defaults.referral_loop.max_resolution_rounds)),
            confidence=_curve(referral.get("confidence"), defaults.referral_loop.confidence),
        ),
        synchronized=SynchronizedActivityConfig(
            **{k: v for k, v in sync.items() if k in SynchronizedActivityConfig.__dataclass_fields__}
        ),
        token_laundering=TokenLaunderingConfig(
            **{
                k: v for k, v in laundering.items()
                if k in TokenLaunderingConfig.__dataclass_fields__ and k != "confidence"
            },
            confidence=_curve(laundering.get("confidence"), defaults.token_laundering.confidence),
        ),
        merge=MergeConfig(
            strategy=MergeStrategy(merge.get("strategy", defaults.merge.strategy.value)),
            confirm_threshold=float(merge.get("confirm_threshold", defaults.merge.confirm_threshold)),
        ),
        escalation=EscalationConfig(
            **{k: v for k, v in escalation.items() if k in EscalationConfig.__dataclass_fields__}
        ),
        scan_batch_size=int(data.get("scan_batch_size", defaults.scan_batch_size)),
    )


__all__ = [
    "LinearConfidence",
    "IpCorrelationConfig",
    "DeviceCorrelationConfig",
    "BehavioralSimilarityConfig",
    "MessageScriptConfig",
    "ReferralLoopConfig",
    "SynchronizedActivityConfig",
    "TokenLaunderingConfig",
    "MergeStrategy",
    "MergeConfig",
    "EscalationConfig",
    "FarmingDetectionConfig",
    "load_config_from_dict",
]
