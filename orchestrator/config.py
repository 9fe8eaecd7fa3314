"""
Orchestrator - Engine Configuration.

============================================================
PURPOSE
============================================================
One versioned configuration object for the whole engine,
composed of the per-package configs and loaded once at startup.

Sources (later wins):
1. Built-in defaults
2. YAML file (FRAUD_ENGINE_CONFIG or --config)
3. Environment variables

============================================================
ENVIRONMENT
============================================================
DATABASE_URL                    engine-owned database
FRAUD_ENGINE_DATASTORE_URL      upstream datastore gateway
FRAUD_ENGINE_DATASTORE_API_KEY
FRAUD_ENGINE_DRY_RUN            true -> remediation dry run
FRAUD_ENGINE_MERGE_STRATEGY     single_pass | union_find
FRAUD_ENGINE_LOG_LEVEL
TELEGRAM_BOT_TOKEN, TELEGRAM_CHAT_ID
ALERT_EMAIL_WEBHOOK_URL, ALERT_PUSH_WEBHOOK_URL

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from abuse_detection.config import AbuseDetectionConfig
from abuse_detection.config import load_config_from_dict as load_abuse_config
from core.exceptions import InvalidConfigError
from database.engine import DEFAULT_DATABASE_URL
from farming_detection.config import FarmingDetectionConfig, MergeConfig, MergeStrategy
from farming_detection.config import load_config_from_dict as load_farming_config
from monitoring.config import MonitoringConfig
from monitoring.config import load_config_from_dict as load_monitoring_config
from remediation.config import RemediationConfig
from remediation.config import load_config_from_dict as load_remediation_config
from trust_scoring.config import TrustScoringConfig
from trust_scoring.config import load_config_from_dict as load_trust_config


logger = logging.getLogger(__name__)


CONFIG_VERSION = "1.0.0"

HOUR = 3600

DEFAULT_JOB_INTERVALS: Dict[str, int] = {
    "cluster_scan": 6 * HOUR,
    "referral_audit": 12 * HOUR,
    "trust_recompute": 24 * HOUR,
    "bot_velocity_scan": 1 * HOUR,
    "cancellation_farming_scan": 6 * HOUR,
    "retention_cleanup": 24 * HOUR,
}


# ============================================================
# SCHEDULER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class SchedulerConfig:
    tick_seconds: int = 60
    lock_ttl_seconds: int = 2 * HOUR
    intervals: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_JOB_INTERVALS))
    disabled_jobs: tuple = ()
    page_size: int = 500
    active_window_days: int = 30
    retention_days: int = 90
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "tick_seconds": self.tick_seconds,
            "lock_ttl_seconds": self.lock_ttl_seconds,
            "intervals": dict(self.intervals),
            "disabled_jobs": list(self.disabled_jobs),
            "page_size": self.page_size,
            "active_window_days": self.active_window_days,
            "retention_days": self.retention_days,
        }


# ============================================================
# MASTER CONFIGURATION
# ============================================================


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    
    version: str = CONFIG_VERSION
    database_url: str = DEFAULT_DATABASE_URL
    datastore_url: str = ""
    datastore_api_key: str = ""
    log_level: str = "INFO"
    log_format: str = "json"
    
    farming: FarmingDetectionConfig = field(default_factory=FarmingDetectionConfig)
    trust: TrustScoringConfig = field(default_factory=TrustScoringConfig)
    abuse: AbuseDetectionConfig = field(default_factory=AbuseDetectionConfig)
    remediation: RemediationConfig = field(default_factory=RemediationConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    
    def validate(self) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors: List[str] = []
        
        esc = self.farming.escalation
        if not 0 <= esc.persist_threshold <= esc.case_threshold <= esc.critical_threshold <= 1:
            errors.append(
                "farming escalation thresholds must satisfy 0 <= persist <= case <= critical <= 1"
            )
        if not 0 <= self.farming.merge.confirm_threshold <= 1:
            errors.append("farming merge confirm_threshold must be within [0, 1]")
        if not 1 <= self.farming.scan_batch_size <= 500:
            errors.append("farming scan_batch_size must be within 1..500")
        
        errors.extend(self.trust.validate())
        errors.extend(self.abuse.validate())
        errors.extend(self.monitoring.validate())
        
        if not 1 <= self.scheduler.page_size <= 500:
            errors.append("scheduler page_size must be within 1..500")
        for job, seconds in self.scheduler.intervals.items():
            if seconds <= 0:
                errors.append(f"scheduler interval for {job} must be positive")
        if self.log_format not in ("json", "text"):
            errors.append(f"log_format must be json or text, got {self.log_format}")
        
        return errors
    
    def ensure_valid(self) -> "EngineConfig":
        errors = self.validate()
        if errors:
            raise InvalidConfigError(key="engine", value=self.version, reason="; ".join(errors))
        return self
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "database_url": _redact(self.database_url),
            "datastore_url": self.datastore_url,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "farming": self.farming.to_dict(),
            "trust": self.trust.to_dict(),
            "abuse": self.abuse.to_dict(),
            "remediation": self.remediation.to_dict(),
            "monitoring": self.monitoring.to_dict(),
            "scheduler": self.scheduler.to_dict(),
        }
    
    @classmethod
    def from_env(cls, base: Optional["EngineConfig"] = None) -> "EngineConfig":
        """
        Overlay environment variables on `base` (or on the YAML
        file named by FRAUD_ENGINE_CONFIG, or on the defaults).
        """
        load_dotenv()
        
        if base is None:
            path = os.getenv("FRAUD_ENGINE_CONFIG")
            base = load_config_from_yaml(path) if path else get_default_config()
        
        config = base
        
        database_url = os.getenv("DATABASE_URL")
        if database_url:
            config = replace(config, database_url=database_url)
        
        datastore_url = os.getenv("FRAUD_ENGINE_DATASTORE_URL")
        if datastore_url:
            config = replace(
                config,
                datastore_url=datastore_url,
                datastore_api_key=os.getenv("FRAUD_ENGINE_DATASTORE_API_KEY", config.datastore_api_key),
            )
        
        log_level = os.getenv("FRAUD_ENGINE_LOG_LEVEL")
        if log_level:
            config = replace(config, log_level=log_level.upper())
        
        dry_run = os.getenv("FRAUD_ENGINE_DRY_RUN")
        if dry_run is not None and dry_run != "":
            config = replace(
                config,
                remediation=replace(config.remediation, dry_run=_parse_bool("FRAUD_ENGINE_DRY_RUN", dry_run)),
            )
        
        strategy = os.getenv("FRAUD_ENGINE_MERGE_STRATEGY")
        if strategy:
            try:
                merge = MergeConfig(
                    strategy=MergeStrategy(strategy.lower()),
                    confirm_threshold=config.farming.merge.confirm_threshold,
                )
            except ValueError:
                raise InvalidConfigError(
                    key="FRAUD_ENGINE_MERGE_STRATEGY",
                    value=strategy,
                    reason="expected single_pass or union_find",
                )
            config = replace(config, farming=replace(config.farming, merge=merge))
        
        monitoring = config.monitoring
        token = os.getenv("TELEGRAM_BOT_TOKEN")
        chat_id = os.getenv("TELEGRAM_CHAT_ID")
        if token and chat_id:
            monitoring = replace(
                monitoring,
                telegram_bot_token=token,
                telegram_chat_ids=tuple(c.strip() for c in chat_id.split(",") if c.strip()),
            )
        email_url = os.getenv("ALERT_EMAIL_WEBHOOK_URL")
        if email_url:
            monitoring = replace(monitoring, email_webhook_url=email_url)
        push_url = os.getenv("ALERT_PUSH_WEBHOOK_URL")
        if push_url:
            monitoring = replace(monitoring, push_webhook_url=push_url)
        
        return replace(config, monitoring=monitoring)


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise InvalidConfigError(key=key, value=value, reason="expected a boolean")


def _redact(url: str) -> str:
    if "@" not in url or "://" not in url:
        return url
    scheme, rest = url.split("://", 1)
    return f"{scheme}://***@{rest.split('@', 1)[1]}"


# ============================================================
# FACTORIES
# ============================================================


def get_default_config() -> EngineConfig:
    return EngineConfig()


def get_conservative_config() -> EngineConfig:
    """
    Observation-only configuration.
    
    Remediation runs in dry-run mode and clusters use transitive
    grouping, so operators can review what the engine would do.
    """
    return EngineConfig(
        farming=FarmingDetectionConfig(merge=MergeConfig(strategy=MergeStrategy.UNION_FIND)),
        remediation=RemediationConfig(dry_run=True),
    )


def load_config_from_dict(data: Dict[str, Any]) -> EngineConfig:
    """
    Build an EngineConfig from a nested dict.
    
    Sections: farming, trust, abuse, remediation, monitoring,
    scheduler. Missing sections keep their defaults.
    """
    defaults = EngineConfig()
    
    def section(name: str) -> Dict[str, Any]:
        value = data.get(name) or {}
        if not isinstance(value, dict):
            raise InvalidConfigError(key=name, value=value, reason="section must be a mapping")
        return value
    
    scheduler_data = section("scheduler")
    intervals = dict(DEFAULT_JOB_INTERVALS)
    intervals.update({str(k): int(v) for k, v in (scheduler_data.get("intervals") or {}).items()})
    scheduler = SchedulerConfig(
        tick_seconds=int(scheduler_data.get("tick_seconds", defaults.scheduler.tick_seconds)),
        lock_ttl_seconds=int(scheduler_data.get("lock_ttl_seconds", defaults.scheduler.lock_ttl_seconds)),
        intervals=intervals,
        disabled_jobs=tuple(scheduler_data.get("disabled_jobs") or ()),
        page_size=int(scheduler_data.get("page_size", defaults.scheduler.page_size)),
        active_window_days=int(scheduler_data.get("active_window_days", defaults.scheduler.active_window_days)),
        retention_days=int(scheduler_data.get("retention_days", defaults.scheduler.retention_days)),
    )
    
    return EngineConfig(
        version=str(data.get("version", defaults.version)),
        database_url=str(data.get("database_url", defaults.database_url)),
        datastore_url=str(data.get("datastore_url", defaults.datastore_url)),
        datastore_api_key=str(data.get("datastore_api_key", defaults.datastore_api_key)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        log_format=str(data.get("log_format", defaults.log_format)),
        farming=load_farming_config(section("farming")),
        trust=load_trust_config(section("trust")),
        abuse=load_abuse_config(section("abuse")),
        remediation=load_remediation_config(section("remediation")),
        monitoring=load_monitoring_config(section("monitoring")),
        scheduler=scheduler,
    )


def load_config_from_yaml(path: Union[str, Path]) -> EngineConfig:
    path = Path(path)
    if not path.exists():
        raise InvalidConfigError(key="config_path", value=str(path), reason="file not found")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise InvalidConfigError(key="config_path", value=str(path), reason="top level must be a mapping")
    logger.info(f"Loaded engine configuration from {path}")
    return load_config_from_dict(data)


__all__ = [
    "CONFIG_VERSION",
    "DEFAULT_JOB_INTERVALS",
    "SchedulerConfig",
    "EngineConfig",
    "get_default_config",
    "get_conservative_config",
    "load_config_from_dict",
    "load_config_from_yaml",
]
