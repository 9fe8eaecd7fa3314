"""
Orchestrator Package - Engine Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
Composition root, scheduler and entry points of the fraud engine.

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                   EngineContainer                   |
    |-----------------------------------------------------|
    |  EngineConfig       |  one versioned configuration  |
    |  Scheduler          |  periodic jobs under locks    |
    |  RemediationPipeline|  decide -> act -> alert       |
    |  AdminHandlers      |  authorization-gated actions  |
    |  EventHandlers      |  record-trigger detection     |
    |  CLI                |  run | once JOB | list        |
    +-----------------------------------------------------+

============================================================
JOBS
============================================================
cluster_scan               6h
referral_audit             12h
trust_recompute            24h
bot_velocity_scan          1h
cancellation_farming_scan  6h
retention_cleanup          24h

============================================================
"""

from .config import (
    CONFIG_VERSION,
    DEFAULT_JOB_INTERVALS,
    SchedulerConfig,
    EngineConfig,
    get_default_config,
    get_conservative_config,
    load_config_from_dict,
    load_config_from_yaml,
)
from .locks import JobLock, InMemoryJobLock, DatabaseJobLock
from .pipeline import (
    alert_for_signal,
    alert_for_case,
    alert_for_job_failure,
    PipelineResult,
    RemediationPipeline,
)
from .scheduler import JobDefinition, JobResult, Scheduler
from .jobs import EngineJobs
from .handlers import InvalidRequestError, AdminHandlers, EventHandlers
from .core import setup_logging, build_alert_channels, EngineContainer


__all__ = [
    # Config
    "CONFIG_VERSION",
    "DEFAULT_JOB_INTERVALS",
    "SchedulerConfig",
    "EngineConfig",
    "get_default_config",
    "get_conservative_config",
    "load_config_from_dict",
    "load_config_from_yaml",
    # Locks
    "JobLock",
    "InMemoryJobLock",
    "DatabaseJobLock",
    # Pipeline
    "alert_for_signal",
    "alert_for_case",
    "alert_for_job_failure",
    "PipelineResult",
    "RemediationPipeline",
    # Scheduling
    "JobDefinition",
    "JobResult",
    "Scheduler",
    "EngineJobs",
    # Entry points
    "InvalidRequestError",
    "AdminHandlers",
    "EventHandlers",
    # Core
    "setup_logging",
    "build_alert_channels",
    "EngineContainer",
]

__version__ = "1.0.0"
