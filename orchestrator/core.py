"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Composition root of the engine.

- Builds every component once from one EngineConfig
- Owns the shared resources (database engine, datastore
  client, alert channels) and closes them on shutdown
- Exposes the scheduler, on-demand handlers and event
  handlers to the CLI and to the hosting platform

============================================================
ARCHITECTURAL POSITION
============================================================
- This module has NO business logic
- It only wires collaborators together

============================================================
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from abuse_detection.engine import AbuseDetectionEngine, AbuseSignalWeights
from abuse_detection.policy import RemediationPolicy
from abuse_detection.rules import create_default_rules
from access_control.service import DocumentRoleDirectory, RoleBasedAuthorizationService
from core.clock import ClockFactory, ClockProtocol
from core.exceptions import MissingConfigError
from data_sources.http import HttpDocumentStore
from data_sources.repositories import UpstreamRepositories
from data_sources.store import DocumentStore
from database.engine import create_database_engine, create_session_factory, initialize_database
from farming_detection.cases import FarmingCaseService
from farming_detection.collectors import create_default_collectors
from farming_detection.engine import FarmingScanEngine
from farming_detection.escalator import CaseEscalator
from farming_detection.merger import ClusterMerger
from monitoring.alert_router import AlertRouter
from monitoring.dashboard_service import AlertDashboardService
from monitoring.notifications import (
    AlertChannel,
    DashboardChannel,
    TelegramChannel,
    email_channel,
    push_channel,
)
from monitoring.types import AlertChannelName
from remediation.executor import ActionExecutor
from trust_scoring.engine import TrustScoringEngine
from trust_scoring.gatherer import TrustInputGatherer

from .config import EngineConfig
from .handlers import AdminHandlers, EventHandlers
from .jobs import EngineJobs
from .locks import DatabaseJobLock, JobLock
from .pipeline import RemediationPipeline
from .scheduler import Scheduler


# ============================================================
# LOGGING SETUP
# ============================================================


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""
    
    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self._correlation_id = correlation_id or ""
    
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": self._correlation_id,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.
    
    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing
    
    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter(correlation_id)
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]
    
    return logging.getLogger("orchestrator")


logger = logging.getLogger(__name__)


# ============================================================
# CONTAINER
# ============================================================


def build_alert_channels(
    config: EngineConfig,
    session_factory: async_sessionmaker,
) -> Dict[AlertChannelName, AlertChannel]:
    """Dashboard always; chat, email and push only when configured."""
    monitoring = config.monitoring
    channels: Dict[AlertChannelName, AlertChannel] = {
        AlertChannelName.DASHBOARD: DashboardChannel(session_factory, monitoring),
    }
    if monitoring.telegram_bot_token and monitoring.telegram_chat_ids:
        channels[AlertChannelName.CHAT] = TelegramChannel(
            monitoring.telegram_bot_token,
            monitoring.telegram_chat_ids,
            timeout=monitoring.http_timeout_seconds,
        )
    if monitoring.email_webhook_url:
        channels[AlertChannelName.EMAIL] = email_channel(
            monitoring.email_webhook_url, monitoring.http_timeout_seconds
        )
    if monitoring.push_webhook_url:
        channels[AlertChannelName.PUSH] = push_channel(
            monitoring.push_webhook_url, monitoring.http_timeout_seconds
        )
    return channels


class EngineContainer:
    """
    All engine components, wired from one configuration.
    
    Usage:
        container = EngineContainer.build(EngineConfig.from_env())
        await container.start()
        try:
            await container.scheduler.run_forever()
        finally:
            await container.close()
    """
    
    def __init__(
        self,
        config: EngineConfig,
        store: DocumentStore,
        session_factory: async_sessionmaker,
        clock: ClockProtocol,
        lock: JobLock,
        channels: Dict[AlertChannelName, AlertChannel],
        db_engine: Optional[AsyncEngine] = None,
    ):
        self.config = config
        self.store = store
        self.session_factory = session_factory
        self.clock = clock
        self.db_engine = db_engine
        
        self.repos = UpstreamRepositories.from_store(store)
        self.executor = ActionExecutor(session_factory, config.remediation, clock)
        
        # Abuse detection
        self.abuse = AbuseDetectionEngine(
            create_default_rules(self.repos, config.abuse), session_factory, config.abuse, clock
        )
        self.abuse_weights = AbuseSignalWeights(session_factory, config.abuse)
        
        # Trust scoring
        self.trust_gatherer = TrustInputGatherer(
            performance=self.repos.performance,
            bookings=self.repos.bookings,
            risk=self.repos.risk,
            moderation=self.repos.moderation,
            payouts=self.repos.payouts,
            config=config.trust,
            abuse_signals=self.abuse_weights,
            clock=clock,
        )
        self.trust = TrustScoringEngine(self.trust_gatherer, session_factory, config.trust, clock)
        
        # Farming detection
        self.escalator = CaseEscalator(
            session_factory,
            config.farming.escalation,
            trust_hook=self.trust,
            action_sink=self.executor,
            clock=clock,
        )
        self.farming = FarmingScanEngine(
            create_default_collectors(self.repos, config.farming, clock),
            ClusterMerger(config.farming.merge),
            self.escalator,
        )
        self.cases = FarmingCaseService(session_factory, action_sink=self.executor, clock=clock)
        
        # Alerting and remediation
        self.router = AlertRouter(channels, config.monitoring, clock=clock)
        self.policy = RemediationPolicy()
        self.pipeline = RemediationPipeline(self.policy, self.executor, self.router)
        self.alerts = AlertDashboardService(session_factory, clock)
        
        # Entry points
        self.authorization = RoleBasedAuthorizationService(DocumentRoleDirectory(store))
        self.jobs = EngineJobs(
            accounts=self.repos.accounts,
            farming=self.farming,
            cases=self.cases,
            trust=self.trust,
            abuse=self.abuse,
            pipeline=self.pipeline,
            config=config.scheduler,
            clock=clock,
        )
        self.scheduler = Scheduler(
            self.jobs.definitions(),
            lock,
            config.scheduler,
            failure_notifier=self.pipeline.notify_job_failure,
            clock=clock,
        )
        self.admin = AdminHandlers(
            authorization=self.authorization,
            trust=self.trust,
            cases=self.cases,
            abuse=self.abuse,
            alerts=self.alerts,
            scheduler=self.scheduler,
        )
        self.events = EventHandlers(self.abuse, self.pipeline)
    
    @classmethod
    def build(
        cls,
        config: EngineConfig,
        store: Optional[DocumentStore] = None,
        session_factory: Optional[async_sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
        lock: Optional[JobLock] = None,
        channels: Optional[Dict[AlertChannelName, AlertChannel]] = None,
    ) -> "EngineContainer":
        """
        Build the container.
        
        Raises:
            InvalidConfigError: configuration fails validation
            MissingConfigError: no datastore given or configured
        """
        config.ensure_valid()
        
        if store is None:
            if not config.datastore_url:
                raise MissingConfigError("FRAUD_ENGINE_DATASTORE_URL", source="environment")
            store = HttpDocumentStore(config.datastore_url, api_key=config.datastore_api_key or None)
        
        db_engine = None
        if session_factory is None:
            db_engine = create_database_engine(config.database_url)
            session_factory = create_session_factory(db_engine)
        
        clock = clock or ClockFactory.get_clock()
        lock = lock or DatabaseJobLock(session_factory, clock)
        if channels is None:
            channels = build_alert_channels(config, session_factory)
        
        logger.info(
            f"Engine container built | config={config.version} "
            f"dry_run={config.remediation.dry_run} merge={config.farming.merge.strategy.value} "
            f"channels={sorted(c.value for c in channels)}"
        )
        return cls(config, store, session_factory, clock, lock, channels, db_engine)
    
    async def start(self) -> None:
        """Verify the database and create owned tables."""
        if self.db_engine is not None:
            await initialize_database(self.db_engine)
    
    async def close(self) -> None:
        await self.router.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()
        if self.db_engine is not None:
            await self.db_engine.dispose()
        logger.info("Engine container closed")
    
    def get_status(self) -> Dict[str, Any]:
        return {
            "config_version": self.config.version,
            "jobs": self.scheduler.job_names,
            "channels": self.router.channel_names,
            "dry_run": self.config.remediation.dry_run,
            "recent_jobs": [r.to_dict() for r in self.scheduler.get_history(10)],
        }


__all__ = [
    "JsonFormatter",
    "setup_logging",
    "build_alert_channels",
    "EngineContainer",
]
