"""
Orchestrator - Batch Jobs.

============================================================
JOBS
============================================================
cluster_scan               network, behavioral and token
                           laundering collectors over
                           recently active accounts
referral_audit             referral-loop collector over all
                           accounts
trust_recompute            bulk trust recompute
bot_velocity_scan          bot velocity rule over recently
                           active accounts
cancellation_farming_scan  cancellation farming rule over all
                           accounts
retention_cleanup          resolved abuse signals and
                           dismissed clusters past retention

Every job pages through accounts (keyset, bounded page size),
so a run that is cut short leaves committed pages behind and
the next run picks up the whole population again.

Each job returns a summary dict; a non-empty "errors" list
marks the run as failed for the scheduler.

============================================================
"""

import logging
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

from abuse_detection.engine import AbuseDetectionEngine
from abuse_detection.types import AbuseSignalType, DetectionResult
from core.clock import ClockFactory, ClockProtocol
from data_sources.base import AccountReader
from farming_detection.cases import FarmingCaseService
from farming_detection.engine import FarmingScanEngine
from farming_detection.types import ScanResult
from trust_scoring.engine import TrustScoringEngine

from .config import SchedulerConfig
from .pipeline import RemediationPipeline
from .scheduler import JobDefinition


logger = logging.getLogger(__name__)


NETWORK_COLLECTORS = (
    "ip_correlation",
    "device_correlation",
    "behavioral_similarity",
    "message_script",
    "synchronized_activity",
    "token_laundering",
)
REFERRAL_COLLECTORS = ("referral_loop",)


def _scan_summary(result: ScanResult) -> Dict[str, Any]:
    escalation = result.escalation
    errors = [f"collector {name} failed" for name in result.failed_collectors]
    errors.extend(escalation.errors)
    return {
        "scanned_accounts": result.scanned_accounts,
        "candidate_clusters": result.candidate_clusters,
        "merged_clusters": len(result.merged_clusters),
        "persisted_clusters": len(escalation.persisted_cluster_ids),
        "cases_created": len(escalation.created_case_ids),
        "rescored_users": len(escalation.rescored_user_ids),
        "review_decisions": escalation.review_decisions,
        "errors": errors,
    }


class EngineJobs:
    """The six periodic jobs, bound to the engine components."""
    
    def __init__(
        self,
        accounts: AccountReader,
        farming: FarmingScanEngine,
        cases: FarmingCaseService,
        trust: TrustScoringEngine,
        abuse: AbuseDetectionEngine,
        pipeline: RemediationPipeline,
        config: Optional[SchedulerConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._accounts = accounts
        self._farming = farming
        self._cases = cases
        self._trust = trust
        self._abuse = abuse
        self._pipeline = pipeline
        self.config = config or SchedulerConfig()
        self._clock = clock or ClockFactory.get_clock()
    
    def _pages(self, active_only: bool) -> AsyncIterator[List[str]]:
        since = None
        if active_only:
            since = self._clock.since(timedelta(days=self.config.active_window_days))
        return self._accounts.iter_account_id_pages(self.config.page_size, active_since=since)
    
    # --------------------------------------------------------
    # FARMING
    # --------------------------------------------------------
    
    async def cluster_scan(self) -> Dict[str, Any]:
        result = await self._farming.scan_population(self._pages(active_only=True), only=NETWORK_COLLECTORS)
        await self._pipeline.notify_cases(result.escalation.created_cases)
        return _scan_summary(result)
    
    async def referral_audit(self) -> Dict[str, Any]:
        result = await self._farming.scan_population(self._pages(active_only=False), only=REFERRAL_COLLECTORS)
        await self._pipeline.notify_cases(result.escalation.created_cases)
        return _scan_summary(result)
    
    # --------------------------------------------------------
    # TRUST
    # --------------------------------------------------------
    
    async def trust_recompute(self) -> Dict[str, Any]:
        result = await self._trust.recompute_population(self._pages(active_only=False))
        return result.to_dict()
    
    # --------------------------------------------------------
    # ABUSE
    # --------------------------------------------------------
    
    async def _abuse_scan(self, rule_type: AbuseSignalType, active_only: bool) -> Dict[str, Any]:
        detection: DetectionResult = await self._abuse.scan_population(
            self._pages(active_only=active_only), [rule_type]
        )
        pipeline = await self._pipeline.process_signals(detection.signals)
        return {
            "rule": rule_type.value,
            "evaluated": detection.evaluated,
            "signals": len(detection.signals),
            "remediation": pipeline.to_dict(),
            "errors": list(detection.errors) + list(pipeline.errors),
        }
    
    async def bot_velocity_scan(self) -> Dict[str, Any]:
        return await self._abuse_scan(AbuseSignalType.BOT_VELOCITY, active_only=True)
    
    async def cancellation_farming_scan(self) -> Dict[str, Any]:
        return await self._abuse_scan(AbuseSignalType.CANCELLATION_FARMING, active_only=False)
    
    # --------------------------------------------------------
    # RETENTION
    # --------------------------------------------------------
    
    async def retention_cleanup(self) -> Dict[str, Any]:
        older_than = timedelta(days=self.config.retention_days)
        signals = await self._abuse.purge_resolved(older_than)
        clusters = await self._cases.purge_dismissed_clusters(older_than, self.config.page_size)
        logger.info(f"Retention cleanup removed {signals} signals and {clusters} clusters")
        return {"abuse_signals_deleted": signals, "clusters_deleted": clusters, "errors": []}
    
    # --------------------------------------------------------
    # DEFINITIONS
    # --------------------------------------------------------
    
    def definitions(self) -> List[JobDefinition]:
        functions = {
            "cluster_scan": (self.cluster_scan, "Network and behavioral farming scan"),
            "referral_audit": (self.referral_audit, "Referral loop audit"),
            "trust_recompute": (self.trust_recompute, "Bulk trust score recompute"),
            "bot_velocity_scan": (self.bot_velocity_scan, "Bot velocity abuse scan"),
            "cancellation_farming_scan": (self.cancellation_farming_scan, "Host cancellation scan"),
            "retention_cleanup": (self.retention_cleanup, "Purge resolved and dismissed records"),
        }
        return [
            JobDefinition(
                name=name,
                interval=timedelta(seconds=self.config.intervals[name]),
                run=run,
                description=description,
            )
            for name, (run, description) in functions.items()
            if name in self.config.intervals
        ]


__all__ = ["NETWORK_COLLECTORS", "REFERRAL_COLLECTORS", "EngineJobs"]
