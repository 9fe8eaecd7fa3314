"""
Farming Detection - Case Escalator.

============================================================
PURPOSE
============================================================
Turns merged clusters into persisted state and downstream work:

1. confidence > persist_threshold  -> cluster row upserted
2. confidence > case_threshold     -> farming case created (once
   per account set), cluster promoted to CONFIRMED with the case
   id attached
3. for every case                  -> trust recompute of every
   involved account, manual-review decision per account

Persistence failures are logged per cluster and reported in the
EscalationResult; clusters already written stay written.

============================================================
"""

import logging
from typing import List, Optional, Protocol, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.batching import dedupe_preserving_order
from core.clock import ClockFactory, ClockProtocol
from core.exceptions import DataSourceUnavailableError, FraudEngineError, PersistenceError
from core.types import SeverityTier
from database.engine import session_scope
from remediation.types import ActionDecision, AutoAction

from .config import EscalationConfig
from .repository import FarmingRepository
from .types import Cluster, EscalationResult, FarmingCase


logger = logging.getLogger(__name__)


# ============================================================
# COLLABORATOR PROTOCOLS
# ============================================================


class TrustRecomputeHook(Protocol):
    async def recompute_users(self, user_ids: Sequence[str]) -> object:
        ...


class ActionSink(Protocol):
    async def execute(self, decision: ActionDecision) -> object:
        ...


# ============================================================
# SEVERITY
# ============================================================


def case_severity(confidence: float, config: EscalationConfig) -> SeverityTier:
    """CRITICAL above the critical threshold, HIGH above the case threshold, else MEDIUM."""
    if confidence > config.critical_threshold:
        return SeverityTier.CRITICAL
    if confidence > config.case_threshold:
        return SeverityTier.HIGH
    return SeverityTier.MEDIUM


# ============================================================
# ESCALATOR
# ============================================================


class CaseEscalator:
    """Persists clusters, opens cases and fans out downstream work."""
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[EscalationConfig] = None,
        trust_hook: Optional[TrustRecomputeHook] = None,
        action_sink: Optional[ActionSink] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self.config = config or EscalationConfig()
        self._trust_hook = trust_hook
        self._action_sink = action_sink
        self._clock = clock or ClockFactory.get_clock()
    
    async def escalate(self, clusters: Sequence[Cluster]) -> EscalationResult:
        result = EscalationResult()
        cases: List[FarmingCase] = []
        
        for cluster in clusters:
            if cluster.confidence <= self.config.persist_threshold:
                continue
            
            case = None
            if cluster.confidence > self.config.case_threshold:
                case = FarmingCase.from_cluster(
                    cluster,
                    severity=case_severity(cluster.confidence, self.config),
                    created_at=self._clock.now(),
                )
                cluster = cluster.promote(case.case_id)
            
            try:
                async with session_scope(self._session_factory, "escalate_cluster") as session:
                    repo = FarmingRepository(session)
                    await repo.upsert_cluster(cluster, at=self._clock.now())
                    created = False
                    if case is not None:
                        _, created = await repo.create_case_if_absent(case)
            except PersistenceError as e:
                logger.error(f"Failed to persist cluster {cluster.cluster_id}: {e.message}")
                result.errors.append(f"{cluster.cluster_id}: {e.message}")
                continue
            
            result.persisted_cluster_ids.append(cluster.cluster_id)
            if case is None:
                continue
            
            cases.append(case)
            if created:
                result.created_case_ids.append(case.case_id)
                result.created_cases.append(case)
                logger.warning(
                    f"FARMING CASE OPENED: {case.case_id} severity={case.severity.value} "
                    f"accounts={len(case.involved_user_ids)} confidence={case.confidence:.2f}"
                )
            else:
                result.existing_case_ids.append(case.case_id)
        
        if cases:
            await self._trigger_trust_recompute(cases, result)
            await self._request_reviews(cases, result)
        
        return result
    
    async def _trigger_trust_recompute(self, cases: List[FarmingCase], result: EscalationResult) -> None:
        if self._trust_hook is None or not self.config.trigger_trust_recompute:
            return
        user_ids = dedupe_preserving_order(
            [user_id for case in cases for user_id in sorted(case.involved_user_ids)]
        )
        try:
            await self._trust_hook.recompute_users(user_ids)
            result.rescored_user_ids.extend(user_ids)
        except DataSourceUnavailableError:
            raise
        except FraudEngineError as e:
            logger.error(f"Trust recompute after escalation failed: {e.message}")
            result.errors.append(f"trust_recompute: {e.message}")
    
    async def _request_reviews(self, cases: List[FarmingCase], result: EscalationResult) -> None:
        if self._action_sink is None or not self.config.request_manual_review:
            return
        for case in cases:
            for user_id in sorted(case.involved_user_ids):
                decision = ActionDecision(
                    signal_id=case.case_id,
                    target_id=user_id,
                    action=AutoAction.MANUAL_REVIEW,
                    severity=case.severity,
                    reason=f"farming case {case.case_id} ({case.type.value})",
                )
                try:
                    await self._action_sink.execute(decision)
                    result.review_decisions += 1
                except FraudEngineError as e:
                    logger.error(f"Review flag for {user_id} on {case.case_id} failed: {e.message}")
                    result.errors.append(f"review {user_id}: {e.message}")


__all__ = ["TrustRecomputeHook", "ActionSink", "case_severity", "CaseEscalator"]
