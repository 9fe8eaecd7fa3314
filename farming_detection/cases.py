"""
Farming Detection - Case Management.

Investigator-facing operations on persisted cases and clusters,
plus the per-account farming risk score. Authorization happens in
the on-demand handlers before any of these run.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import FraudEngineError
from core.types import SeverityTier
from database.engine import session_scope
from remediation.types import ActionDecision, AutoAction

from .escalator import ActionSink
from .repository import FarmingRepository
from .types import CaseStatus, ClusterStatus, FarmingCase


logger = logging.getLogger(__name__)

CLOSING_STATUSES = (CaseStatus.CONFIRMED, CaseStatus.FALSE_POSITIVE, CaseStatus.RESOLVED)

SEVERITY_RISK_WEIGHT = {
    SeverityTier.CRITICAL: 0.35,
    SeverityTier.HIGH: 0.25,
    SeverityTier.MEDIUM: 0.15,
    SeverityTier.LOW: 0.05,
}


class CaseNotFoundError(FraudEngineError):
    """No case or cluster with the requested id."""


@dataclass
class FarmingRiskScore:
    """Per-account farming risk in [0, 1] with contributing factors."""
    user_id: str
    score: float
    level: str
    factors: List[Dict[str, Any]] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": self.score,
            "level": self.level,
            "factors": self.factors,
        }


class FarmingCaseService:
    """Investigator operations on cases."""
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        action_sink: Optional[ActionSink] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._action_sink = action_sink
        self._clock = clock or ClockFactory.get_clock()
    
    async def investigate_case(self, case_id: str, investigator_id: str) -> FarmingCase:
        async with session_scope(self._session_factory, "investigate_case") as session:
            record = await FarmingRepository(session).update_case_status(
                case_id, CaseStatus.INVESTIGATING, at=self._clock.now()
            )
            if record is None:
                raise CaseNotFoundError(f"Case not found: {case_id}", context={"case_id": case_id})
            case = record.to_case()
        logger.info(f"Case {case_id} under investigation by {investigator_id}")
        return case
    
    async def resolve_case(
        self,
        case_id: str,
        outcome: CaseStatus,
        resolution: str,
        resolved_by: str,
        action: AutoAction = AutoAction.NONE,
    ) -> FarmingCase:
        """
        Close a case.
        
        FALSE_POSITIVE dismisses the underlying cluster. Any other
        closing outcome may carry a remediation action applied to
        every involved account.
        """
        if outcome not in CLOSING_STATUSES:
            raise ValueError(f"{outcome.value} is not a closing status")
        
        async with session_scope(self._session_factory, "resolve_case") as session:
            repo = FarmingRepository(session)
            record = await repo.update_case_status(
                case_id, outcome, resolution=resolution, resolved_by=resolved_by, at=self._clock.now()
            )
            if record is None:
                raise CaseNotFoundError(f"Case not found: {case_id}", context={"case_id": case_id})
            if outcome == CaseStatus.FALSE_POSITIVE:
                await repo.set_cluster_status(
                    record.cluster_id, ClusterStatus.DISMISSED, at=self._clock.now()
                )
            case = record.to_case()
        
        logger.info(f"Case {case_id} closed as {outcome.value} by {resolved_by}")
        
        if action != AutoAction.NONE and outcome != CaseStatus.FALSE_POSITIVE and self._action_sink:
            for user_id in sorted(case.involved_user_ids):
                await self._action_sink.execute(ActionDecision(
                    signal_id=case.case_id,
                    target_id=user_id,
                    action=action,
                    severity=case.severity,
                    reason=f"case {case.case_id} resolved: {resolution}",
                ))
        return case
    
    async def dismiss_cluster(self, cluster_id: str) -> None:
        async with session_scope(self._session_factory, "dismiss_cluster") as session:
            record = await FarmingRepository(session).set_cluster_status(
                cluster_id, ClusterStatus.DISMISSED, at=self._clock.now()
            )
            if record is None:
                raise CaseNotFoundError(f"Cluster not found: {cluster_id}", context={"cluster_id": cluster_id})
        logger.info(f"Cluster {cluster_id} dismissed")
    
    async def purge_dismissed_clusters(self, older_than: timedelta, batch_size: int = 500) -> int:
        """Delete dismissed clusters past retention, one batch per commit."""
        cutoff = self._clock.since(older_than)
        deleted = 0
        while True:
            async with session_scope(self._session_factory, "purge_dismissed_clusters") as session:
                batch = await FarmingRepository(session).delete_dismissed_clusters_before(cutoff, batch_size)
            deleted += batch
            if batch < batch_size:
                break
        if deleted:
            logger.info(f"Purged {deleted} dismissed clusters older than {cutoff.isoformat()}")
        return deleted
    
    async def farming_risk_score(self, user_id: str) -> FarmingRiskScore:
        """
        Aggregate an account's case history into a risk score.
        
        - 0.1 per case the account was ever involved in, capped at 0.4
        - plus the weight of the most severe still-open case
        """
        async with session_scope(self._session_factory, "farming_risk_score") as session:
            cases = [r.to_case() for r in await FarmingRepository(session).list_cases_for_account(user_id)]
        
        factors: List[Dict[str, Any]] = []
        score = 0.0
        
        if cases:
            weight = min(0.4, 0.1 * len(cases))
            factors.append({"factor": "farming_cases", "weight": weight, "count": len(cases)})
            score += weight
        
        open_cases = [c for c in cases if c.status.is_open]
        if open_cases:
            worst = max(open_cases, key=lambda c: c.severity.rank)
            weight = SEVERITY_RISK_WEIGHT[worst.severity]
            factors.append({"factor": "open_case_severity", "weight": weight, "case_id": worst.case_id})
            score += weight
        
        score = round(min(1.0, score), 4)
        level = "high" if score >= 0.6 else "medium" if score >= 0.3 else "low"
        return FarmingRiskScore(user_id=user_id, score=score, level=level, factors=factors)


__all__ = ["CaseNotFoundError", "FarmingRiskScore", "FarmingCaseService"]
