"""
Orchestrator - Remediation Pipeline.

============================================================
RESPONSIBILITY
============================================================
Connects the three stages for abuse signals:

    detect (AbuseSignal) -> decide (ActionDecision)
        -> act (ActionOutcome) -> alert (RouteResult)

and raises operator alerts for newly opened farming cases.

============================================================
ERROR HANDLING
============================================================
- A failed action is logged and reported; the signal is still
  alerted so an operator sees it
- Alert delivery never raises (router contract), so it cannot
  undo or block a remediation

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from abuse_detection.policy import RemediationPolicy
from abuse_detection.types import AbuseSignal
from core.exceptions import RemediationError
from farming_detection.types import FarmingCase
from monitoring.alert_router import AlertRouter
from monitoring.types import Alert, AlertSeverity, RouteResult
from remediation.executor import ActionExecutor
from remediation.types import ActionOutcome, ActionStatus


logger = logging.getLogger(__name__)


# ============================================================
# ALERT BUILDERS
# ============================================================


def alert_for_signal(signal: AbuseSignal, outcome: Optional[ActionOutcome]) -> Alert:
    action = outcome.decision.action.value if outcome else "none"
    status = outcome.status.value if outcome else "skipped"
    return Alert(
        alert_type="abuse_signal",
        severity=AlertSeverity.from_tier(signal.severity),
        title=f"Abuse signal: {signal.signal_type.value}",
        message=(
            f"{signal.user_id} reached {signal.count} events "
            f"(threshold {signal.threshold}); action {action} {status}"
        ),
        subject_id=signal.user_id,
        data={
            "signal_id": signal.signal_id,
            "signal_type": signal.signal_type.value,
            "count": signal.count,
            "action": action,
            "action_status": status,
        },
        created_at=signal.detected_at,
    )


def alert_for_case(case: FarmingCase) -> Alert:
    return Alert(
        alert_type="farming_case",
        severity=AlertSeverity.from_tier(case.severity),
        title=f"Farming case opened: {case.type.value}",
        message=(
            f"{len(case.involved_user_ids)} accounts, confidence {case.confidence:.2f}, "
            f"case {case.case_id}"
        ),
        subject_id=case.case_id,
        data={
            "case_id": case.case_id,
            "cluster_id": case.cluster_id,
            "accounts": sorted(case.involved_user_ids),
            "confidence": case.confidence,
        },
        created_at=case.created_at,
    )


def alert_for_job_failure(job_name: str, error: str, fatal: bool) -> Alert:
    return Alert(
        alert_type="job_failure",
        severity=AlertSeverity.EMERGENCY if fatal else AlertSeverity.HIGH,
        title=f"Job failed: {job_name}",
        message=error,
        subject_id=job_name,
        data={"job_name": job_name, "fatal": fatal},
    )


# ============================================================
# PIPELINE
# ============================================================


@dataclass
class PipelineResult:
    signals: int = 0
    outcomes: List[ActionOutcome] = field(default_factory=list)
    routes: List[RouteResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    
    @property
    def applied(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ActionStatus.APPLIED and not o.already_applied)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals": self.signals,
            "applied": self.applied,
            "outcomes": [o.status.value for o in self.outcomes],
            "alerts_routed": sum(1 for r in self.routes if r.delivered),
            "errors": list(self.errors),
        }


class RemediationPipeline:
    """decide -> act -> alert for abuse signals."""
    
    def __init__(
        self,
        policy: RemediationPolicy,
        executor: ActionExecutor,
        router: AlertRouter,
    ):
        self._policy = policy
        self._executor = executor
        self._router = router
    
    async def process_signals(self, signals: Sequence[AbuseSignal]) -> PipelineResult:
        result = PipelineResult(signals=len(signals))
        for signal in signals:
            decision = self._policy.decide(signal)
            outcome: Optional[ActionOutcome] = None
            try:
                outcome = await self._executor.execute(decision)
                result.outcomes.append(outcome)
            except RemediationError as e:
                logger.error(f"Remediation for {signal.signal_id} failed: {e.message}")
                result.errors.append(f"{signal.signal_id}: {e.message}")
                outcome = ActionOutcome(
                    decision=decision,
                    status=ActionStatus.FAILED,
                    record_id=decision.record_id,
                    error=e.message,
                )
                result.outcomes.append(outcome)
            
            if outcome.already_applied:
                continue
            result.routes.append(await self._router.route(alert_for_signal(signal, outcome)))
        return result
    
    async def notify_cases(self, cases: Sequence[FarmingCase]) -> List[RouteResult]:
        return [await self._router.route(alert_for_case(case)) for case in cases]
    
    async def notify_job_failure(self, job_name: str, error: str, fatal: bool) -> RouteResult:
        return await self._router.route(alert_for_job_failure(job_name, error, fatal))


__all__ = [
    "alert_for_signal",
    "alert_for_case",
    "alert_for_job_failure",
    "PipelineResult",
    "RemediationPipeline",
]
