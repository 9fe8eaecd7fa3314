"""
Orchestrator - On-Demand and Event Handlers.

============================================================
ADMIN HANDLERS
============================================================
Every admin entry point:
1. Calls AuthorizationService.require(caller, permission)
2. Validates its payload (pydantic)
3. Delegates to the owning service
4. Returns a JSON-ready dict

============================================================
EVENT HANDLERS
============================================================
Called by the platform when an upstream record is created or
updated. Each builds a PlatformEvent, runs the bound abuse
rules and pipes new signals through decide -> act -> alert.
A failing rule is logged and the other rules still run.

============================================================
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from abuse_detection.engine import AbuseDetectionEngine
from abuse_detection.types import EventKind, PlatformEvent
from access_control.service import AuthorizationService
from access_control.types import CallerIdentity, Permission
from core.exceptions import FraudEngineError
from data_sources.models import as_datetime
from farming_detection.cases import FarmingCaseService
from monitoring.dashboard_service import AlertDashboardService
from trust_scoring.engine import TrustScoringEngine

from .pipeline import RemediationPipeline
from .scheduler import Scheduler
from .schemas import (
    AlertActionRequest,
    BulkRecomputeTrustRequest,
    DismissClusterRequest,
    FarmingRiskRequest,
    InvestigateCaseRequest,
    RecomputeTrustRequest,
    ResolveCaseRequest,
    ResolveSignalRequest,
    RunJobRequest,
)


logger = logging.getLogger(__name__)


RequestT = TypeVar("RequestT", bound=BaseModel)
Payload = Union[Mapping[str, Any], BaseModel]


class InvalidRequestError(FraudEngineError):
    """Request payload failed validation."""


def parse_request(model: Type[RequestT], payload: Payload) -> RequestT:
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(dict(payload))
    except ValidationError as e:
        raise InvalidRequestError(
            f"Invalid {model.__name__}: {e.error_count()} error(s)",
            context={"errors": e.errors(include_url=False)},
            cause=e,
        ) from e


# ============================================================
# ADMIN HANDLERS
# ============================================================


class AdminHandlers:
    """Authorization-gated operator entry points."""
    
    def __init__(
        self,
        authorization: AuthorizationService,
        trust: TrustScoringEngine,
        cases: FarmingCaseService,
        abuse: AbuseDetectionEngine,
        alerts: AlertDashboardService,
        scheduler: Scheduler,
    ):
        self._auth = authorization
        self._trust = trust
        self._cases = cases
        self._abuse = abuse
        self._alerts = alerts
        self._scheduler = scheduler
    
    # --------------------------------------------------------
    # TRUST
    # --------------------------------------------------------
    
    async def recompute_trust(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        await self._auth.require(caller, Permission.RECOMPUTE_TRUST)
        request = parse_request(RecomputeTrustRequest, payload)
        score = await self._trust.recompute_user(request.user_id)
        return score.to_dict()
    
    async def recompute_trust_bulk(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        await self._auth.require(caller, Permission.RECOMPUTE_TRUST)
        request = parse_request(BulkRecomputeTrustRequest, payload)
        result = await self._trust.recompute_users(request.user_ids)
        return result.to_dict()
    
    # --------------------------------------------------------
    # FARMING CASES
    # --------------------------------------------------------
    
    async def investigate_case(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.MANAGE_CASES)
        request = parse_request(InvestigateCaseRequest, payload)
        case = await self._cases.investigate_case(request.case_id, capability.caller_id)
        return case.to_dict()
    
    async def resolve_case(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.MANAGE_CASES)
        request = parse_request(ResolveCaseRequest, payload)
        try:
            case = await self._cases.resolve_case(
                request.case_id,
                request.outcome,
                request.resolution,
                capability.caller_id,
                request.action,
            )
        except ValueError as e:
            raise InvalidRequestError(str(e), context={"case_id": request.case_id}) from e
        return case.to_dict()
    
    async def dismiss_cluster(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        await self._auth.require(caller, Permission.MANAGE_CASES)
        request = parse_request(DismissClusterRequest, payload)
        await self._cases.dismiss_cluster(request.cluster_id)
        return {"cluster_id": request.cluster_id, "status": "dismissed"}
    
    async def farming_risk_score(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        await self._auth.require(caller, Permission.MANAGE_CASES)
        request = parse_request(FarmingRiskRequest, payload)
        return (await self._cases.farming_risk_score(request.user_id)).to_dict()
    
    # --------------------------------------------------------
    # SIGNALS / ALERTS / JOBS
    # --------------------------------------------------------
    
    async def resolve_abuse_signal(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.RESOLVE_SIGNALS)
        request = parse_request(ResolveSignalRequest, payload)
        signal = await self._abuse.resolve_signal(request.signal_id, capability.caller_id, request.note)
        return signal.to_dict()
    
    async def acknowledge_alert(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.MANAGE_ALERTS)
        request = parse_request(AlertActionRequest, payload)
        return await self._alerts.acknowledge(request.alert_id, capability.caller_id)
    
    async def resolve_alert(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.MANAGE_ALERTS)
        request = parse_request(AlertActionRequest, payload)
        return await self._alerts.resolve(request.alert_id, capability.caller_id)
    
    async def run_job(self, caller: CallerIdentity, payload: Payload) -> Dict[str, Any]:
        capability = await self._auth.require(caller, Permission.RUN_JOBS)
        request = parse_request(RunJobRequest, payload)
        logger.info(f"Job {request.job_name} triggered on demand by {capability.caller_id}")
        return (await self._scheduler.run_job(request.job_name)).to_dict()


# ============================================================
# EVENT HANDLERS
# ============================================================


class EventHandlers:
    """Record-trigger entry points for abuse detection."""
    
    def __init__(self, abuse: AbuseDetectionEngine, pipeline: RemediationPipeline):
        self._abuse = abuse
        self._pipeline = pipeline
    
    async def _handle(
        self,
        kind: EventKind,
        document: Mapping[str, Any],
        user_field: str,
        attribute_fields: List[str],
    ) -> Dict[str, Any]:
        event = PlatformEvent(
            kind=kind,
            user_id=str(document.get(user_field) or ""),
            record_id=str(document.get("id") or ""),
            attributes={name: document.get(name) for name in attribute_fields if name in document},
            occurred_at=_occurred_at(document),
        )
        detection = await self._abuse.handle_event(event)
        pipeline = await self._pipeline.process_signals(detection.signals)
        if detection.errors:
            logger.warning(f"{kind.value} {event.record_id}: {len(detection.errors)} rule error(s)")
        return {
            "event": event.to_dict(),
            "evaluated": detection.evaluated,
            "signals": [s.to_dict() for s in detection.signals],
            "remediation": pipeline.to_dict(),
            "errors": list(detection.errors) + list(pipeline.errors),
        }
    
    async def on_refund_created(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._handle(EventKind.REFUND_CREATED, document, "user_id", [])
    
    async def on_safety_event_created(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._handle(
            EventKind.SAFETY_EVENT_CREATED, document, "user_id", ["event_type", "outcome"]
        )
    
    async def on_transaction_created(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        """Token drain is evaluated against the paid creator."""
        return await self._handle(
            EventKind.TRANSACTION_CREATED, document, "creator_id", ["tokens", "session_seconds"]
        )
    
    async def on_ai_interaction_created(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._handle(EventKind.AI_INTERACTION_CREATED, document, "user_id", ["flagged"])
    
    async def on_booking_status_changed(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        """Cancellation farming is evaluated against the host."""
        return await self._handle(
            EventKind.BOOKING_STATUS_CHANGED, document, "host_id", ["status", "cancelled_by"]
        )
    
    async def on_payout_requested(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._handle(EventKind.PAYOUT_REQUESTED, document, "user_id", ["amount", "status"])
    
    async def on_session_started(self, document: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._handle(
            EventKind.SESSION_STARTED, document, "user_id", ["ip_address", "device_fingerprint"]
        )


def _occurred_at(document: Mapping[str, Any]) -> Union[datetime, None]:
    return as_datetime(document.get("updated_at") or document.get("created_at"))


__all__ = [
    "InvalidRequestError",
    "parse_request",
    "AdminHandlers",
    "EventHandlers",
]
