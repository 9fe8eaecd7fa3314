"""
Pydantic Schemas for On-Demand Requests.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from farming_detection.types import CaseStatus
from remediation.types import AutoAction


# =============================================================
# TRUST
# =============================================================

class RecomputeTrustRequest(BaseModel):
    """Recompute one account's trust score."""
    user_id: str = Field(min_length=1)


class BulkRecomputeTrustRequest(BaseModel):
    """Recompute a bounded list of accounts."""
    user_ids: List[str] = Field(min_length=1, max_length=500)


# =============================================================
# FARMING CASES
# =============================================================

class InvestigateCaseRequest(BaseModel):
    case_id: str = Field(min_length=1)


class ResolveCaseRequest(BaseModel):
    """Close a case with an outcome and an optional action."""
    case_id: str = Field(min_length=1)
    outcome: CaseStatus
    resolution: str = Field(min_length=1, max_length=2000)
    action: AutoAction = AutoAction.NONE


class DismissClusterRequest(BaseModel):
    cluster_id: str = Field(min_length=1)


class FarmingRiskRequest(BaseModel):
    user_id: str = Field(min_length=1)


# =============================================================
# SIGNALS / ALERTS / JOBS
# =============================================================

class ResolveSignalRequest(BaseModel):
    signal_id: str = Field(min_length=1)
    note: Optional[str] = Field(default=None, max_length=2000)


class AlertActionRequest(BaseModel):
    alert_id: str = Field(min_length=1)


class RunJobRequest(BaseModel):
    job_name: str = Field(min_length=1)


__all__ = [
    "RecomputeTrustRequest",
    "BulkRecomputeTrustRequest",
    "InvestigateCaseRequest",
    "ResolveCaseRequest",
    "DismissClusterRequest",
    "FarmingRiskRequest",
    "ResolveSignalRequest",
    "AlertActionRequest",
    "RunJobRequest",
]
