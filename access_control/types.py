"""
Access Control - Type Definitions.

Caller identities, roles, permissions and the capability result
returned by the authorization service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class Role(str, Enum):
    """Operator roles recognised by on-demand entry points."""
    
    ADMIN = "admin"
    FRAUD_ANALYST = "fraud_analyst"
    MODERATOR = "moderator"
    SERVICE = "service"


class Permission(str, Enum):
    """Actions gated behind an authorization check."""
    
    RECOMPUTE_TRUST = "recompute_trust"
    MANAGE_CASES = "manage_cases"
    RESOLVE_SIGNALS = "resolve_signals"
    RUN_JOBS = "run_jobs"
    MANAGE_ALERTS = "manage_alerts"


@dataclass(frozen=True)
class CallerIdentity:
    """
    Identity attached to an on-demand request.
    
    `caller_id` is None when the platform could not verify the
    request's credentials.
    """
    caller_id: Optional[str]
    roles: FrozenSet[Role] = frozenset()
    claims: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    
    @property
    def authenticated(self) -> bool:
        return bool(self.caller_id)
    
    @classmethod
    def anonymous(cls) -> "CallerIdentity":
        return cls(caller_id=None)
    
    @classmethod
    def service(cls, name: str = "scheduler") -> "CallerIdentity":
        return cls(caller_id=f"service:{name}", roles=frozenset({Role.SERVICE}))


@dataclass(frozen=True)
class Capability:
    """Result of an authorization decision."""
    allowed: bool
    caller_id: Optional[str]
    permission: Permission
    roles: FrozenSet[Role] = frozenset()
    reason: str = ""
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "caller_id": self.caller_id,
            "permission": self.permission.value,
            "roles": sorted(role.value for role in self.roles),
            "reason": self.reason,
            "decided_at": self.decided_at.isoformat(),
        }


__all__ = ["Role", "Permission", "CallerIdentity", "Capability"]
