"""
Access Control - Authorization Service.

============================================================
PURPOSE
============================================================
Single authorization interface injected into every on-demand
handler. Handlers call `require(caller, permission)` before
acting; the service returns a Capability or raises.

Rules:
- Unauthenticated callers raise UnauthenticatedError
- Callers without a granting role raise PermissionDeniedError
- Callers are never silently ignored
- All denials are logged

============================================================
"""

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Protocol

from core.exceptions import PermissionDeniedError, UnauthenticatedError
from data_sources.store import DocumentStore, where

from .types import CallerIdentity, Capability, Permission, Role


logger = logging.getLogger(__name__)


# ============================================================
# ROLE GRANTS
# ============================================================

DEFAULT_ROLE_GRANTS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.FRAUD_ANALYST: frozenset({
        Permission.RECOMPUTE_TRUST,
        Permission.MANAGE_CASES,
        Permission.RESOLVE_SIGNALS,
    }),
    Role.MODERATOR: frozenset({Permission.RESOLVE_SIGNALS}),
    Role.SERVICE: frozenset({Permission.RUN_JOBS, Permission.RECOMPUTE_TRUST}),
}


# ============================================================
# ROLE DIRECTORIES
# ============================================================


class RoleDirectory(Protocol):
    """Looks up the roles held by a caller id."""
    
    async def roles_for(self, caller_id: str) -> FrozenSet[Role]:
        ...


class StaticRoleDirectory:
    """Fixed caller -> roles mapping."""
    
    def __init__(self, assignments: Optional[Mapping[str, FrozenSet[Role]]] = None):
        self._assignments = dict(assignments or {})
    
    async def roles_for(self, caller_id: str) -> FrozenSet[Role]:
        return frozenset(self._assignments.get(caller_id, frozenset()))


class DocumentRoleDirectory:
    """Reads operator roles from the platform `admin_users` collection."""
    
    COLLECTION = "admin_users"
    
    def __init__(self, store: DocumentStore):
        self._store = store
    
    async def roles_for(self, caller_id: str) -> FrozenSet[Role]:
        docs = await self._store.find(self.COLLECTION, [where("id", "==", caller_id)], limit=1)
        if not docs:
            return frozenset()
        raw_roles = docs[0].get("roles") or []
        if not isinstance(raw_roles, list):
            return frozenset()
        roles = set()
        for value in raw_roles:
            try:
                roles.add(Role(str(value).lower()))
            except ValueError:
                logger.debug(f"Ignoring unknown role {value!r} for {caller_id}")
        return frozenset(roles)


# ============================================================
# AUTHORIZATION SERVICE
# ============================================================


class AuthorizationService(Protocol):
    async def authorize(self, caller: CallerIdentity, permission: Permission) -> Capability:
        ...
    
    async def require(self, caller: CallerIdentity, permission: Permission) -> Capability:
        ...


class RoleBasedAuthorizationService:
    """
    Grants permissions from roles.
    
    Roles come from the caller's verified token and, when a
    directory is configured, from the directory lookup.
    """
    
    def __init__(
        self,
        directory: Optional[RoleDirectory] = None,
        role_grants: Optional[Mapping[Role, FrozenSet[Permission]]] = None,
    ):
        self._directory = directory
        self._role_grants = dict(role_grants or DEFAULT_ROLE_GRANTS)
        self._decision_log: List[Dict[str, Any]] = []
        self._max_log_size = 1000
    
    async def authorize(self, caller: CallerIdentity, permission: Permission) -> Capability:
        if not caller.authenticated:
            return self._record(Capability(
                allowed=False,
                caller_id=None,
                permission=permission,
                reason="unauthenticated",
            ))
        
        roles = set(caller.roles)
        if self._directory is not None:
            roles |= await self._directory.roles_for(caller.caller_id)
        roles_fs = frozenset(roles)
        
        granted = any(permission in self._role_grants.get(role, frozenset()) for role in roles_fs)
        reason = "granted" if granted else f"no role grants {permission.value}"
        return self._record(Capability(
            allowed=granted,
            caller_id=caller.caller_id,
            permission=permission,
            roles=roles_fs,
            reason=reason,
        ))
    
    async def require(self, caller: CallerIdentity, permission: Permission) -> Capability:
        """
        Authorize or raise.
        
        Raises:
            UnauthenticatedError: caller identity missing
            PermissionDeniedError: caller lacks the permission
        """
        capability = await self.authorize(caller, permission)
        if capability.allowed:
            return capability
        if not caller.authenticated:
            raise UnauthenticatedError(
                "Authentication required",
                capability=permission.value,
            )
        raise PermissionDeniedError(
            f"Caller {caller.caller_id} may not {permission.value}",
            caller_id=caller.caller_id,
            capability=permission.value,
        )
    
    def _record(self, capability: Capability) -> Capability:
        if not capability.allowed:
            logger.warning(
                f"ACCESS DENIED: caller={capability.caller_id} "
                f"permission={capability.permission.value} reason={capability.reason}"
            )
        self._decision_log.append(capability.to_dict())
        if len(self._decision_log) > self._max_log_size:
            self._decision_log = self._decision_log[-self._max_log_size:]
        return capability
    
    def get_decision_log(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._decision_log[-limit:]


__all__ = [
    "DEFAULT_ROLE_GRANTS",
    "RoleDirectory",
    "StaticRoleDirectory",
    "DocumentRoleDirectory",
    "AuthorizationService",
    "RoleBasedAuthorizationService",
]
