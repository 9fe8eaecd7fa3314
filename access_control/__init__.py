"""
Access Control Package.

============================================================
PURPOSE
============================================================
Caller identity and role checks for on-demand entry points
(trust recompute, case management, signal resolution, manual
job runs, alert acknowledgement).

============================================================
USAGE
============================================================
    auth = RoleBasedAuthorizationService(DocumentRoleDirectory(store))
    capability = await auth.require(caller, Permission.RECOMPUTE_TRUST)

============================================================
"""

from .types import Role, Permission, CallerIdentity, Capability
from .service import (
    DEFAULT_ROLE_GRANTS,
    RoleDirectory,
    StaticRoleDirectory,
    DocumentRoleDirectory,
    AuthorizationService,
    RoleBasedAuthorizationService,
)


__all__ = [
    "Role",
    "Permission",
    "CallerIdentity",
    "Capability",
    "DEFAULT_ROLE_GRANTS",
    "RoleDirectory",
    "StaticRoleDirectory",
    "DocumentRoleDirectory",
    "AuthorizationService",
    "RoleBasedAuthorizationService",
]

__version__ = "1.0.0"
