"""
Tests for Access Control.

Authorization decisions for operator entry points.
"""

import pytest

from access_control.service import (
    DocumentRoleDirectory,
    RoleBasedAuthorizationService,
    StaticRoleDirectory,
)
from access_control.types import CallerIdentity, Permission, Role
from core.exceptions import PermissionDeniedError, UnauthenticatedError
from data_sources.store import InMemoryDocumentStore


@pytest.fixture
def service():
    directory = StaticRoleDirectory({
        "analyst-1": frozenset({Role.FRAUD_ANALYST}),
        "mod-1": frozenset({Role.MODERATOR}),
    })
    return RoleBasedAuthorizationService(directory)


class TestRoleBasedAuthorization:
    """Role grants and error codes."""
    
    @pytest.mark.asyncio
    async def test_anonymous_is_unauthenticated(self, service):
        with pytest.raises(UnauthenticatedError) as exc_info:
            await service.require(CallerIdentity.anonymous(), Permission.MANAGE_CASES)
        assert exc_info.value.code == "unauthenticated"
    
    @pytest.mark.asyncio
    async def test_missing_role_is_denied(self, service):
        with pytest.raises(PermissionDeniedError) as exc_info:
            await service.require(CallerIdentity("mod-1"), Permission.MANAGE_CASES)
        assert exc_info.value.code == "permission-denied"
        assert exc_info.value.context["caller_id"] == "mod-1"
    
    @pytest.mark.asyncio
    async def test_directory_role_grants(self, service):
        capability = await service.require(CallerIdentity("analyst-1"), Permission.RECOMPUTE_TRUST)
        assert capability.allowed
        assert capability.caller_id == "analyst-1"
        assert Role.FRAUD_ANALYST in capability.roles
    
    @pytest.mark.asyncio
    async def test_token_roles_are_honoured(self, service):
        caller = CallerIdentity("someone", roles=frozenset({Role.ADMIN}))
        for permission in Permission:
            assert (await service.authorize(caller, permission)).allowed
    
    @pytest.mark.asyncio
    async def test_service_identity_runs_jobs_only(self, service):
        caller = CallerIdentity.service("scheduler")
        assert (await service.authorize(caller, Permission.RUN_JOBS)).allowed
        assert not (await service.authorize(caller, Permission.MANAGE_CASES)).allowed
    
    @pytest.mark.asyncio
    async def test_decisions_logged(self, service):
        await service.authorize(CallerIdentity.anonymous(), Permission.RUN_JOBS)
        await service.authorize(CallerIdentity("analyst-1"), Permission.MANAGE_CASES)
        
        log = service.get_decision_log()
        assert [entry["allowed"] for entry in log] == [False, True]
        assert log[0]["reason"] == "unauthenticated"


class TestDocumentRoleDirectory:
    
    @pytest.mark.asyncio
    async def test_reads_roles_and_ignores_unknown(self):
        store = InMemoryDocumentStore({
            "admin_users": [{"id": "op-1", "roles": ["Admin", "wizard"]}],
        })
        roles = await DocumentRoleDirectory(store).roles_for("op-1")
        assert roles == frozenset({Role.ADMIN})
    
    @pytest.mark.asyncio
    async def test_unknown_caller_has_no_roles(self):
        store = InMemoryDocumentStore({"admin_users": [{"id": "op-1", "roles": "admin"}]})
        directory = DocumentRoleDirectory(store)
        assert await directory.roles_for("op-2") == frozenset()
        assert await directory.roles_for("op-1") == frozenset()
