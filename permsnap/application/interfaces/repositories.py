"""Repository interfaces (ports) for the application layer.

Protocols define contracts that infrastructure implementations must fulfill (DIP).
All types reference application DTOs only; no infrastructure imports.
Every method is scoped to one tenant.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from permsnap.application.dtos.assignment import RoleAssignment
    from permsnap.application.dtos.organization import SubsidiaryRecord, TalentRecord
    from permsnap.application.dtos.policy import RolePolicyRow


class IPermissionSourceRepository(Protocol):
    """Read-only access to org structure, role catalogue and assignments (DIP)."""

    async def get_active_subsidiaries(self, tenant_id: str) -> list[SubsidiaryRecord]:
        """Return active subsidiaries with their parent linkage."""

    async def get_active_talents(self, tenant_id: str) -> list[TalentRecord]:
        """Return active talents with their parent subsidiary (or None)."""

    async def get_role_policy_rows(self, tenant_id: str) -> list[RolePolicyRow]:
        """Return role -> policy -> resource rows for active roles and active policies."""

    async def get_active_user_ids(self, tenant_id: str) -> list[str]:
        """Return ids of every active user in the tenant."""

    async def get_user_ids_by_scopes(
        self, tenant_id: str, scope_ids: Iterable[str]
    ) -> list[str]:
        """Return users holding a non-expired assignment at one of the scopes."""

    async def get_user_ids_by_roles(
        self, tenant_id: str, role_ids: Iterable[str]
    ) -> list[str]:
        """Return users holding a non-expired assignment of one of the roles."""

    async def get_user_assignments(
        self, tenant_id: str, user_id: str
    ) -> list[RoleAssignment]:
        """Return the user's non-expired assignments of active roles."""


class ITenantDirectory(Protocol):
    """Lists tenants for multi-tenant maintenance runs (CLI refresh)."""

    async def get_active_tenant_ids(self) -> list[str]:
        """Return ids of all active tenants."""
