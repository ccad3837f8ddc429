"""Permission source repository: org structure, role catalogue and assignments (read-only).

Implements IPermissionSourceRepository and ITenantDirectory. Each call opens
its own short-lived session from the session factory, so concurrent user
tasks of one run never share a session. Connection-level failures surface
as StoreUnavailableException.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.dtos.organization import SubsidiaryRecord, TalentRecord
from permsnap.application.dtos.policy import RolePolicyRow
from permsnap.domain.enums import LinkEffect, PolicyEffect, ScopeType
from permsnap.domain.exceptions import StoreUnavailableException
from permsnap.infrastructure.persistence.models import (
    Policy,
    Resource,
    Role,
    RolePolicy,
    Subsidiary,
    SystemUser,
    Talent,
    Tenant,
    UserRole,
)
from permsnap.shared.utils.datetime import ensure_utc

logger = logging.getLogger(__name__)


def _not_expired() -> Any:
    return or_(UserRole.expires_at.is_(None), UserRole.expires_at > func.now())


class PermissionSourceRepository:
    """Tenant-filtered reads the snapshot engine needs from the relational store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _fetch(self, operation: str, stmt: Select[Any]) -> Sequence[Any]:
        """Execute stmt in a fresh session and return all rows."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.all()
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error("Store read %s failed: %s", operation, e)
            raise StoreUnavailableException(operation, str(e)) from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise StoreUnavailableException(operation, str(e)) from e
            raise

    async def get_active_subsidiaries(self, tenant_id: str) -> list[SubsidiaryRecord]:
        rows = await self._fetch(
            "get_active_subsidiaries",
            select(Subsidiary.id, Subsidiary.parent_id).where(
                Subsidiary.tenant_id == tenant_id,
                Subsidiary.is_active.is_(True),
            ),
        )
        return [SubsidiaryRecord(id=r.id, parent_id=r.parent_id) for r in rows]

    async def get_active_talents(self, tenant_id: str) -> list[TalentRecord]:
        rows = await self._fetch(
            "get_active_talents",
            select(Talent.id, Talent.subsidiary_id).where(
                Talent.tenant_id == tenant_id,
                Talent.is_active.is_(True),
            ),
        )
        return [TalentRecord(id=r.id, subsidiary_id=r.subsidiary_id) for r in rows]

    async def get_role_policy_rows(self, tenant_id: str) -> list[RolePolicyRow]:
        """Return link rows of active roles and active policies.

        The resource is outer-joined so that a policy pointing at a missing
        resource still comes back (resource_code None) and can be reported.
        """
        stmt = (
            select(
                Role.id.label("role_id"),
                Role.code.label("role_code"),
                Resource.code.label("resource_code"),
                Resource.is_active.label("resource_active"),
                Policy.action,
                Policy.effect.label("policy_effect"),
                RolePolicy.effect.label("link_effect"),
            )
            .select_from(RolePolicy)
            .join(Role, Role.id == RolePolicy.role_id)
            .join(Policy, Policy.id == RolePolicy.policy_id)
            .outerjoin(
                Resource,
                and_(Resource.id == Policy.resource_id, Resource.tenant_id == tenant_id),
            )
            .where(
                RolePolicy.tenant_id == tenant_id,
                Role.is_active.is_(True),
                Policy.is_active.is_(True),
            )
            .order_by(Role.id, Policy.id)
        )
        rows = await self._fetch("get_role_policy_rows", stmt)
        return [
            RolePolicyRow(
                role_id=r.role_id,
                role_code=r.role_code,
                resource_code=r.resource_code,
                resource_active=bool(r.resource_active),
                action=r.action,
                policy_effect=PolicyEffect(r.policy_effect),
                link_effect=LinkEffect(r.link_effect) if r.link_effect else None,
            )
            for r in rows
        ]

    async def get_active_user_ids(self, tenant_id: str) -> list[str]:
        rows = await self._fetch(
            "get_active_user_ids",
            select(SystemUser.id)
            .where(SystemUser.tenant_id == tenant_id, SystemUser.is_active.is_(True))
            .order_by(SystemUser.id),
        )
        return [r.id for r in rows]

    async def get_user_ids_by_scopes(
        self, tenant_id: str, scope_ids: Iterable[str]
    ) -> list[str]:
        ids = list(scope_ids)
        if not ids:
            return []
        rows = await self._fetch(
            "get_user_ids_by_scopes",
            select(UserRole.user_id)
            .where(
                UserRole.tenant_id == tenant_id,
                UserRole.scope_id.in_(ids),
                _not_expired(),
            )
            .distinct()
            .order_by(UserRole.user_id),
        )
        return [r.user_id for r in rows]

    async def get_user_ids_by_roles(
        self, tenant_id: str, role_ids: Iterable[str]
    ) -> list[str]:
        ids = list(role_ids)
        if not ids:
            return []
        rows = await self._fetch(
            "get_user_ids_by_roles",
            select(UserRole.user_id)
            .where(
                UserRole.tenant_id == tenant_id,
                UserRole.role_id.in_(ids),
                _not_expired(),
            )
            .distinct()
            .order_by(UserRole.user_id),
        )
        return [r.user_id for r in rows]

    async def get_user_assignments(
        self, tenant_id: str, user_id: str
    ) -> list[RoleAssignment]:
        rows = await self._fetch(
            "get_user_assignments",
            select(
                UserRole.user_id,
                UserRole.role_id,
                UserRole.scope_type,
                UserRole.scope_id,
                UserRole.inherit,
                UserRole.expires_at,
            )
            .join(Role, Role.id == UserRole.role_id)
            .where(
                UserRole.tenant_id == tenant_id,
                UserRole.user_id == user_id,
                Role.is_active.is_(True),
                _not_expired(),
            )
            .order_by(UserRole.id),
        )
        return [
            RoleAssignment(
                user_id=r.user_id,
                role_id=r.role_id,
                scope_type=ScopeType(r.scope_type),
                scope_id=None if r.scope_type == ScopeType.TENANT.value else r.scope_id,
                inherit=bool(r.inherit),
                expires_at=ensure_utc(r.expires_at),
            )
            for r in rows
        ]

    async def get_active_tenant_ids(self) -> list[str]:
        rows = await self._fetch(
            "get_active_tenant_ids",
            select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.code),
        )
        return [r.id for r in rows]
