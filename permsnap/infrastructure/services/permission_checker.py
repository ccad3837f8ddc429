"""Answers permission checks from cached snapshots (read path).

Only granted actions are stored in a snapshot (denies were already
subtracted when it was computed), so a check is a lookup with two
fallbacks: the resource's admin action, then admin on the global
wildcard resource. A missing snapshot denies.
"""

from __future__ import annotations

import logging

from permsnap.application.interfaces.services import ISnapshotReader
from permsnap.core.constants import ADMIN_ACTION, WILDCARD_RESOURCE
from permsnap.domain.enums import ScopeType

logger = logging.getLogger(__name__)


class PermissionChecker:
    """Checks whether a user may perform an action on a resource at a scope."""

    def __init__(self, reader: ISnapshotReader) -> None:
        self.reader = reader

    async def has_permission(
        self,
        tenant_id: str,
        user_id: str,
        resource: str,
        action: str,
        scope_type: ScopeType = ScopeType.TENANT,
        scope_id: str | None = None,
    ) -> bool:
        """Return True if the user's snapshot at the scope grants the action.

        Args:
            tenant_id: Tenant ID.
            user_id: User ID.
            resource: Resource code (e.g. customer.profile).
            action: Action (e.g. read).
            scope_type: Scope kind; defaults to the tenant scope.
            scope_id: Scope id; ignored for the tenant scope.
        """
        if scope_type == ScopeType.TENANT:
            scope_id = None
        snapshot = await self.reader.get_snapshot(tenant_id, user_id, scope_type, scope_id)
        if snapshot is None:
            logger.debug(
                "No snapshot for user %s at %s:%s; denying %s:%s",
                user_id,
                scope_type.value,
                scope_id,
                resource,
                action,
            )
            return False
        return (
            snapshot.allows(resource, action)
            or snapshot.allows(resource, ADMIN_ACTION)
            or snapshot.allows(WILDCARD_RESOURCE, ADMIN_ACTION)
        )
