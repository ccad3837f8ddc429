"""Role assignment resolution: which users a run recomputes, and their assignments."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from permsnap.domain.enums import SnapshotEventType
from permsnap.shared.utils.datetime import utc_now

if TYPE_CHECKING:
    from permsnap.application.dtos.assignment import RoleAssignment
    from permsnap.application.interfaces.repositories import IPermissionSourceRepository
    from permsnap.schemas.permission_job import PermissionJobPayload

logger = logging.getLogger(__name__)


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class RoleAssignmentResolver:
    """Selects users for a run from the trigger and loads their live assignments.

    Selector precedence: FULL_REFRESH, then affected_user_ids, then
    affected_scope_ids, then affected_role_ids. A trigger without any
    selector resolves to no users; supplying one is the caller's job.
    """

    def __init__(self, source_repo: IPermissionSourceRepository) -> None:
        self._source_repo = source_repo

    async def resolve_user_ids(self, trigger: PermissionJobPayload) -> list[str]:
        tenant_id = trigger.tenant_id
        if trigger.event_type == SnapshotEventType.FULL_REFRESH:
            user_ids = await self._source_repo.get_active_user_ids(tenant_id)
        elif trigger.affected_user_ids:
            user_ids = list(trigger.affected_user_ids)
        elif trigger.affected_scope_ids:
            user_ids = await self._source_repo.get_user_ids_by_scopes(
                tenant_id, trigger.affected_scope_ids
            )
        elif trigger.affected_role_ids:
            user_ids = await self._source_repo.get_user_ids_by_roles(
                tenant_id, trigger.affected_role_ids
            )
        else:
            logger.warning(
                "Snapshot trigger %s for tenant %s has no user, scope or role selector; nothing to do",
                trigger.event_type.value,
                tenant_id,
            )
            return []
        return _dedupe(user_ids)

    async def load_assignments(self, tenant_id: str, user_id: str) -> list[RoleAssignment]:
        """Return the user's assignments, dropping any that expired since the query."""
        now = utc_now()
        assignments = await self._source_repo.get_user_assignments(tenant_id, user_id)
        return [a for a in assignments if not a.is_expired(now)]
