"""Inheritance expansion: which scopes a single role assignment applies to."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.dtos.organization import ScopeRef
from permsnap.application.services.organization_tree import OrganizationTree

logger = logging.getLogger(__name__)


class InheritanceExpander:
    """Propagates inheriting assignments down the organization tree.

    Tenant-scoped assignments are never expanded: a tenant snapshot stays
    separate from subsidiary and talent snapshots.
    """

    def __init__(self, tree: OrganizationTree) -> None:
        self._tree = tree

    def expand(self, assignment: RoleAssignment) -> list[ScopeRef]:
        """Return the assignment's own scope followed by inherited descendant scopes."""
        own = assignment.scope
        if not assignment.inherit or own.is_tenant or own.scope_id is None:
            return [own]
        if own not in self._tree:
            logger.debug(
                "Assignment of role %s for user %s targets %s %s outside the active tree; not expanding",
                assignment.role_id,
                assignment.user_id,
                own.scope_type.value,
                own.scope_id,
            )
            return [own]
        return [own, *self._tree.descendants(own.scope_type, own.scope_id)]

    def expand_all(
        self, assignments: Iterable[RoleAssignment]
    ) -> dict[ScopeRef, list[str]]:
        """Group role ids by every scope the assignments reach (scope -> [role_id])."""
        by_scope: dict[ScopeRef, list[str]] = {}
        for assignment in assignments:
            for scope in self.expand(assignment):
                role_ids = by_scope.setdefault(scope, [])
                if assignment.role_id not in role_ids:
                    role_ids.append(assignment.role_id)
        return by_scope
