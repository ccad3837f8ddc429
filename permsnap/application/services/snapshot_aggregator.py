"""Snapshot aggregation: deny-override merge of role contributions at one scope."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from permsnap.application.dtos.organization import ScopeRef
from permsnap.application.dtos.snapshot import PermissionSnapshot
from permsnap.application.services.policy_index import PolicyIndex


def aggregate_permissions(
    role_ids: Iterable[str], policy_index: PolicyIndex
) -> dict[str, list[str]]:
    """Merge the contributions of roles into resource -> sorted actions.

    Grants and denies are unioned across all roles; any deny removes the
    action whichever role granted it. Resources left without actions are
    omitted. Pure: same input, same output.
    """
    granted: dict[str, set[str]] = {}
    denied: dict[str, set[str]] = {}
    for role_id in role_ids:
        for resource, grants in policy_index.for_role(role_id).items():
            if grants.granted:
                granted.setdefault(resource, set()).update(grants.granted)
            if grants.denied:
                denied.setdefault(resource, set()).update(grants.denied)

    permissions: dict[str, list[str]] = {}
    for resource in sorted(granted):
        actions = granted[resource] - denied.get(resource, set())
        if actions:
            permissions[resource] = sorted(actions)
    return permissions


def build_snapshot(
    user_id: str,
    scope: ScopeRef,
    role_ids: Iterable[str],
    policy_index: PolicyIndex,
    computed_at: datetime,
) -> PermissionSnapshot:
    """Aggregate role contributions for (user, scope) into a PermissionSnapshot."""
    return PermissionSnapshot(
        user_id=user_id,
        scope_type=scope.scope_type,
        scope_id=scope.scope_id,
        permissions=aggregate_permissions(role_ids, policy_index),
        computed_at=computed_at,
    )
