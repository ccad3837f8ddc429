"""Policy index: per-role effective grants and denies, computed once per run."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from permsnap.application.dtos.policy import ResourceGrants, RolePolicyRow
from permsnap.domain.enums import LinkEffect

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, ResourceGrants] = MappingProxyType({})


class PolicyIndex:
    """role_id -> resource_code -> ResourceGrants(granted, denied).

    Within one role a deny link for (resource, action) removes that action
    from the role's granted set and lands in its denied set; the link
    effect is authoritative over the policy's base effect. Read-only once
    built, safe to share between concurrent user tasks.
    """

    def __init__(self, index: Mapping[str, Mapping[str, ResourceGrants]]) -> None:
        self._index = MappingProxyType(
            {role_id: MappingProxyType(dict(resources)) for role_id, resources in index.items()}
        )

    @classmethod
    def build(cls, rows: Iterable[RolePolicyRow]) -> PolicyIndex:
        """Build the index from role -> policy -> resource rows.

        Rows whose resource is missing or inactive are skipped with a
        warning; they never abort the build.
        """
        grants: dict[str, dict[str, set[str]]] = {}
        denies: dict[str, dict[str, set[str]]] = {}
        role_ids: set[str] = set()
        skipped = 0
        for row in rows:
            role_ids.add(row.role_id)
            if row.resource_code is None or not row.resource_active:
                skipped += 1
                logger.warning(
                    "Skipping policy %s on role %s: resource %s is missing or inactive",
                    row.action,
                    row.role_code,
                    row.resource_code,
                )
                continue
            if row.link_effect is not None and (
                row.link_effect != LinkEffect.from_policy_effect(row.policy_effect)
            ):
                logger.debug(
                    "Role %s overrides base effect %s of %s:%s with %s",
                    row.role_code,
                    row.policy_effect.value,
                    row.resource_code,
                    row.action,
                    row.link_effect.value,
                )
            target = denies if row.effective_link_effect == LinkEffect.DENY else grants
            target.setdefault(row.role_id, {}).setdefault(row.resource_code, set()).add(
                row.action
            )

        index: dict[str, dict[str, ResourceGrants]] = {}
        for role_id in role_ids:
            role_grants = grants.get(role_id, {})
            role_denies = denies.get(role_id, {})
            resources: dict[str, ResourceGrants] = {}
            for resource in role_grants.keys() | role_denies.keys():
                denied = frozenset(role_denies.get(resource, ()))
                granted = frozenset(role_grants.get(resource, ())) - denied
                resources[resource] = ResourceGrants(granted=granted, denied=denied)
            index[role_id] = resources
        logger.debug(
            "Built policy index: %d roles, %d rows skipped", len(index), skipped
        )
        return cls(index)

    def for_role(self, role_id: str) -> Mapping[str, ResourceGrants]:
        """Return the role's resources, empty for unknown or inactive roles."""
        return self._index.get(role_id, _EMPTY)

    @property
    def role_ids(self) -> frozenset[str]:
        return frozenset(self._index)

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._index

    def __len__(self) -> int:
        return len(self._index)
