"""Organization tree: in-memory tenant -> subsidiary -> talent hierarchy for one run.

Built once per run from active rows and shared read-only by every user
task. Malformed parent links degrade softly: the node is attached to the
tenant root and a warning is logged, the build never aborts.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Iterator

from permsnap.application.dtos.organization import (
    OrganizationNode,
    ScopeRef,
    SubsidiaryRecord,
    TalentRecord,
)
from permsnap.domain.enums import ScopeType

logger = logging.getLogger(__name__)


class OrganizationTree:
    """Immutable org graph keyed by (kind, id). The root is the tenant node."""

    def __init__(self, tenant_id: str, nodes: dict[ScopeRef, OrganizationNode]) -> None:
        self._tenant_id = tenant_id
        self._nodes = nodes

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @property
    def root(self) -> OrganizationNode:
        return self._nodes[ScopeRef(ScopeType.TENANT, self._tenant_id)]

    def get(self, kind: ScopeType, node_id: str) -> OrganizationNode | None:
        return self._nodes.get(ScopeRef(kind, node_id))

    def __contains__(self, ref: object) -> bool:
        return ref in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[OrganizationNode]:
        return iter(self._nodes.values())

    def descendants(self, kind: ScopeType, node_id: str) -> list[ScopeRef]:
        """Return every node below (kind, node_id) in breadth-first order.

        The start node itself is not included. Each node is visited once,
        so the walk terminates even on malformed input.
        """
        start = ScopeRef(kind, node_id)
        if start not in self._nodes:
            return []
        result: list[ScopeRef] = []
        visited = {start}
        queue = deque(self._nodes[start].children)
        while queue:
            ref = queue.popleft()
            if ref in visited:
                continue
            visited.add(ref)
            result.append(ref)
            node = self._nodes.get(ref)
            if node is not None:
                queue.extend(node.children)
        return result


def build_organization_tree(
    tenant_id: str,
    subsidiaries: Iterable[SubsidiaryRecord],
    talents: Iterable[TalentRecord],
) -> OrganizationTree:
    """Build the org tree for a tenant from active subsidiary and talent rows.

    Subsidiaries without a parent, and talents without a subsidiary, hang
    directly off the tenant root. A parent id that is not among the active
    subsidiaries is treated the same way (with a warning). Subsidiaries
    that a parent cycle cuts off from the root are re-attached to it.

    Args:
        tenant_id: Tenant the rows belong to; becomes the root node id.
        subsidiaries: Active subsidiary rows.
        talents: Active talent rows.

    Returns:
        OrganizationTree with children ordered by id.
    """
    root_ref = ScopeRef(ScopeType.TENANT, tenant_id)
    subsidiary_ids = set()
    parents: dict[ScopeRef, str | None] = {}
    subsidiary_rows = list(subsidiaries)
    for sub in subsidiary_rows:
        subsidiary_ids.add(sub.id)

    for sub in subsidiary_rows:
        parent_id = sub.parent_id
        if parent_id is not None and (parent_id not in subsidiary_ids or parent_id == sub.id):
            logger.warning(
                "Subsidiary %s has dangling parent %s in tenant %s; attaching to tenant root",
                sub.id,
                parent_id,
                tenant_id,
            )
            parent_id = None
        parents[ScopeRef(ScopeType.SUBSIDIARY, sub.id)] = parent_id

    for talent in talents:
        parent_id = talent.subsidiary_id
        if parent_id is not None and parent_id not in subsidiary_ids:
            logger.warning(
                "Talent %s has dangling subsidiary %s in tenant %s; attaching to tenant root",
                talent.id,
                parent_id,
                tenant_id,
            )
            parent_id = None
        parents[ScopeRef(ScopeType.TALENT, talent.id)] = parent_id

    _reattach_unreachable(tenant_id, parents)

    children: dict[ScopeRef, list[ScopeRef]] = {root_ref: []}
    for ref in parents:
        children.setdefault(ref, [])
    for ref, parent_id in parents.items():
        parent_ref = root_ref if parent_id is None else ScopeRef(ScopeType.SUBSIDIARY, parent_id)
        children[parent_ref].append(ref)

    nodes: dict[ScopeRef, OrganizationNode] = {
        root_ref: OrganizationNode(
            id=tenant_id,
            kind=ScopeType.TENANT,
            parent_id=None,
            children=_ordered(children[root_ref]),
        )
    }
    for ref, parent_id in parents.items():
        nodes[ref] = OrganizationNode(
            id=ref.scope_id or "",
            kind=ref.scope_type,
            parent_id=tenant_id if parent_id is None else parent_id,
            children=_ordered(children[ref]),
        )
    logger.debug(
        "Built organization tree for tenant %s: %d subsidiaries, %d talents",
        tenant_id,
        len(subsidiary_ids),
        len(parents) - len(subsidiary_ids),
    )
    return OrganizationTree(tenant_id, nodes)


def _ordered(refs: list[ScopeRef]) -> tuple[ScopeRef, ...]:
    return tuple(sorted(refs, key=lambda r: (r.scope_type.value, r.scope_id or "")))


def _reattach_unreachable(tenant_id: str, parents: dict[ScopeRef, str | None]) -> None:
    """Cut parent cycles among subsidiaries by re-attaching them to the tenant root."""
    resolved: dict[str, bool] = {}
    for ref in [r for r in parents if r.scope_type == ScopeType.SUBSIDIARY]:
        path: list[str] = []
        current: str | None = ref.scope_id
        while current is not None and current not in resolved:
            if current in path:
                cycle_start = path.index(current)
                breaker = min(path[cycle_start:])
                logger.warning(
                    "Subsidiary parent cycle %s in tenant %s; attaching %s to tenant root",
                    " -> ".join(path[cycle_start:] + [current]),
                    tenant_id,
                    breaker,
                )
                parents[ScopeRef(ScopeType.SUBSIDIARY, breaker)] = None
                break
            path.append(current)
            current = parents[ScopeRef(ScopeType.SUBSIDIARY, current)]
        for sub_id in path:
            resolved[sub_id] = True
