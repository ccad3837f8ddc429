"""Application services: the pure and repository-backed building blocks of a snapshot run."""

from permsnap.application.services.assignment_resolver import RoleAssignmentResolver
from permsnap.application.services.inheritance import InheritanceExpander
from permsnap.application.services.organization_tree import (
    OrganizationTree,
    build_organization_tree,
)
from permsnap.application.services.policy_index import PolicyIndex
from permsnap.application.services.snapshot_aggregator import (
    aggregate_permissions,
    build_snapshot,
)

__all__ = [
    "InheritanceExpander",
    "OrganizationTree",
    "PolicyIndex",
    "RoleAssignmentResolver",
    "aggregate_permissions",
    "build_organization_tree",
    "build_snapshot",
]
