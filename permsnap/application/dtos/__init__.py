"""Application DTOs: plain frozen dataclasses shared by services and ports (no ORM)."""

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.dtos.organization import (
    OrganizationNode,
    ScopeRef,
    SubsidiaryRecord,
    TalentRecord,
)
from permsnap.application.dtos.policy import ResourceGrants, RolePolicyRow
from permsnap.application.dtos.snapshot import (
    PermissionSnapshot,
    SnapshotRunResult,
    SnapshotWrite,
    UserSnapshotError,
)

__all__ = [
    "OrganizationNode",
    "PermissionSnapshot",
    "ResourceGrants",
    "RoleAssignment",
    "RolePolicyRow",
    "ScopeRef",
    "SnapshotRunResult",
    "SnapshotWrite",
    "SubsidiaryRecord",
    "TalentRecord",
    "UserSnapshotError",
]
