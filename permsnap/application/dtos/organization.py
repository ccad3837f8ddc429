"""DTOs for the organization hierarchy (tenant -> subsidiary -> talent)."""

from __future__ import annotations

from dataclasses import dataclass

from permsnap.domain.enums import ScopeType


@dataclass(frozen=True)
class ScopeRef:
    """A scope: node kind plus id. Tenant snapshots use scope_id=None."""

    scope_type: ScopeType
    scope_id: str | None = None

    @classmethod
    def tenant(cls) -> ScopeRef:
        """The tenant-wide scope as it appears on assignments and snapshots."""
        return cls(ScopeType.TENANT, None)

    @property
    def is_tenant(self) -> bool:
        return self.scope_type == ScopeType.TENANT


@dataclass(frozen=True)
class SubsidiaryRecord:
    """Active subsidiary row (parent_id None means attached to the tenant)."""

    id: str
    parent_id: str | None


@dataclass(frozen=True)
class TalentRecord:
    """Active talent row (subsidiary_id None means attached to the tenant)."""

    id: str
    subsidiary_id: str | None


@dataclass(frozen=True)
class OrganizationNode:
    """Node of the in-memory organization tree. Children are ordered by id."""

    id: str
    kind: ScopeType
    parent_id: str | None
    children: tuple[ScopeRef, ...] = ()

    @property
    def ref(self) -> ScopeRef:
        return ScopeRef(self.kind, self.id)
