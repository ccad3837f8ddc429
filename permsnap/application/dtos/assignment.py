"""DTO for user role assignments (user_role rows)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from permsnap.application.dtos.organization import ScopeRef
from permsnap.domain.enums import ScopeType


@dataclass(frozen=True)
class RoleAssignment:
    """A role granted to a user at one scope.

    scope_id is None only for tenant scope. Expired assignments
    (expires_at <= now) never take part in a computation.
    """

    user_id: str
    role_id: str
    scope_type: ScopeType
    scope_id: str | None = None
    inherit: bool = False
    expires_at: datetime | None = None

    @property
    def scope(self) -> ScopeRef:
        if self.scope_type == ScopeType.TENANT:
            return ScopeRef.tenant()
        return ScopeRef(self.scope_type, self.scope_id)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now
