"""DTOs for permission snapshots and snapshot run results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from permsnap.application.dtos.organization import ScopeRef
from permsnap.domain.enums import RunState, ScopeType, SnapshotEventType


@dataclass(frozen=True)
class PermissionSnapshot:
    """Flattened permissions of one user at one scope (resource -> sorted actions)."""

    user_id: str
    scope_type: ScopeType
    scope_id: str | None
    permissions: dict[str, list[str]]
    computed_at: datetime

    @property
    def scope(self) -> ScopeRef:
        return ScopeRef(self.scope_type, self.scope_id)

    def allows(self, resource: str, action: str) -> bool:
        return action in self.permissions.get(resource, ())


@dataclass(frozen=True)
class SnapshotWrite:
    """One cache operation of a write batch.

    snapshot set: replace the entry for (tenant, user, scope). snapshot None:
    delete the stale entry. computed_at guards both (last write wins).
    """

    tenant_id: str
    user_id: str
    scope: ScopeRef
    computed_at: datetime
    snapshot: PermissionSnapshot | None = None

    @property
    def is_delete(self) -> bool:
        return self.snapshot is None


@dataclass(frozen=True)
class UserSnapshotError:
    """A per-user failure recorded by a run that otherwise continued."""

    user_id: str
    error: str
    error_code: str | None = None


@dataclass(frozen=True)
class SnapshotRunResult:
    """Result of one snapshot run for one tenant and one triggering event."""

    run_id: str
    tenant_id: str
    event_type: SnapshotEventType
    state: RunState
    users_selected: int = 0
    users_processed: int = 0
    snapshots_written: int = 0
    snapshots_removed: int = 0
    error_count: int = 0
    errors: tuple[UserSnapshotError, ...] = field(default_factory=tuple)
    duration_ms: int = 0
    sla_breached: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the task queue (JSON-safe)."""
        return {
            "runId": self.run_id,
            "tenantId": self.tenant_id,
            "eventType": self.event_type.value,
            "state": self.state.value,
            "usersSelected": self.users_selected,
            "usersProcessed": self.users_processed,
            "snapshotsWritten": self.snapshots_written,
            "snapshotsRemoved": self.snapshots_removed,
            "errorCount": self.error_count,
            "errors": [
                {"userId": e.user_id, "error": e.error, "errorCode": e.error_code}
                for e in self.errors
            ],
            "durationMs": self.duration_ms,
            "slaBreached": self.sla_breached,
        }
