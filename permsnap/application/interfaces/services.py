"""Service interfaces (ports) for the application layer.

Protocols for the snapshot cache (batch writer + read path) and the
progress side channel, so the orchestrator depends only on contracts.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from permsnap.application.dtos.organization import ScopeRef
    from permsnap.application.dtos.snapshot import PermissionSnapshot, SnapshotWrite
    from permsnap.domain.enums import ScopeType


class ISnapshotBatchWriter(Protocol):
    """Writes snapshot operations to the cache, one round trip per batch."""

    async def existing_scopes(
        self, tenant_id: str, user_ids: Iterable[str]
    ) -> dict[str, set[ScopeRef]]:
        """Return the scopes that currently hold a snapshot, grouped by user id."""

    async def write_batch(self, operations: Sequence[SnapshotWrite]) -> tuple[int, int]:
        """Apply upserts and deletions in one pipeline. Returns (written, removed).

        No atomicity across operations is assumed. Raises
        CacheUnavailableException when the cache cannot be reached.
        """


class ISnapshotReader(Protocol):
    """Point lookups on the snapshot key shape."""

    async def get_snapshot(
        self,
        tenant_id: str,
        user_id: str,
        scope_type: ScopeType,
        scope_id: str | None = None,
    ) -> PermissionSnapshot | None:
        """Return the stored snapshot or None when absent."""


class IProgressReporter(Protocol):
    """Side channel for run progress (0-100). Must not raise."""

    async def report(self, tenant_id: str, run_id: str, percent: int) -> None:
        """Publish the current progress of a run."""
