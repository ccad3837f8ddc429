"""Application use cases: one entry point per workflow."""

from permsnap.application.use_cases.run_permission_snapshot import (
    RunPermissionSnapshotUseCase,
)

__all__ = ["RunPermissionSnapshotUseCase"]
