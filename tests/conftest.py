"""Pytest configuration and fixtures for permsnap.

Unit tests run against in-memory implementations of the store and cache
ports; nothing here needs Postgres or Redis. All imports use permsnap.*.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

import pytest

from permsnap.application.dtos.assignment import RoleAssignment
from permsnap.application.dtos.organization import ScopeRef, SubsidiaryRecord, TalentRecord
from permsnap.application.dtos.policy import RolePolicyRow
from permsnap.application.dtos.snapshot import PermissionSnapshot, SnapshotWrite
from permsnap.core.config import get_settings
from permsnap.domain.enums import LinkEffect, PolicyEffect, ScopeType
from permsnap.shared.utils.datetime import utc_now

TENANT_ID = "tenant-1"


class InMemoryPermissionSource:
    """IPermissionSourceRepository over plain lists, with failure injection.

    fail_on maps a method name to the exception it raises; failing_users
    maps a user id to the exception get_user_assignments raises for it.
    """

    def __init__(self) -> None:
        self.subsidiaries: list[SubsidiaryRecord] = []
        self.talents: list[TalentRecord] = []
        self.rows: list[RolePolicyRow] = []
        self.users: list[str] = []
        self.assignments: list[RoleAssignment] = []
        self.fail_on: dict[str, Exception] = {}
        self.failing_users: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def add_subsidiary(self, sub_id: str, parent_id: str | None = None) -> None:
        self.subsidiaries.append(SubsidiaryRecord(id=sub_id, parent_id=parent_id))

    def add_talent(self, talent_id: str, subsidiary_id: str | None = None) -> None:
        self.talents.append(TalentRecord(id=talent_id, subsidiary_id=subsidiary_id))

    def add_role(
        self,
        role_id: str,
        grants: dict[str, list[str]] | None = None,
        denies: dict[str, list[str]] | None = None,
    ) -> None:
        for resource, actions in (grants or {}).items():
            for action in actions:
                self.rows.append(
                    RolePolicyRow(
                        role_id=role_id,
                        role_code=role_id,
                        resource_code=resource,
                        action=action,
                        policy_effect=PolicyEffect.ALLOW,
                        link_effect=LinkEffect.GRANT,
                    )
                )
        for resource, actions in (denies or {}).items():
            for action in actions:
                self.rows.append(
                    RolePolicyRow(
                        role_id=role_id,
                        role_code=role_id,
                        resource_code=resource,
                        action=action,
                        policy_effect=PolicyEffect.ALLOW,
                        link_effect=LinkEffect.DENY,
                    )
                )

    def assign(
        self,
        user_id: str,
        role_id: str,
        scope_type: ScopeType = ScopeType.TENANT,
        scope_id: str | None = None,
        inherit: bool = False,
        expires_at: datetime | None = None,
    ) -> None:
        if user_id not in self.users:
            self.users.append(user_id)
        self.assignments.append(
            RoleAssignment(
                user_id=user_id,
                role_id=role_id,
                scope_type=scope_type,
                scope_id=scope_id,
                inherit=inherit,
                expires_at=expires_at,
            )
        )

    def _live(self) -> list[RoleAssignment]:
        now = utc_now()
        return [a for a in self.assignments if not a.is_expired(now)]

    async def get_active_subsidiaries(self, tenant_id: str) -> list[SubsidiaryRecord]:
        self._record("get_active_subsidiaries")
        return list(self.subsidiaries)

    async def get_active_talents(self, tenant_id: str) -> list[TalentRecord]:
        self._record("get_active_talents")
        return list(self.talents)

    async def get_role_policy_rows(self, tenant_id: str) -> list[RolePolicyRow]:
        self._record("get_role_policy_rows")
        return list(self.rows)

    async def get_active_user_ids(self, tenant_id: str) -> list[str]:
        self._record("get_active_user_ids")
        return sorted(self.users)

    async def get_user_ids_by_scopes(
        self, tenant_id: str, scope_ids: Iterable[str]
    ) -> list[str]:
        self._record("get_user_ids_by_scopes")
        wanted = set(scope_ids)
        return sorted({a.user_id for a in self._live() if a.scope_id in wanted})

    async def get_user_ids_by_roles(
        self, tenant_id: str, role_ids: Iterable[str]
    ) -> list[str]:
        self._record("get_user_ids_by_roles")
        wanted = set(role_ids)
        return sorted({a.user_id for a in self._live() if a.role_id in wanted})

    async def get_user_assignments(
        self, tenant_id: str, user_id: str
    ) -> list[RoleAssignment]:
        self._record("get_user_assignments")
        if user_id in self.failing_users:
            raise self.failing_users[user_id]
        return [a for a in self.assignments if a.user_id == user_id]


class InMemorySnapshotStore:
    """ISnapshotBatchWriter and ISnapshotReader over a dict, recording batch sizes."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str, ScopeRef], PermissionSnapshot] = {}
        self.batch_sizes: list[int] = []
        self.fail_with: Exception | None = None

    def put(self, tenant_id: str, snapshot: PermissionSnapshot) -> None:
        self.entries[(tenant_id, snapshot.user_id, snapshot.scope)] = snapshot

    def get(
        self,
        user_id: str,
        scope_type: ScopeType = ScopeType.TENANT,
        scope_id: str | None = None,
        tenant_id: str = TENANT_ID,
    ) -> PermissionSnapshot | None:
        return self.entries.get((tenant_id, user_id, ScopeRef(scope_type, scope_id)))

    def scopes_of(self, user_id: str, tenant_id: str = TENANT_ID) -> set[ScopeRef]:
        return {scope for (t, u, scope) in self.entries if t == tenant_id and u == user_id}

    async def existing_scopes(
        self, tenant_id: str, user_ids: Iterable[str]
    ) -> dict[str, set[ScopeRef]]:
        if self.fail_with is not None:
            raise self.fail_with
        return {user_id: self.scopes_of(user_id, tenant_id) for user_id in user_ids}

    async def write_batch(self, operations: Sequence[SnapshotWrite]) -> tuple[int, int]:
        if self.fail_with is not None:
            raise self.fail_with
        self.batch_sizes.append(len(operations))
        written = removed = 0
        for op in operations:
            key = (op.tenant_id, op.user_id, op.scope)
            current = self.entries.get(key)
            if current is not None and current.computed_at > op.computed_at:
                continue
            if op.snapshot is None:
                if self.entries.pop(key, None) is not None:
                    removed += 1
            else:
                self.entries[key] = op.snapshot
                written += 1
        return written, removed

    async def get_snapshot(
        self,
        tenant_id: str,
        user_id: str,
        scope_type: ScopeType,
        scope_id: str | None = None,
    ) -> PermissionSnapshot | None:
        return self.get(user_id, scope_type, scope_id, tenant_id)


class RecordingProgress:
    """IProgressReporter that keeps every reported percentage."""

    def __init__(self) -> None:
        self.reports: list[int] = []

    async def report(self, tenant_id: str, run_id: str, percent: int) -> None:
        self.reports.append(percent)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Clear the settings cache so env changes in one test do not leak into another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def source_repo() -> InMemoryPermissionSource:
    return InMemoryPermissionSource()


@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()
