"""Snapshot cache against an in-process Redis (fakeredis with Lua).

Runs the real guarded-write script: last write wins by computedAt,
deletes on empty field lists, TTL on every entry.
"""

from datetime import UTC, datetime, timedelta

import fakeredis
import pytest

from permsnap.application.dtos.organization import ScopeRef
from permsnap.application.dtos.snapshot import PermissionSnapshot, SnapshotWrite
from permsnap.application.use_cases.run_permission_snapshot import (
    RunPermissionSnapshotUseCase,
)
from permsnap.core.config import Settings
from permsnap.domain.enums import ScopeType, SnapshotEventType
from permsnap.infrastructure.cache.snapshot_cache import PermissionSnapshotCache
from permsnap.schemas.permission_job import PermissionJobPayload

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
SUB_A = ScopeRef(ScopeType.SUBSIDIARY, "A")
KEY = "perm:t1:U1:subsidiary:A"


def _upsert(computed_at: datetime, actions: list[str]) -> SnapshotWrite:
    snapshot = PermissionSnapshot(
        user_id="U1",
        scope_type=ScopeType.SUBSIDIARY,
        scope_id="A",
        permissions={"doc": actions},
        computed_at=computed_at,
    )
    return SnapshotWrite("t1", "U1", SUB_A, computed_at, snapshot)


def _delete(computed_at: datetime) -> SnapshotWrite:
    return SnapshotWrite("t1", "U1", SUB_A, computed_at)


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def cache(redis_client) -> PermissionSnapshotCache:
    return PermissionSnapshotCache(
        redis_client=redis_client, settings=Settings(snapshot_ttl_seconds=100)
    )


async def test_upsert_writes_hash_with_ttl(cache, redis_client) -> None:
    assert await cache.write_batch([_upsert(T0, ["read"])]) == (1, 0)

    stored = await redis_client.hgetall(KEY)
    assert stored["userId"] == "U1"
    assert stored["scopeType"] == "subsidiary"
    assert stored["scopeId"] == "A"
    assert stored["permissions"] == '{"doc":["read"]}'
    assert 0 < await redis_client.ttl(KEY) <= 100


async def test_older_writes_leave_newer_entry_untouched(cache, redis_client) -> None:
    await cache.write_batch([_upsert(T0, ["read"])])
    older = T0 - timedelta(seconds=5)

    assert await cache.write_batch([_upsert(older, ["write"])]) == (0, 0)
    assert await cache.write_batch([_delete(older)]) == (0, 0)

    snapshot = await cache.get_snapshot("t1", "U1", ScopeType.SUBSIDIARY, "A")
    assert snapshot is not None
    assert snapshot.permissions == {"doc": ["read"]}
    assert snapshot.computed_at == T0


async def test_newer_delete_removes_entry(cache, redis_client) -> None:
    await cache.write_batch([_upsert(T0, ["read"])])

    assert await cache.write_batch([_delete(T0 + timedelta(microseconds=1))]) == (0, 1)
    assert await redis_client.exists(KEY) == 0
    assert await cache.write_batch([_delete(T0 + timedelta(seconds=1))]) == (0, 0)


async def test_newer_upsert_replaces_fields(cache, redis_client) -> None:
    await cache.write_batch([_upsert(T0, ["read", "write"])])

    assert await cache.write_batch([_upsert(T0 + timedelta(seconds=1), ["read"])]) == (1, 0)

    snapshot = await cache.get_snapshot("t1", "U1", ScopeType.SUBSIDIARY, "A")
    assert snapshot.permissions == {"doc": ["read"]}


async def test_zero_ttl_leaves_entry_without_expiry(redis_client) -> None:
    cache = PermissionSnapshotCache(
        redis_client=redis_client, settings=Settings(snapshot_ttl_seconds=0)
    )

    await cache.write_batch([_upsert(T0, ["read"])])

    assert await redis_client.ttl(KEY) == -1


async def test_full_run_writes_and_revokes_snapshot_keys(cache, redis_client, source_repo) -> None:
    """Inherited subsidiary grant reaches the talent; dropping it removes every key."""
    source_repo.add_subsidiary("A")
    source_repo.add_talent("T", subsidiary_id="A")
    source_repo.add_role("viewer", grants={"doc": ["read"]})
    source_repo.assign("U2", "viewer", ScopeType.SUBSIDIARY, "A", inherit=True)
    payload = PermissionJobPayload(
        event_type=SnapshotEventType.FULL_REFRESH, tenant_id="t1"
    )

    result = await RunPermissionSnapshotUseCase(source_repo, cache).run(payload)

    assert result.snapshots_written == 2
    keys = sorted([k async for k in redis_client.scan_iter(match="perm:t1:*")])
    assert keys == ["perm:t1:U2:subsidiary:A", "perm:t1:U2:talent:T"]

    source_repo.assignments.clear()
    rerun = await RunPermissionSnapshotUseCase(source_repo, cache).run(payload)

    assert rerun.snapshots_removed == 2
    assert [k async for k in redis_client.scan_iter(match="perm:t1:*")] == []