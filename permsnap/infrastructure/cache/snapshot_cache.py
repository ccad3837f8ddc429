"""Redis snapshot store: batch writer for runs, point lookups for checks.

Each snapshot is a hash at perm:{tenant}:{user}:{scope_type}:{scope_id|tenant}
with fields userId, scopeType, scopeId, permissions (JSON) and computedAt.
Every upsert or delete goes through a Lua script that leaves the entry
alone when the stored computedAt is newer than the writer's, so two
overlapping runs resolve to the later computation regardless of which
pipeline lands last.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, TypeVar

import redis.asyncio as redis

from permsnap.application.dtos.organization import ScopeRef
from permsnap.application.dtos.snapshot import PermissionSnapshot, SnapshotWrite
from permsnap.core.config import Settings, get_settings
from permsnap.core.constants import (
    SNAPSHOT_FIELD_COMPUTED_AT,
    SNAPSHOT_FIELD_PERMISSIONS,
    SNAPSHOT_FIELD_SCOPE_ID,
    SNAPSHOT_FIELD_SCOPE_TYPE,
    SNAPSHOT_FIELD_USER_ID,
)
from permsnap.domain.enums import ScopeType
from permsnap.domain.exceptions import CacheUnavailableException
from permsnap.infrastructure.cache.keys import (
    parse_snapshot_key,
    snapshot_key,
    tenant_snapshot_pattern,
    user_snapshot_pattern,
)
from permsnap.shared.utils.datetime import from_iso_utc, to_iso_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS[1] snapshot key
# ARGV[1] computedAt of the writer, ARGV[2] ttl seconds (0 = no expiry)
# ARGV[3..] field/value pairs; none means delete
# Returns -1 when a newer entry is stored, else 1 if the key was written
# or removed and 0 for a delete of a missing key.
_GUARDED_WRITE_LUA = """
local current = redis.call('HGET', KEYS[1], 'computedAt')
if current and current > ARGV[1] then
  return -1
end
local existed = redis.call('DEL', KEYS[1])
if #ARGV <= 2 then
  return existed
end
redis.call('HSET', KEYS[1], unpack(ARGV, 3))
local ttl = tonumber(ARGV[2])
if ttl > 0 then
  redis.call('EXPIRE', KEYS[1], ttl)
end
return 1
"""

# Above this many users one tenant-wide SCAN is cheaper than one SCAN per user.
_TENANT_SCAN_THRESHOLD = 50
_SCAN_COUNT = 500


def encode_snapshot(snapshot: PermissionSnapshot) -> dict[str, str]:
    """Hash fields for a snapshot. Permissions are canonical JSON (sorted keys)."""
    return {
        SNAPSHOT_FIELD_USER_ID: snapshot.user_id,
        SNAPSHOT_FIELD_SCOPE_TYPE: snapshot.scope_type.value,
        SNAPSHOT_FIELD_SCOPE_ID: snapshot.scope_id or "",
        SNAPSHOT_FIELD_PERMISSIONS: json.dumps(
            snapshot.permissions, sort_keys=True, separators=(",", ":")
        ),
        SNAPSHOT_FIELD_COMPUTED_AT: to_iso_utc(snapshot.computed_at),
    }


def decode_snapshot(data: dict[str, str]) -> PermissionSnapshot | None:
    """Rebuild a snapshot from hash fields. Returns None for empty or malformed hashes."""
    if not data:
        return None
    try:
        scope_type = ScopeType(data[SNAPSHOT_FIELD_SCOPE_TYPE])
        permissions = json.loads(data[SNAPSHOT_FIELD_PERMISSIONS])
        return PermissionSnapshot(
            user_id=data[SNAPSHOT_FIELD_USER_ID],
            scope_type=scope_type,
            scope_id=data.get(SNAPSHOT_FIELD_SCOPE_ID) or None,
            permissions={r: list(a) for r, a in permissions.items()},
            computed_at=from_iso_utc(data[SNAPSHOT_FIELD_COMPUTED_AT]),
        )
    except (KeyError, ValueError, AttributeError) as e:
        logger.warning("Malformed snapshot hash ignored: %s", e)
        return None


class PermissionSnapshotCache:
    """Async Redis snapshot store.

    Implements ISnapshotBatchWriter and ISnapshotReader. Call connect()
    before use and disconnect() when done. Connection and timeout errors
    trigger one reconnect; if that fails CacheUnavailableException is raised
    so the run fails and the task queue can retry it.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            redis_client: Optional Redis client for testing or DI.
            settings: Optional settings; defaults to get_settings().
        """
        self.redis = redis_client
        self.settings = settings or get_settings()
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish the Redis connection."""
        if self._connected:
            return
        if self.redis is None:
            try:
                self.redis = redis.Redis(
                    host=self.settings.redis_host,
                    port=self.settings.redis_port,
                    db=self.settings.redis_db,
                    password=self.settings.redis_password.get_secret_value()
                    if self.settings.redis_password
                    else None,
                    decode_responses=True,
                    socket_connect_timeout=self.settings.redis_socket_timeout,
                    socket_timeout=self.settings.redis_socket_timeout,
                    socket_keepalive=True,
                )
                await self.redis.ping()
                self._connected = True
                logger.info(
                    "Snapshot cache connected: %s:%s",
                    self.settings.redis_host,
                    self.settings.redis_port,
                )
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("Snapshot cache connection failed: %s", e)
                self._connected = False
                self.redis = None

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Snapshot cache disconnected")

    async def _reconnect(self) -> bool:
        """Drop the current client and connect again. Returns True if reconnected."""
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except redis.RedisError as e:
                logger.debug("Ignoring error while closing stale client: %s", e)
        self.redis = None
        self._connected = False
        await self.connect()
        return self._connected

    def is_available(self) -> bool:
        """Return True if Redis is connected and usable."""
        return self._connected and self.redis is not None

    async def _execute(
        self, operation: str, fn: Callable[[redis.Redis], Awaitable[T]]
    ) -> T:
        """Run fn against the client, reconnecting once on connection errors."""
        if not self.is_available() or self.redis is None:
            raise CacheUnavailableException(operation, "not connected")
        try:
            return await fn(self.redis)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("Snapshot cache %s failed (%s); reconnecting", operation, e)
            if await self._reconnect() and self.redis is not None:
                try:
                    return await fn(self.redis)
                except redis.RedisError as retry_error:
                    logger.error(
                        "Snapshot cache %s failed after reconnect: %s", operation, retry_error
                    )
                    raise CacheUnavailableException(operation, str(retry_error)) from retry_error
            raise CacheUnavailableException(operation, str(e)) from e
        except redis.RedisError as e:
            logger.exception("Snapshot cache %s error", operation)
            raise CacheUnavailableException(operation, str(e)) from e

    async def existing_scopes(
        self, tenant_id: str, user_ids: Iterable[str]
    ) -> dict[str, set[ScopeRef]]:
        """Return the scopes holding a stored snapshot, grouped by user id.

        Uses SCAN (never KEYS). Users without stored snapshots map to an
        empty set.
        """
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return {}

        async def _scan(client: redis.Redis) -> dict[str, set[ScopeRef]]:
            found: dict[str, set[ScopeRef]] = {user_id: set() for user_id in wanted}
            if len(wanted) > _TENANT_SCAN_THRESHOLD:
                patterns = [tenant_snapshot_pattern(tenant_id)]
            else:
                patterns = [user_snapshot_pattern(tenant_id, u) for u in wanted]
            for pattern in patterns:
                async for key in client.scan_iter(match=pattern, count=_SCAN_COUNT):
                    parsed = parse_snapshot_key(key)
                    if parsed is None or parsed[0] != tenant_id:
                        continue
                    scopes = found.get(parsed[1])
                    if scopes is not None:
                        scopes.add(ScopeRef(parsed[2], parsed[3]))
            return found

        return await self._execute("existing_scopes", _scan)

    async def write_batch(self, operations: Sequence[SnapshotWrite]) -> tuple[int, int]:
        """Apply upserts and deletions in one pipeline round trip.

        Args:
            operations: Snapshot writes; deletes have snapshot=None.

        Returns:
            (written, removed). Operations skipped because a newer entry is
            stored count as neither.
        """
        if not operations:
            return 0, 0
        ttl = max(self.settings.snapshot_ttl_seconds, 0)

        async def _write(client: redis.Redis) -> list[Any]:
            script = client.register_script(_GUARDED_WRITE_LUA)
            async with client.pipeline(transaction=False) as pipe:
                for op in operations:
                    args: list[Any] = [to_iso_utc(op.computed_at), ttl]
                    if op.snapshot is not None:
                        for field, value in encode_snapshot(op.snapshot).items():
                            args.extend((field, value))
                    key = snapshot_key(
                        op.tenant_id, op.user_id, op.scope.scope_type, op.scope.scope_id
                    )
                    await script(keys=[key], args=args, client=pipe)
                return await pipe.execute()

        results = await self._execute("write_batch", _write)
        written = removed = skipped = 0
        for op, result in zip(operations, results, strict=True):
            outcome = int(result)
            if outcome < 0:
                skipped += 1
            elif op.is_delete:
                removed += outcome
            else:
                written += 1
        if skipped:
            logger.info(
                "Snapshot batch kept %d newer entries written by an overlapping run",
                skipped,
            )
        logger.debug(
            "Snapshot batch applied: %d written, %d removed, %d skipped",
            written,
            removed,
            skipped,
        )
        return written, removed

    async def get_snapshot(
        self,
        tenant_id: str,
        user_id: str,
        scope_type: ScopeType,
        scope_id: str | None = None,
    ) -> PermissionSnapshot | None:
        """Return the stored snapshot for one user and scope, or None."""
        key = snapshot_key(tenant_id, user_id, scope_type, scope_id)

        async def _get(client: redis.Redis) -> dict[str, str]:
            return await client.hgetall(key)

        data = await self._execute("get_snapshot", _get)
        snapshot = decode_snapshot(data)
        logger.debug("Snapshot %s: %s", "HIT" if snapshot else "MISS", key)
        return snapshot

    async def delete_user_snapshots(self, tenant_id: str, user_id: str) -> int:
        """Delete every snapshot of one user (SCAN + UNLINK). Returns keys removed."""
        pattern = user_snapshot_pattern(tenant_id, user_id)

        async def _delete(client: redis.Redis) -> int:
            keys = [k async for k in client.scan_iter(match=pattern, count=_SCAN_COUNT)]
            if not keys:
                return 0
            return int(await client.unlink(*keys))

        deleted = await self._execute("delete_user_snapshots", _delete)
        logger.info(
            "Deleted %d snapshots for user %s in tenant %s", deleted, user_id, tenant_id
        )
        return deleted
