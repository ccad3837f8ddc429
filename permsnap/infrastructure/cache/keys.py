"""Snapshot cache key builders. Single place for the key format (DRY).

Key shape (read by the authorization middleware, must not change):
    perm:{tenant_id}:{user_id}:{scope_type}:{scope_id|"tenant"}

Key components must not contain CACHE_KEY_SEP to avoid ambiguous or
colliding keys.
"""

from permsnap.core.constants import (
    CACHE_KEY_SEP,
    CACHE_PREFIX_PERMISSION,
    PROGRESS_CHANNEL_PREFIX,
    TENANT_SCOPE_KEY,
)
from permsnap.domain.enums import ScopeType

_GLOB_SPECIAL = "*?[]\\"


def _validate_key_component(value: str, name: str) -> None:
    """Raise ValueError if value is empty or contains the cache key separator."""
    if not value:
        raise ValueError(f"Cache key component {name!r} must not be empty")
    if CACHE_KEY_SEP in value:
        raise ValueError(
            f"Cache key component {name!r} must not contain separator {CACHE_KEY_SEP!r}"
        )


def _escape_glob(value: str) -> str:
    """Escape Redis SCAN MATCH metacharacters so ids are matched literally."""
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in value)


def snapshot_key(
    tenant_id: str, user_id: str, scope_type: ScopeType, scope_id: str | None
) -> str:
    """Cache key for one user's snapshot at one scope."""
    _validate_key_component(tenant_id, "tenant_id")
    _validate_key_component(user_id, "user_id")
    if scope_type == ScopeType.TENANT:
        scope_part = TENANT_SCOPE_KEY
    else:
        if scope_id is None:
            raise ValueError(f"scope_id is required for {scope_type.value} scope")
        _validate_key_component(scope_id, "scope_id")
        scope_part = scope_id
    return CACHE_KEY_SEP.join(
        (CACHE_PREFIX_PERMISSION, tenant_id, user_id, scope_type.value, scope_part)
    )


def user_snapshot_pattern(tenant_id: str, user_id: str) -> str:
    """SCAN pattern matching every snapshot of one user in one tenant."""
    _validate_key_component(tenant_id, "tenant_id")
    _validate_key_component(user_id, "user_id")
    return CACHE_KEY_SEP.join(
        (CACHE_PREFIX_PERMISSION, _escape_glob(tenant_id), _escape_glob(user_id), "*")
    )


def tenant_snapshot_pattern(tenant_id: str) -> str:
    """SCAN pattern matching every snapshot in one tenant."""
    _validate_key_component(tenant_id, "tenant_id")
    return CACHE_KEY_SEP.join((CACHE_PREFIX_PERMISSION, _escape_glob(tenant_id), "*"))


def parse_snapshot_key(key: str) -> tuple[str, str, ScopeType, str | None] | None:
    """Split a snapshot key into (tenant_id, user_id, scope_type, scope_id).

    Returns None for keys that do not have the snapshot shape.
    """
    parts = key.split(CACHE_KEY_SEP)
    if len(parts) != 5 or parts[0] != CACHE_PREFIX_PERMISSION:
        return None
    _, tenant_id, user_id, scope_type_raw, scope_part = parts
    try:
        scope_type = ScopeType(scope_type_raw)
    except ValueError:
        return None
    scope_id = None if scope_type == ScopeType.TENANT else scope_part
    return tenant_id, user_id, scope_type, scope_id


def progress_channel(tenant_id: str) -> str:
    """Pub/sub channel for snapshot run progress of one tenant."""
    _validate_key_component(tenant_id, "tenant_id")
    return f"{PROGRESS_CHANNEL_PREFIX}{CACHE_KEY_SEP}{tenant_id}"
