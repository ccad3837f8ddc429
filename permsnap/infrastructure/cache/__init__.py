"""Cache: Redis snapshot store and key utilities.

PermissionSnapshotCache is the batch writer used by snapshot runs and the
point-lookup reader used by the permission checker. Key format lives in
keys.py (DRY).
"""

from permsnap.infrastructure.cache.keys import (
    parse_snapshot_key,
    progress_channel,
    snapshot_key,
    tenant_snapshot_pattern,
    user_snapshot_pattern,
)
from permsnap.infrastructure.cache.snapshot_cache import (
    PermissionSnapshotCache,
    decode_snapshot,
    encode_snapshot,
)

__all__ = [
    "PermissionSnapshotCache",
    "decode_snapshot",
    "encode_snapshot",
    "parse_snapshot_key",
    "progress_channel",
    "snapshot_key",
    "tenant_snapshot_pattern",
    "user_snapshot_pattern",
]
