"""Messaging: Redis pub/sub progress publisher for snapshot runs."""

from permsnap.infrastructure.messaging.progress import (
    RedisProgressPublisher,
    SnapshotProgressEvent,
)

__all__ = ["RedisProgressPublisher", "SnapshotProgressEvent"]
