"""Redis Pub/Sub for snapshot run progress.

Publishes run progress (0-100) per tenant so admin UIs can follow a
refresh. Publishing is best effort: failures are logged and never fail
the run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

import redis.asyncio as redis

from permsnap.core.config import Settings, get_settings
from permsnap.infrastructure.cache.keys import progress_channel
from permsnap.shared.utils.datetime import to_iso_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotProgressEvent:
    """Progress payload published for a run."""

    run_id: str
    tenant_id: str
    percent: int
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON publish (camelCase, like the job payload)."""
        data = asdict(self)
        return {
            "runId": data["run_id"],
            "tenantId": data["tenant_id"],
            "percent": data["percent"],
            "timestamp": data["timestamp"],
        }


class RedisProgressPublisher:
    """Publishes snapshot progress to the tenant's permission_progress channel.

    Implements IProgressReporter.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize. Pass redis_client for DI/testing."""
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
                )
                await self.redis.ping()
                self._connected = True
                logger.info("Progress publisher connected")
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("Progress publisher connection failed: %s", e)
                self._connected = False
                self.redis = None

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self._connected = False
            logger.info("Progress publisher disconnected")

    def is_available(self) -> bool:
        """Return True if Redis is connected."""
        return self._connected and self.redis is not None

    async def publish(self, event: SnapshotProgressEvent) -> bool:
        """Publish a progress event. Returns False when it could not be sent."""
        if not self.is_available() or self.redis is None:
            logger.debug("Redis not available, skipping progress publish")
            return False
        try:
            channel = progress_channel(event.tenant_id)
            await self.redis.publish(channel, json.dumps(event.to_dict()))
            logger.debug(
                "Published progress to %s: run %s at %d%%",
                channel,
                event.run_id,
                event.percent,
            )
        except Exception:
            logger.exception("Failed to publish snapshot progress")
            return False
        else:
            return True

    async def report(self, tenant_id: str, run_id: str, percent: int) -> None:
        """IProgressReporter: publish and ignore the outcome."""
        await self.publish(
            SnapshotProgressEvent(
                run_id=run_id,
                tenant_id=tenant_id,
                percent=percent,
                timestamp=to_iso_utc(utc_now()),
            )
        )
