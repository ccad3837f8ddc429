"""Task-queue entry point for permission snapshot jobs.

Wiring only: validate the payload, open the store/cache/progress
resources, run one RunPermissionSnapshotUseCase, release resources. The
queue retries the whole job when this raises.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from permsnap.application.dtos.snapshot import SnapshotRunResult
from permsnap.application.interfaces.repositories import IPermissionSourceRepository
from permsnap.application.interfaces.services import IProgressReporter, ISnapshotBatchWriter
from permsnap.application.use_cases.run_permission_snapshot import (
    RunPermissionSnapshotUseCase,
)
from permsnap.core.config import Settings, get_settings
from permsnap.domain.exceptions import CacheUnavailableException
from permsnap.infrastructure.cache.snapshot_cache import PermissionSnapshotCache
from permsnap.infrastructure.messaging.progress import RedisProgressPublisher
from permsnap.infrastructure.persistence import database
from permsnap.infrastructure.persistence.repositories import PermissionSourceRepository
from permsnap.schemas.permission_job import PermissionJobPayload
from permsnap.shared.telemetry.telemetry import setup_telemetry_from_settings

logger = logging.getLogger(__name__)


@dataclass
class WorkerResources:
    """Connected adapters shared by the jobs of one worker context."""

    source_repo: PermissionSourceRepository
    cache: PermissionSnapshotCache
    publisher: RedisProgressPublisher


@asynccontextmanager
async def worker_resources(settings: Settings | None = None) -> AsyncIterator[WorkerResources]:
    """Open store, cache and progress publisher; close them on exit.

    Raises:
        StoreUnavailableException: DATABASE_URL is not configured.
        CacheUnavailableException: Redis could not be reached.
    """
    settings = settings or get_settings()
    setup_telemetry_from_settings(settings)
    source_repo = PermissionSourceRepository(database.get_session_factory())
    cache = PermissionSnapshotCache(settings=settings)
    publisher = RedisProgressPublisher(settings=settings)
    await cache.connect()
    try:
        if not cache.is_available():
            raise CacheUnavailableException("connect", "Redis connection failed")
        await publisher.connect()
        yield WorkerResources(source_repo=source_repo, cache=cache, publisher=publisher)
    finally:
        await publisher.disconnect()
        await cache.disconnect()


async def run_permission_job(
    payload: PermissionJobPayload,
    *,
    source_repo: IPermissionSourceRepository,
    writer: ISnapshotBatchWriter,
    progress: IProgressReporter | None = None,
    settings: Settings | None = None,
) -> SnapshotRunResult:
    """Run one snapshot job against already-open adapters."""
    settings = settings or get_settings()
    use_case = RunPermissionSnapshotUseCase(
        source_repo,
        writer,
        progress,
        sla_seconds=settings.snapshot_sla_seconds,
        write_batch_size=settings.snapshot_write_batch_size,
        max_concurrency=settings.snapshot_max_concurrency,
    )
    return await use_case.run(payload)


async def process_permission_job(payload: dict[str, Any]) -> dict[str, Any]:
    """Task-queue handler: validate, run, and return the run result as a dict.

    Args:
        payload: Raw job payload (camelCase keys, as enqueued by producers).

    Returns:
        SnapshotRunResult.to_dict().

    Raises:
        pydantic.ValidationError: Payload is malformed.
        PermsnapException: The run failed (store/cache unavailable, cancelled).
    """
    job = PermissionJobPayload.model_validate(payload)
    settings = get_settings()
    logger.info(
        "Processing permission job %s for tenant %s",
        job.event_type.value,
        job.tenant_id,
    )
    async with worker_resources(settings) as resources:
        result = await run_permission_job(
            job,
            source_repo=resources.source_repo,
            writer=resources.cache,
            progress=resources.publisher,
            settings=settings,
        )
    return result.to_dict()
