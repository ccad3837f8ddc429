"""Refresh permission snapshots: run a FULL_REFRESH snapshot job per tenant.

Usage:
    python -m scripts.refresh_permission_snapshots [tenant_id]
If tenant_id is omitted, processes all active tenants.
Requires Postgres (DATABASE_URL) and Redis.
"""

import asyncio
import sys

from pydantic import ValidationError

from permsnap.core.config import get_settings
from permsnap.domain.enums import SnapshotEventType
from permsnap.domain.exceptions import PermsnapException
from permsnap.infrastructure.persistence import database
from permsnap.schemas.permission_job import PermissionJobPayload
from permsnap.shared.telemetry.logging import setup_logging
from permsnap.shared.telemetry.telemetry import shutdown_telemetry
from permsnap.worker import run_permission_job, worker_resources


def _full_refresh_payload(tenant_id: str) -> PermissionJobPayload:
    return PermissionJobPayload(
        event_type=SnapshotEventType.FULL_REFRESH,
        tenant_id=tenant_id,
        triggered_by="cli",
    )


async def main() -> None:
    """For each tenant, recompute every active user's snapshots."""
    tenant_filter = sys.argv[1] if len(sys.argv) > 1 else None
    if tenant_filter is not None:
        try:
            _full_refresh_payload(tenant_filter)
        except ValidationError:
            print(f"Invalid tenant id: {tenant_filter!r}", file=sys.stderr)
            sys.exit(1)
    setup_logging()
    settings = get_settings()
    if not settings.database_url:
        print("DATABASE_URL not configured", file=sys.stderr)
        sys.exit(1)

    failures = 0
    try:
        async with worker_resources(settings) as resources:
            if tenant_filter:
                tenant_ids = [tenant_filter]
            else:
                tenant_ids = await resources.source_repo.get_active_tenant_ids()

            for tenant_id in tenant_ids:
                try:
                    result = await run_permission_job(
                        _full_refresh_payload(tenant_id),
                        source_repo=resources.source_repo,
                        writer=resources.cache,
                        progress=resources.publisher,
                        settings=settings,
                    )
                except PermsnapException as e:
                    failures += 1
                    print(f"Tenant {tenant_id}: failed ({e.error_code}: {e.message})", file=sys.stderr)
                    continue
                except ValidationError:
                    failures += 1
                    print(f"Tenant {tenant_id}: failed (invalid tenant id)", file=sys.stderr)
                    continue
                sla_note = " (SLA breached)" if result.sla_breached else ""
                print(
                    f"Tenant {tenant_id}: {result.users_processed}/{result.users_selected} users, "
                    f"{result.snapshots_written} written, {result.snapshots_removed} removed, "
                    f"{result.error_count} error(s) in {result.duration_ms}ms{sla_note}"
                )
    except PermsnapException as e:
        print(f"Cannot start: {e.message}", file=sys.stderr)
        sys.exit(1)
    finally:
        await database.dispose_engine()
        shutdown_telemetry()

    print(f"Done. Tenants failed: {failures}")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
