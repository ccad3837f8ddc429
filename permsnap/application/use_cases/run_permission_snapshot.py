"""Run a permission snapshot job: recompute and store snapshots for one tenant and one trigger."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from typing import TYPE_CHECKING

from permsnap.application.dtos.organization import ScopeRef
from permsnap.application.dtos.snapshot import (
    PermissionSnapshot,
    SnapshotRunResult,
    SnapshotWrite,
    UserSnapshotError,
)
from permsnap.application.services.assignment_resolver import RoleAssignmentResolver
from permsnap.application.services.inheritance import InheritanceExpander
from permsnap.application.services.organization_tree import build_organization_tree
from permsnap.application.services.policy_index import PolicyIndex
from permsnap.application.services.snapshot_aggregator import build_snapshot
from permsnap.core.constants import (
    CACHE_KEY_SEP,
    DEFAULT_SNAPSHOT_BATCH_SIZE,
    DEFAULT_SNAPSHOT_MAX_CONCURRENCY,
    DEFAULT_SNAPSHOT_SLA_SECONDS,
    MAX_RECORDED_USER_ERRORS,
)
from permsnap.domain.enums import RunState
from permsnap.domain.exceptions import (
    InvalidRunStateException,
    PermsnapException,
    RunCancelledException,
)
from permsnap.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from permsnap.shared.utils.datetime import to_iso_utc, utc_now
from permsnap.shared.utils.generators import generate_cuid

if TYPE_CHECKING:
    from datetime import datetime

    from permsnap.application.interfaces.repositories import IPermissionSourceRepository
    from permsnap.application.interfaces.services import (
        IProgressReporter,
        ISnapshotBatchWriter,
    )
    from permsnap.application.services.organization_tree import OrganizationTree
    from permsnap.schemas.permission_job import PermissionJobPayload

logger = logging.getLogger(__name__)

_NEXT_STATES: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.RESOLVING}),
    RunState.RESOLVING: frozenset({RunState.BUILDING, RunState.DONE}),
    RunState.BUILDING: frozenset({RunState.PER_USER_LOOP}),
    RunState.PER_USER_LOOP: frozenset({RunState.WRITING}),
    RunState.WRITING: frozenset({RunState.DONE}),
}


def _scope_sort_key(scope: ScopeRef) -> tuple[str, str]:
    return scope.scope_type.value, scope.scope_id or ""


def _check_key_component(value: str, name: str) -> None:
    if not value or CACHE_KEY_SEP in value:
        raise ValueError(f"{name} {value!r} cannot be used in a snapshot key")


def _run_span_attributes(
    use_case: RunPermissionSnapshotUseCase, trigger: PermissionJobPayload
) -> dict[str, str]:
    return {
        "run_id": use_case.run_id,
        "tenant_id": trigger.tenant_id,
        "event_type": trigger.event_type.value,
        "triggered_by": trigger.triggered_by,
    }


def _chunks(items: Sequence[SnapshotWrite], size: int) -> Iterator[Sequence[SnapshotWrite]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class RunPermissionSnapshotUseCase:
    """Drives one snapshot run for one tenant and one triggering event.

    One instance per job. States move idle -> resolving -> building ->
    per_user_loop -> writing -> done, or to failed from any of them. The
    org tree and policy index are built once and shared read-only by the
    per-user tasks, which run under a semaphore. A failing user is
    recorded and skipped; a failing resolve, build or write fails the run
    and re-raises so the task queue can retry it.
    """

    def __init__(
        self,
        source_repo: IPermissionSourceRepository,
        writer: ISnapshotBatchWriter,
        progress: IProgressReporter | None = None,
        *,
        resolver: RoleAssignmentResolver | None = None,
        sla_seconds: float = DEFAULT_SNAPSHOT_SLA_SECONDS,
        write_batch_size: int = DEFAULT_SNAPSHOT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_SNAPSHOT_MAX_CONCURRENCY,
        run_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if write_batch_size < 1:
            raise ValueError("write_batch_size must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._source_repo = source_repo
        self._writer = writer
        self._progress = progress
        self._resolver = resolver or RoleAssignmentResolver(source_repo)
        self._sla_seconds = sla_seconds
        self._write_batch_size = write_batch_size
        self._max_concurrency = max_concurrency
        self._clock = clock
        self._cancel_event = asyncio.Event()
        self._last_percent = -1
        self.run_id = run_id or generate_cuid()
        self.state = RunState.IDLE

    def cancel(self) -> None:
        """Request cooperative cancellation; honoured before the next user starts."""
        self._cancel_event.set()
        logger.info("Cancellation requested for snapshot run %s", self.run_id)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _transition(self, new_state: RunState) -> None:
        allowed = _NEXT_STATES.get(self.state, frozenset())
        if new_state != RunState.FAILED and new_state not in allowed:
            raise InvalidRunStateException(self.run_id, self.state.value, new_state.value)
        if new_state == RunState.FAILED and self.state.is_terminal:
            raise InvalidRunStateException(self.run_id, self.state.value, new_state.value)
        logger.debug("Snapshot run %s: %s -> %s", self.run_id, self.state.value, new_state.value)
        self.state = new_state

    async def _report(self, tenant_id: str, percent: int) -> None:
        if self._progress is None or percent == self._last_percent:
            return
        self._last_percent = percent
        try:
            await self._progress.report(tenant_id, self.run_id, percent)
        except Exception:
            logger.warning(
                "Progress report failed for snapshot run %s", self.run_id, exc_info=True
            )

    @traced("permsnap.run_permission_snapshot", span_attributes=_run_span_attributes)
    async def run(self, trigger: PermissionJobPayload) -> SnapshotRunResult:
        """Execute the run.

        Args:
            trigger: Validated job payload (tenant, event type, selectors).

        Returns:
            SnapshotRunResult in state done. Per-user failures are listed
            in errors (capped, error_count is exact).

        Raises:
            StoreUnavailableException: Store unreachable while resolving or building.
            CacheUnavailableException: Cache unreachable while writing.
            RunCancelledException: cancel() was called before all users ran.
            InvalidRunStateException: The instance was already run.
        """
        if self.state != RunState.IDLE:
            raise InvalidRunStateException(
                self.run_id, self.state.value, RunState.RESOLVING.value
            )
        tenant_id = trigger.tenant_id
        started = self._clock()
        computed_at = utc_now()
        logger.info(
            "Snapshot run %s started: tenant=%s event=%s triggered_by=%s",
            self.run_id,
            tenant_id,
            trigger.event_type.value,
            trigger.triggered_by,
        )

        try:
            self._transition(RunState.RESOLVING)
            user_ids = await self._resolver.resolve_user_ids(trigger)
            if not user_ids:
                self._transition(RunState.DONE)
                await self._report(tenant_id, 100)
                logger.info("Snapshot run %s selected no users", self.run_id)
                return SnapshotRunResult(
                    run_id=self.run_id,
                    tenant_id=tenant_id,
                    event_type=trigger.event_type,
                    state=self.state,
                    duration_ms=int((self._clock() - started) * 1000),
                )

            self._transition(RunState.BUILDING)
            tree, policy_index = await self._build(tenant_id)

            self._transition(RunState.PER_USER_LOOP)
            await self._report(tenant_id, 0)
            staged, errors = await self._compute_users(
                tenant_id, user_ids, tree, policy_index, computed_at
            )

            self._transition(RunState.WRITING)
            written, removed = await self._write(tenant_id, staged, computed_at)
        except Exception as e:
            self._transition(RunState.FAILED)
            if isinstance(e, PermsnapException):
                logger.error(
                    "Snapshot run %s failed: %s (%s)", self.run_id, e.message, e.error_code
                )
            else:
                logger.exception("Snapshot run %s failed", self.run_id)
            raise

        duration = self._clock() - started
        sla_breached = duration > self._sla_seconds
        if sla_breached:
            logger.error(
                "Snapshot run %s for tenant %s breached SLA: %.2fs > %.2fs (%d users)",
                self.run_id,
                tenant_id,
                duration,
                self._sla_seconds,
                len(user_ids),
            )
            add_span_event(
                "snapshot.sla_breached",
                {
                    "duration_seconds": duration,
                    "sla_seconds": self._sla_seconds,
                    "users_selected": len(user_ids),
                },
            )

        self._transition(RunState.DONE)
        await self._report(tenant_id, 100)
        result = SnapshotRunResult(
            run_id=self.run_id,
            tenant_id=tenant_id,
            event_type=trigger.event_type,
            state=self.state,
            users_selected=len(user_ids),
            users_processed=len(staged),
            snapshots_written=written,
            snapshots_removed=removed,
            error_count=len(errors),
            errors=tuple(errors[:MAX_RECORDED_USER_ERRORS]),
            duration_ms=int(duration * 1000),
            sla_breached=sla_breached,
        )
        add_span_attributes(
            users_selected=result.users_selected,
            users_processed=result.users_processed,
            snapshots_written=written,
            snapshots_removed=removed,
            error_count=result.error_count,
            duration_ms=result.duration_ms,
        )
        logger.info(
            "Snapshot run %s done: %d/%d users, %d written, %d removed, %d errors in %dms",
            self.run_id,
            result.users_processed,
            result.users_selected,
            written,
            removed,
            result.error_count,
            result.duration_ms,
        )
        return result

    async def _build(self, tenant_id: str) -> tuple[OrganizationTree, PolicyIndex]:
        subsidiaries = await self._source_repo.get_active_subsidiaries(tenant_id)
        talents = await self._source_repo.get_active_talents(tenant_id)
        rows = await self._source_repo.get_role_policy_rows(tenant_id)
        tree = build_organization_tree(tenant_id, subsidiaries, talents)
        policy_index = PolicyIndex.build(rows)
        logger.debug(
            "Snapshot run %s built tree (%d nodes) and policy index (%d roles)",
            self.run_id,
            len(tree),
            len(policy_index),
        )
        return tree, policy_index

    async def _compute_users(
        self,
        tenant_id: str,
        user_ids: list[str],
        tree: OrganizationTree,
        policy_index: PolicyIndex,
        computed_at: datetime,
    ) -> tuple[dict[str, list[PermissionSnapshot]], list[UserSnapshotError]]:
        """Compute every user's snapshots under the concurrency bound.

        Returns staged snapshots of successful users (in selection order)
        and the per-user errors. Raises RunCancelledException if cancel()
        was called before every user started.
        """
        expander = InheritanceExpander(tree)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        total = len(user_ids)
        finished = 0

        async def _one(user_id: str) -> list[PermissionSnapshot] | UserSnapshotError | None:
            nonlocal finished
            async with semaphore:
                if self._cancel_event.is_set():
                    return None
                try:
                    outcome: list[PermissionSnapshot] | UserSnapshotError = (
                        await self._compute_user(
                            tenant_id, user_id, expander, policy_index, computed_at
                        )
                    )
                except Exception as e:
                    logger.warning(
                        "Snapshot run %s: user %s failed: %s",
                        self.run_id,
                        user_id,
                        e,
                        exc_info=True,
                    )
                    outcome = UserSnapshotError(
                        user_id=user_id,
                        error=str(e) or e.__class__.__name__,
                        error_code=e.error_code
                        if isinstance(e, PermsnapException)
                        else e.__class__.__name__,
                    )
                finished += 1
                await self._report(tenant_id, finished * 100 // total)
                return outcome

        outcomes = await asyncio.gather(*(_one(user_id) for user_id in user_ids))

        if self._cancel_event.is_set() and any(o is None for o in outcomes):
            raise RunCancelledException(self.run_id, finished)

        staged: dict[str, list[PermissionSnapshot]] = {}
        errors: list[UserSnapshotError] = []
        for user_id, outcome in zip(user_ids, outcomes, strict=True):
            if isinstance(outcome, UserSnapshotError):
                errors.append(outcome)
            elif outcome is not None:
                staged[user_id] = outcome
        return staged, errors

    async def _compute_user(
        self,
        tenant_id: str,
        user_id: str,
        expander: InheritanceExpander,
        policy_index: PolicyIndex,
        computed_at: datetime,
    ) -> list[PermissionSnapshot]:
        _check_key_component(user_id, "user_id")
        assignments = await self._resolver.load_assignments(tenant_id, user_id)
        by_scope = expander.expand_all(assignments)
        snapshots = []
        for scope in sorted(by_scope, key=_scope_sort_key):
            if scope.scope_id is not None:
                _check_key_component(scope.scope_id, "scope_id")
            snapshots.append(
                build_snapshot(user_id, scope, by_scope[scope], policy_index, computed_at)
            )
        return snapshots

    async def _write(
        self,
        tenant_id: str,
        staged: dict[str, list[PermissionSnapshot]],
        computed_at: datetime,
    ) -> tuple[int, int]:
        """Replace each processed user's snapshots and drop their stale scopes."""
        if not staged:
            return 0, 0
        existing = await self._writer.existing_scopes(tenant_id, list(staged))
        operations: list[SnapshotWrite] = []
        for user_id, snapshots in staged.items():
            fresh = {snapshot.scope for snapshot in snapshots}
            operations.extend(
                SnapshotWrite(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    scope=snapshot.scope,
                    computed_at=computed_at,
                    snapshot=snapshot,
                )
                for snapshot in snapshots
            )
            stale = existing.get(user_id, set()) - fresh
            operations.extend(
                SnapshotWrite(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    scope=scope,
                    computed_at=computed_at,
                )
                for scope in sorted(stale, key=_scope_sort_key)
            )

        written = removed = 0
        for batch in _chunks(operations, self._write_batch_size):
            batch_written, batch_removed = await self._writer.write_batch(batch)
            written += batch_written
            removed += batch_removed
        logger.debug(
            "Snapshot run %s wrote %d operations in batches of %d (computedAt %s)",
            self.run_id,
            len(operations),
            self._write_batch_size,
            to_iso_utc(computed_at),
        )
        return written, removed
