"""Domain exceptions for the permission snapshot engine.

Run-level failures (store or cache unavailable, cancellation) propagate
out of the job so the task queue can retry the whole run. Per-user
failures are caught by the orchestrator and recorded in the run result.
"""

from typing import Any


class PermsnapException(Exception):
    """Base exception for all engine errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. tenant_id, user_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class StoreUnavailableException(PermsnapException):
    """Raised when the relational store cannot be reached or queried."""

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"Relational store unavailable during {operation}",
            "STORE_UNAVAILABLE",
            {"operation": operation, "reason": reason},
        )


class CacheUnavailableException(PermsnapException):
    """Raised when the snapshot cache cannot be reached (after one reconnect attempt)."""

    def __init__(self, operation: str, reason: str | None = None) -> None:
        details: dict[str, Any] = {"operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(
            f"Snapshot cache unavailable during {operation}",
            "CACHE_UNAVAILABLE",
            details,
        )


class RunCancelledException(PermsnapException):
    """Raised when a run is cancelled between per-user iterations."""

    def __init__(self, run_id: str, users_processed: int) -> None:
        super().__init__(
            f"Snapshot run {run_id} cancelled after {users_processed} user(s)",
            "RUN_CANCELLED",
            {"run_id": run_id, "users_processed": users_processed},
        )


class InvalidRunStateException(PermsnapException):
    """Raised when a run object is executed twice or moved out of a terminal state."""

    def __init__(self, run_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Snapshot run {run_id} cannot move from {current} to {requested}",
            "INVALID_RUN_STATE",
            {"run_id": run_id, "current": current, "requested": requested},
        )
