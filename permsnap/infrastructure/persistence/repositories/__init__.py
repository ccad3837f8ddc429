"""Repositories: SQLAlchemy-backed implementations of the application ports."""

from permsnap.infrastructure.persistence.repositories.permission_source_repo import (
    PermissionSourceRepository,
)

__all__ = ["PermissionSourceRepository"]
