"""Infrastructure services built on the snapshot cache."""

from permsnap.infrastructure.services.permission_checker import PermissionChecker

__all__ = ["PermissionChecker"]
