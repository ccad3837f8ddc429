"""ORM models. Importing this package registers every table on Base.metadata."""

from permsnap.infrastructure.persistence.models.organization import Subsidiary, Talent
from permsnap.infrastructure.persistence.models.permission import (
    Policy,
    Resource,
    RolePolicy,
    UserRole,
)
from permsnap.infrastructure.persistence.models.role import Role
from permsnap.infrastructure.persistence.models.tenant import Tenant
from permsnap.infrastructure.persistence.models.user import SystemUser

__all__ = [
    "Policy",
    "Resource",
    "Role",
    "RolePolicy",
    "Subsidiary",
    "SystemUser",
    "Talent",
    "Tenant",
    "UserRole",
]
