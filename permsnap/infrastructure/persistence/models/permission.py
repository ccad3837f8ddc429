"""Resource, Policy, RolePolicy and UserRole ORM models (scoped RBAC)."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from permsnap.infrastructure.persistence.database import Base
from permsnap.infrastructure.persistence.models.mixins import CuidMixin, MultiTenantModel, TenantMixin


class Resource(MultiTenantModel, Base):
    """Protected resource (e.g. customer.profile). Table: resource."""

    __tablename__ = "resource"

    code: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (UniqueConstraint("tenant_id", "code", name="uq_resource_tenant_code"),)


class Policy(MultiTenantModel, Base):
    """Action on a resource with a base effect. Table: policy."""

    __tablename__ = "policy"

    resource_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("resource.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String, nullable=False)
    effect: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'allow'")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (
        CheckConstraint("effect IN ('allow', 'deny')", name="ck_policy_effect"),
        Index("ix_policy_resource_action", "tenant_id", "resource_id", "action"),
    )


class RolePolicy(CuidMixin, TenantMixin, Base):
    """Role -> policy link carrying the role's authoritative effect. Table: role_policy."""

    __tablename__ = "role_policy"

    role_id: Mapped[str] = mapped_column(
        String, ForeignKey("role.id", ondelete="CASCADE"), nullable=False
    )
    policy_id: Mapped[str] = mapped_column(
        String, ForeignKey("policy.id", ondelete="CASCADE"), nullable=False
    )
    effect: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("role_id", "policy_id", name="uq_role_policy"),
        CheckConstraint(
            "effect IS NULL OR effect IN ('grant', 'deny')", name="ck_role_policy_effect"
        ),
        Index("ix_role_policy_lookup", "tenant_id", "role_id"),
    )


class UserRole(CuidMixin, TenantMixin, Base):
    """Scoped user-role assignment. Table: user_role. scope_id NULL only for tenant scope."""

    __tablename__ = "user_role"

    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("system_user.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[str] = mapped_column(
        String, ForeignKey("role.id", ondelete="CASCADE"), nullable=False
    )
    scope_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'tenant'")
    )
    scope_id: Mapped[str | None] = mapped_column(String, nullable=True)
    inherit: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    granted_by: Mapped[str | None] = mapped_column(
        String, ForeignKey("system_user.id", ondelete="SET NULL"), nullable=True
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "role_id", "scope_type", "scope_id", name="uq_user_role_scope"
        ),
        CheckConstraint(
            "scope_type IN ('tenant', 'subsidiary', 'talent')", name="ck_user_role_scope_type"
        ),
        CheckConstraint(
            "(scope_type = 'tenant') OR (scope_id IS NOT NULL)", name="ck_user_role_scope_id"
        ),
        Index("ix_user_role_lookup", "tenant_id", "user_id"),
        Index("ix_user_role_scope", "tenant_id", "scope_id"),
        Index("ix_user_role_role", "tenant_id", "role_id"),
    )
