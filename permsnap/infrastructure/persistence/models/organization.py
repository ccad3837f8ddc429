"""Subsidiary and Talent ORM models (organization hierarchy below the tenant)."""

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from permsnap.infrastructure.persistence.database import Base
from permsnap.infrastructure.persistence.models.mixins import MultiTenantModel


class Subsidiary(MultiTenantModel, Base):
    """Subsidiary. Table: subsidiary. parent_id NULL means directly under the tenant."""

    __tablename__ = "subsidiary"

    parent_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("subsidiary.id", ondelete="SET NULL"), nullable=True
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_subsidiary_tenant_code"),
        Index("ix_subsidiary_tenant_active", "tenant_id", "is_active"),
    )


class Talent(MultiTenantModel, Base):
    """Talent (leaf). Table: talent. subsidiary_id NULL means directly under the tenant."""

    __tablename__ = "talent"

    subsidiary_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("subsidiary.id", ondelete="SET NULL"), nullable=True
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_talent_tenant_code"),
        Index("ix_talent_tenant_active", "tenant_id", "is_active"),
    )
