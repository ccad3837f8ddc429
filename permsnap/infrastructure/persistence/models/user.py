"""System user ORM model (tenant-scoped). Only id and activity matter to the engine."""

from sqlalchemy import Boolean, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from permsnap.infrastructure.persistence.database import Base
from permsnap.infrastructure.persistence.models.mixins import MultiTenantModel


class SystemUser(MultiTenantModel, Base):
    """User model. Table: system_user. Unique (tenant_id, username)."""

    __tablename__ = "system_user"

    username: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true")
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_system_user_tenant_username"),
    )
