"""Task-queue payload schema for permission snapshot jobs."""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from permsnap.core.constants import CACHE_KEY_SEP
from permsnap.domain.enums import SnapshotEventType


class PermissionJobPayload(BaseModel):
    """Trigger for one snapshot run of one tenant.

    Accepts the camelCase payload the producers enqueue (eventType,
    tenantId, affectedUserIds, ...) as well as snake_case field names.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    event_type: SnapshotEventType
    tenant_id: str = Field(..., min_length=1, max_length=64)
    affected_user_ids: list[str] | None = Field(default=None, max_length=100_000)
    affected_scope_ids: list[str] | None = Field(default=None, max_length=10_000)
    affected_role_ids: list[str] | None = Field(default=None, max_length=10_000)
    triggered_by: str = "system"

    @field_validator("tenant_id")
    @classmethod
    def tenant_id_without_separator(cls, v: str) -> str:
        """tenant_id is part of every snapshot key and must not contain the separator."""
        if CACHE_KEY_SEP in v:
            raise ValueError(f"tenant_id must not contain {CACHE_KEY_SEP!r}")
        return v
