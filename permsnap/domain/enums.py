"""Domain enumerations for the permission snapshot engine.

Values match what the relational store and the snapshot cache hold, so
enum members can be written to either without translation.
"""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class ScopeType(_ValuesMixin, str, Enum):
    """Node kind in the organization hierarchy (also the assignment scope type)."""

    TENANT = "tenant"
    SUBSIDIARY = "subsidiary"
    TALENT = "talent"


class SnapshotEventType(_ValuesMixin, str, Enum):
    """Event that triggered a snapshot run."""

    ROLE_CHANGED = "ROLE_CHANGED"
    ORG_STRUCTURE_CHANGED = "ORG_STRUCTURE_CHANGED"
    POLICY_CHANGED = "POLICY_CHANGED"
    FULL_REFRESH = "FULL_REFRESH"


class PolicyEffect(_ValuesMixin, str, Enum):
    """Base effect declared on a policy."""

    ALLOW = "allow"
    DENY = "deny"


class LinkEffect(_ValuesMixin, str, Enum):
    """Effect a role-policy link requests for its role (authoritative)."""

    GRANT = "grant"
    DENY = "deny"

    @classmethod
    def from_policy_effect(cls, effect: PolicyEffect) -> "LinkEffect":
        """Map a policy base effect to the link effect it implies."""
        return cls.DENY if effect == PolicyEffect.DENY else cls.GRANT


class RunState(_ValuesMixin, str, Enum):
    """Snapshot run lifecycle. DONE and FAILED are terminal."""

    IDLE = "idle"
    RESOLVING = "resolving"
    BUILDING = "building"
    PER_USER_LOOP = "per_user_loop"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.FAILED)
