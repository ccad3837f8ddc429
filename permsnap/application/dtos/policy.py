"""DTOs for the role/policy catalogue."""

from dataclasses import dataclass, field

from permsnap.domain.enums import LinkEffect, PolicyEffect


@dataclass(frozen=True)
class RolePolicyRow:
    """One role -> policy -> resource join row for an active role and active policy.

    resource_code is None when the policy points at a resource that no
    longer exists; resource_active is False for a deactivated resource.
    link_effect None means the link did not set an effect.
    """

    role_id: str
    role_code: str
    resource_code: str | None
    action: str
    policy_effect: PolicyEffect
    link_effect: LinkEffect | None = None
    resource_active: bool = True

    @property
    def effective_link_effect(self) -> LinkEffect:
        """Link effect when set, otherwise the one implied by the policy base effect."""
        if self.link_effect is not None:
            return self.link_effect
        return LinkEffect.from_policy_effect(self.policy_effect)


@dataclass(frozen=True)
class ResourceGrants:
    """Effective contribution of one role for one resource."""

    granted: frozenset[str] = field(default_factory=frozenset)
    denied: frozenset[str] = field(default_factory=frozenset)
