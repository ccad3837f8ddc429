"""Tests for snapshot cache key builders (shape, validation, parsing)."""

import pytest

from permsnap.domain.enums import ScopeType
from permsnap.infrastructure.cache.keys import (
    parse_snapshot_key,
    progress_channel,
    snapshot_key,
    tenant_snapshot_pattern,
    user_snapshot_pattern,
)


def test_tenant_scope_key_uses_tenant_placeholder() -> None:
    assert snapshot_key("t1", "u1", ScopeType.TENANT, None) == "perm:t1:u1:tenant:tenant"


def test_tenant_scope_ignores_scope_id() -> None:
    assert snapshot_key("t1", "u1", ScopeType.TENANT, "x") == "perm:t1:u1:tenant:tenant"


def test_subsidiary_and_talent_keys() -> None:
    assert snapshot_key("t1", "u1", ScopeType.SUBSIDIARY, "A") == "perm:t1:u1:subsidiary:A"
    assert snapshot_key("t1", "u1", ScopeType.TALENT, "T9") == "perm:t1:u1:talent:T9"


def test_non_tenant_scope_requires_scope_id() -> None:
    with pytest.raises(ValueError, match="scope_id is required"):
        snapshot_key("t1", "u1", ScopeType.TALENT, None)


@pytest.mark.parametrize(
    ("tenant_id", "user_id", "scope_id"),
    [("t:1", "u1", "A"), ("t1", "u:1", "A"), ("t1", "u1", "A:B"), ("", "u1", "A")],
)
def test_components_with_separator_or_empty_are_rejected(
    tenant_id: str, user_id: str, scope_id: str
) -> None:
    with pytest.raises(ValueError):
        snapshot_key(tenant_id, user_id, ScopeType.SUBSIDIARY, scope_id)


def test_patterns_escape_glob_characters() -> None:
    assert user_snapshot_pattern("t1", "u1") == "perm:t1:u1:*"
    assert user_snapshot_pattern("t1", "u*[1]") == "perm:t1:u\\*\\[1\\]:*"
    assert tenant_snapshot_pattern("t?") == "perm:t\\?:*"


def test_parse_round_trips_built_keys() -> None:
    assert parse_snapshot_key("perm:t1:u1:tenant:tenant") == ("t1", "u1", ScopeType.TENANT, None)
    assert parse_snapshot_key("perm:t1:u1:talent:T9") == ("t1", "u1", ScopeType.TALENT, "T9")


@pytest.mark.parametrize(
    "key", ["perm:t1:u1", "other:t1:u1:tenant:tenant", "perm:t1:u1:planet:X", "perm:a:b:c:d:e"]
)
def test_parse_rejects_foreign_keys(key: str) -> None:
    assert parse_snapshot_key(key) is None


def test_progress_channel() -> None:
    assert progress_channel("t1") == "permission_progress:t1"
