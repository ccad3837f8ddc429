"""Tests for Settings defaults and snapshot tuning validation."""

import pytest
from pydantic import ValidationError

from permsnap.core.config import Settings, get_settings


def test_snapshot_defaults() -> None:
    settings = Settings()
    assert settings.snapshot_sla_seconds == 60.0
    assert settings.snapshot_write_batch_size == 500
    assert settings.snapshot_max_concurrency == 10
    assert settings.snapshot_ttl_seconds == 86_400


@pytest.mark.parametrize(
    "overrides",
    [
        {"snapshot_sla_seconds": 0},
        {"snapshot_write_batch_size": 0},
        {"snapshot_max_concurrency": 0},
        {"snapshot_ttl_seconds": -1},
        {"telemetry_sample_rate": 1.5},
    ],
)
def test_invalid_tuning_is_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_settings_read_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SNAPSHOT_WRITE_BATCH_SIZE", "250")
    monkeypatch.setenv("REDIS_HOST", "cache.internal")
    settings = get_settings()
    assert settings.snapshot_write_batch_size == 250
    assert settings.redis_host == "cache.internal"
    assert get_settings() is settings
