import json

import pytest

from link_preview.config import DAY, PreviewConfig, migrate_config
from link_preview.version import CONFIG_SCHEMA_VERSION


def test_defaults_are_valid():
    cfg = PreviewConfig()
    cfg.validate()

    assert cfg.cache_ttl == 7 * DAY
    assert cfg.fallback_cache_ttl == DAY
    assert cfg.max_attempts == 3
    assert cfg.request_timeout == 15.0
    assert cfg.fallback_timeout == 10.0


def test_from_env(monkeypatch):
    monkeypatch.setenv("PREVIEW_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("PREVIEW_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("PREVIEW_RANDOM_DELAYS", "false")
    monkeypatch.setenv("PREVIEW_EXTRA_ADAPTERS", "pkg.a.Adapter, pkg.b:Other ,")
    monkeypatch.setenv("PREVIEW_RATE_LIMIT_MAX_REQUESTS", "10")

    cfg = PreviewConfig.from_env()

    assert cfg.database_url == "sqlite+aiosqlite:///:memory:"
    assert cfg.max_attempts == 5
    assert cfg.random_delays is False
    assert cfg.dedupe_in_flight is True
    assert cfg.extra_adapters == ["pkg.a.Adapter", "pkg.b:Other"]
    assert cfg.rate_limit_max_requests == 10


def test_from_file_migrates_v1(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"cache_ttl_days": 3, "max_attempts": 2}), encoding="utf-8")

    cfg = PreviewConfig.from_file(path)

    assert cfg.schema_version == CONFIG_SCHEMA_VERSION
    assert cfg.cache_ttl == 3 * DAY
    assert cfg.max_attempts == 2


def test_migrate_current_schema_untouched():
    raw = {"schema_version": 2, "cache_ttl": 60.0}
    assert migrate_config(dict(raw)) == raw


@pytest.mark.parametrize(
    "overrides",
    [
        {"database_url": ""},
        {"cache_ttl": 0},
        {"fallback_cache_ttl": -1},
        {"max_attempts": 0},
        {"request_timeout": 0},
        {"min_domain_interval": -0.5},
        {"rate_limit_max_requests": 0},
        {"rate_limit_window": 0},
    ],
)
def test_validate_rejects(overrides):
    with pytest.raises(ValueError):
        PreviewConfig(**overrides).validate()


def test_to_dict_round_trips():
    cfg = PreviewConfig(max_attempts=4, extra_adapters=["x.Y"])
    assert PreviewConfig(**cfg.to_dict()) == cfg


def test_from_file_rejects_unknown_keys(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"schema_version": 2, "max_attempts": 2, "retries": 4}), encoding="utf-8")

    with pytest.raises(ValueError, match="retries"):
        PreviewConfig.from_file(path)
