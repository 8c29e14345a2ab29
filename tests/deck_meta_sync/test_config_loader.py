import pytest

from src.functions.deck_meta_sync.core.contracts.config import ReadPolicy
from src.functions.deck_meta_sync.core.orchestration.config_loader import (
    build_pipeline_config,
    build_read_settings,
    build_source_settings,
    build_supabase_settings,
)
from src.shared.utils.config_validator import ConfigurationError

PIPELINE_ENV = (
    "META_MODES",
    "META_DRY_RUN",
    "META_INTER_STAGE_DELAY_MS",
    "META_UPSERT_CHUNK_SIZE",
    "LOCK_STALE_AFTER_MINUTES",
    "META_LADDER_CONFIG",
    "READ_POLICY",
    "READ_RETRY_AFTER_SECONDS",
    "META_REQUEST_TIMEOUT",
    "META_ATTEMPT_DELAY_MS",
    "META_SOURCE_BASE_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in PIPELINE_ENV:
        monkeypatch.delenv(name, raising=False)


def test_pipeline_defaults():
    config = build_pipeline_config()

    assert config.modes == ["standard", "wild"]
    assert config.dry_run is False
    assert config.lock_stale_after_minutes == 360
    assert config.upsert_chunk_size == 500


def test_pipeline_reads_environment(monkeypatch):
    monkeypatch.setenv("META_MODES", "wild, standard, wild")
    monkeypatch.setenv("META_DRY_RUN", "yes")
    monkeypatch.setenv("META_INTER_STAGE_DELAY_MS", "1500")
    monkeypatch.setenv("LOCK_STALE_AFTER_MINUTES", "90")

    config = build_pipeline_config()

    assert config.modes == ["wild", "standard"]
    assert config.dry_run is True
    assert config.inter_stage_delay_seconds == 1.5
    assert config.lock_stale_after_minutes == 90


def test_request_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("META_MODES", "standard,wild")

    config = build_pipeline_config({"modes": "wild", "upsert_chunk_size": 50})

    assert config.modes == ["wild"]
    assert config.upsert_chunk_size == 50


@pytest.mark.parametrize(
    "name,value",
    [
        ("META_MODES", "arena"),
        ("META_DRY_RUN", "maybe"),
        ("META_UPSERT_CHUNK_SIZE", "0"),
        ("LOCK_STALE_AFTER_MINUTES", "soon"),
    ],
)
def test_invalid_pipeline_values_raise_configuration_error(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        build_pipeline_config()


def test_supabase_settings_require_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)

    with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
        build_supabase_settings()

    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "service-role-key")
    settings = build_supabase_settings()

    assert settings.lock_table == "pipeline_lock"
    assert settings.translation_table == "deck_translations"


def test_source_settings(monkeypatch):
    monkeypatch.setenv("META_SOURCE_BASE_URL", "https://stats.example.test")
    monkeypatch.setenv("META_ATTEMPT_DELAY_MS", "250")

    settings = build_source_settings()

    assert str(settings.base_url).startswith("https://stats.example.test")
    assert settings.attempt_delay_seconds == 0.25
    assert settings.build_headers()["User-Agent"]


def test_source_timeout_is_range_checked(monkeypatch):
    monkeypatch.setenv("META_REQUEST_TIMEOUT", "900")

    with pytest.raises(ConfigurationError):
        build_source_settings()


def test_read_settings(monkeypatch):
    assert build_read_settings().policy is ReadPolicy.SERVE_STALE

    monkeypatch.setenv("READ_POLICY", "REJECT")
    monkeypatch.setenv("READ_RETRY_AFTER_SECONDS", "30")
    settings = build_read_settings()

    assert settings.policy is ReadPolicy.REJECT
    assert settings.retry_after_seconds == 30

    monkeypatch.setenv("READ_POLICY", "block")
    with pytest.raises(ConfigurationError):
        build_read_settings()
