"""Build pipeline, source, storage and read configuration from the environment."""

from __future__ import annotations

import logging
import os
from typing import Dict, Optional

from pydantic import ValidationError

from src.shared.utils.config_validator import (
    ConfigurationError,
    require_env,
    validate_bool_env,
    validate_choice_env,
    validate_float_env,
    validate_int_env,
)
from src.shared.utils.env import get_list_env

from ..contracts.config import (
    DEFAULT_CARD_CATALOG_URL,
    PipelineConfig,
    ReadPolicy,
    ReadSettings,
    SourceSettings,
    SupabaseSettings,
)
from ..datasets import MODE_FORMATS

logger = logging.getLogger(__name__)


def _pick(overrides: Dict[str, object], key: str, fallback):
    value = overrides.get(key)
    return fallback() if value is None else value


def build_pipeline_config(overrides: Optional[Dict[str, object]] = None) -> PipelineConfig:
    overrides = overrides or {}
    modes = overrides.get("modes") or get_list_env("META_MODES", list(MODE_FORMATS))
    if isinstance(modes, str):
        modes = [item for item in modes.split(",") if item.strip()]
    dry_run = bool(overrides.get("dry_run") or validate_bool_env("META_DRY_RUN", False))
    inter_stage_ms = _pick(
        overrides,
        "inter_stage_delay_ms",
        lambda: validate_int_env("META_INTER_STAGE_DELAY_MS", 0, min_value=0, max_value=60_000),
    )
    chunk_size = _pick(
        overrides,
        "upsert_chunk_size",
        lambda: validate_int_env("META_UPSERT_CHUNK_SIZE", 500, min_value=1, max_value=5000),
    )
    stale_minutes = _pick(
        overrides,
        "lock_stale_after_minutes",
        lambda: validate_int_env("LOCK_STALE_AFTER_MINUTES", 360, min_value=0),
    )

    try:
        return PipelineConfig(
            modes=list(modes),
            dry_run=dry_run,
            inter_stage_delay_seconds=int(inter_stage_ms) / 1000.0,
            upsert_chunk_size=int(chunk_size),
            lock_stale_after_minutes=int(stale_minutes),
            ladder_config_path=overrides.get("ladder_config") or os.getenv("META_LADDER_CONFIG") or None,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid pipeline configuration: {exc}") from exc


def build_supabase_settings(overrides: Optional[Dict[str, object]] = None) -> SupabaseSettings:
    """Build Supabase settings with validation."""
    overrides = overrides or {}
    url = overrides.get("url") or require_env("SUPABASE_URL", "Supabase project URL")
    key = overrides.get("key") or require_env("SUPABASE_KEY", "Supabase service role key")
    try:
        return SupabaseSettings(
            url=url,
            key=key,
            schema_name=overrides.get("schema") or os.getenv("SUPABASE_SCHEMA", "public"),
            lock_table=overrides.get("lock_table") or os.getenv("META_LOCK_TABLE", "pipeline_lock"),
            translation_table=overrides.get("translation_table")
            or os.getenv("META_TRANSLATION_TABLE", "deck_translations"),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid Supabase configuration: {exc}") from exc


def build_source_settings(overrides: Optional[Dict[str, object]] = None) -> SourceSettings:
    overrides = overrides or {}
    values: Dict[str, object] = {}
    base_url = overrides.get("base_url") or os.getenv("META_SOURCE_BASE_URL")
    if base_url:
        values["base_url"] = base_url
    values["card_catalog_url"] = (
        overrides.get("card_catalog_url") or os.getenv("META_CARD_CATALOG_URL") or DEFAULT_CARD_CATALOG_URL
    )
    user_agent = overrides.get("user_agent") or os.getenv("META_USER_AGENT")
    if user_agent:
        values["user_agent"] = user_agent
    values["request_timeout_seconds"] = _pick(
        overrides,
        "request_timeout",
        lambda: validate_float_env("META_REQUEST_TIMEOUT", 30.0, min_value=1, max_value=300),
    )
    attempt_delay_ms = _pick(
        overrides,
        "attempt_delay_ms",
        lambda: validate_int_env("META_ATTEMPT_DELAY_MS", 50, min_value=0, max_value=10_000),
    )
    values["attempt_delay_seconds"] = int(attempt_delay_ms) / 1000.0
    try:
        return SourceSettings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid source configuration: {exc}") from exc


def build_read_settings(overrides: Optional[Dict[str, object]] = None) -> ReadSettings:
    overrides = overrides or {}
    policy = overrides.get("policy") or validate_choice_env(
        "READ_POLICY",
        [policy.value for policy in ReadPolicy],
        default=ReadPolicy.SERVE_STALE.value,
    )
    retry_after = _pick(
        overrides,
        "retry_after_seconds",
        lambda: validate_int_env("READ_RETRY_AFTER_SECONDS", 60, min_value=1, max_value=3600),
    )
    try:
        return ReadSettings(policy=ReadPolicy(policy), retry_after_seconds=int(retry_after))
    except (ValidationError, ValueError) as exc:
        raise ConfigurationError(f"Invalid read configuration: {exc}") from exc


def admin_api_key() -> Optional[str]:
    return os.getenv("ADMIN_API_KEY") or None
