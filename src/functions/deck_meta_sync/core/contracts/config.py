"""Configuration models for the deck meta sync pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from ..datasets import MODE_FORMATS

DEFAULT_CARD_CATALOG_URL = "https://api.hearthstonejson.com/v1/latest/zhCN/cards.collectible.json"


class SupabaseSettings(BaseModel):
    """Settings required to reach the Supabase project holding the datasets."""

    url: HttpUrl = Field(..., description="Supabase project URL")
    key: str = Field(..., min_length=10, description="Supabase service role key")
    schema_name: str = Field(default="public", description="Schema holding the dataset tables")
    lock_table: str = Field(default="pipeline_lock")
    translation_table: str = Field(default="deck_translations")


class SourceSettings(BaseModel):
    """Where and how the statistics site and card catalog are fetched."""

    base_url: HttpUrl = Field(default="https://www.hsguru.com")
    card_catalog_url: HttpUrl = Field(default=DEFAULT_CARD_CATALOG_URL)
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_4) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/119.0.0.0 Safari/537.36"
        ),
        min_length=1,
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    attempt_delay_seconds: float = Field(
        default=0.05,
        ge=0,
        le=10,
        description="Pause between threshold ladder attempts",
    )

    def build_headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, "Accept-Language": "en-US,en;q=0.9"}


class PipelineConfig(BaseModel):
    """Operational configuration for a run."""

    modes: List[str] = Field(default_factory=lambda: list(MODE_FORMATS))
    dry_run: bool = Field(default=False, description="Use the in-memory store, never touch Supabase")
    inter_stage_delay_seconds: float = Field(default=0.0, ge=0, le=60)
    upsert_chunk_size: int = Field(default=500, ge=1, le=5000)
    lock_stale_after_minutes: int = Field(
        default=360,
        ge=0,
        description="Minutes after which a held lock may be taken over; 0 disables",
    )
    ladder_config_path: Optional[str] = None

    @field_validator("modes")
    @classmethod
    def _validate_modes(cls, value: List[str]) -> List[str]:
        cleaned: List[str] = []
        for mode in value:
            mode = mode.strip().lower()
            if mode not in MODE_FORMATS:
                msg = f"unknown mode '{mode}'"
                raise ValueError(msg)
            if mode not in cleaned:
                cleaned.append(mode)
        if not cleaned:
            msg = "at least one mode is required"
            raise ValueError(msg)
        return cleaned

    def snapshot(self) -> Dict[str, object]:
        """Return a serialisable snapshot for reporting."""

        return self.model_dump()


class ReadPolicy(str, Enum):
    SERVE_STALE = "serve_stale"
    REJECT = "reject"


class ReadSettings(BaseModel):
    policy: ReadPolicy = ReadPolicy.SERVE_STALE
    retry_after_seconds: int = Field(default=60, ge=1, le=3600)
