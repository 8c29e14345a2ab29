"""Shared Supabase connection utilities."""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, ClientOptions, create_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SupabaseConfig:
    """Connection parameters for a Supabase project.

    Attributes:
        url: Supabase project URL
        key: Supabase API key (service role for writers)
        schema: Database schema holding the live, staging and backup tables
    """
    url: str
    key: str
    schema: str = "public"

    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_var: str = "SUPABASE_KEY",
        schema_var: str = "SUPABASE_SCHEMA",
    ) -> SupabaseConfig:
        """Create configuration from environment variables.

        Raises:
            ValueError: If the URL or key variable is not set
        """
        url = os.getenv(url_var)
        key = os.getenv(key_var)
        if not url or not key:
            raise ValueError(
                f"Missing required environment variables: {url_var} and/or {key_var}. "
                f"Please set them in your .env file or environment."
            )
        return cls(url=url, key=key, schema=os.getenv(schema_var, "public"))


def get_supabase_client(config: Optional[SupabaseConfig] = None) -> Client:
    """Create a Supabase client bound to the configured schema.

    Example:
        >>> client = get_supabase_client()
        >>> client.table("decks").select("*").limit(5).execute()
    """
    if config is None:
        config = SupabaseConfig.from_env()

    logger.debug("Creating Supabase client for %s (schema=%s)", config.url, config.schema)
    return create_client(config.url, config.key, options=ClientOptions(schema=config.schema))
