"""Shared database connection helpers."""

from .connection import SupabaseConfig, get_supabase_client

__all__ = ["SupabaseConfig", "get_supabase_client"]
