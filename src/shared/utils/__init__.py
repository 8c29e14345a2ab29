"""Shared logging, environment and configuration helpers."""

from .config_validator import ConfigurationError
from .env import load_env
from .logging import get_logger, setup_logging

__all__ = ["ConfigurationError", "get_logger", "load_env", "setup_logging"]
