"""Shared batch helpers."""

from .retry import retry_on_network_error

__all__ = ["retry_on_network_error"]
