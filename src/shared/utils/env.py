"""Environment variable loading utilities."""

from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _discover_env_files(start: Path) -> List[Path]:
    """Return .env files from the filesystem root down to ``start``."""
    candidates = [parent / ".env" for parent in reversed(start.parents)]
    candidates.append(start / ".env")
    found: List[Path] = []
    for candidate in candidates:
        if candidate.exists() and candidate not in found:
            found.append(candidate)
    return found


def load_env(env_file: Optional[str] = None, override: bool = False) -> List[Path]:
    """Load environment variables from .env files.

    Args:
        env_file: Explicit .env path. If None, every .env between the
            filesystem root and the working directory is loaded, outermost first.
        override: Whether values from files replace existing variables.

    Returns:
        The files that were loaded.
    """
    if env_file:
        path = Path(env_file)
        env_paths = [path] if path.exists() else []
    else:
        env_paths = _discover_env_files(Path.cwd())

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return []

    for path in env_paths:
        load_dotenv(path, override=override)
        logger.debug("Loaded environment from %s", path)
    return env_paths


def get_list_env(key: str, default: Optional[List[str]] = None) -> List[str]:
    """Read a comma separated variable into a list of trimmed, non-empty items."""
    raw = os.getenv(key)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]
