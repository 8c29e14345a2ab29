"""Deployment wrapper for the deck meta sync Cloud Functions."""

from __future__ import annotations

import sys
from pathlib import Path

project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.functions.deck_meta_sync.functions.main import (  # noqa: E402
    admin,
    health_check,
    lock_state,
    read_dataset,
    run_pipeline,
)

__all__ = ["admin", "health_check", "lock_state", "read_dataset", "run_pipeline"]
