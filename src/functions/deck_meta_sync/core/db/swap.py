"""Backup-then-replace promotion of staging instances."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..datasets import backup_name, staging_name
from ..errors import MetaSyncError, SwapError
from .store import DatasetStore

logger = logging.getLogger(__name__)


@dataclass
class StagingInspection:
    live: str
    staging: str
    staging_exists: bool
    staging_count: int = 0
    live_exists: bool = False
    live_count: int = 0
    backup_exists: bool = False
    sample: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "live": self.live,
            "staging": self.staging,
            "staging_exists": self.staging_exists,
            "staging_count": self.staging_count,
            "live_exists": self.live_exists,
            "live_count": self.live_count,
            "backup_exists": self.backup_exists,
            "sample": self.sample,
        }


class SwapCoordinator:
    """Promotes one dataset at a time; each step is atomic in the store."""

    def __init__(self, store: DatasetStore) -> None:
        self._store = store

    def _step(self, live: str, step: str, call, *args) -> Any:
        try:
            return call(*args)
        except MetaSyncError as exc:
            raise SwapError(live, step, str(exc)) from exc

    def promote(self, live: str) -> bool:
        """Make the staging instance of ``live`` the new live instance.

        Returns False when there is no staging instance (nothing to swap).
        """

        staging = staging_name(live)
        backup = backup_name(live)
        if not self._step(live, "check staging", self._store.instance_exists, staging):
            logger.info("No staging instance for %s; keeping current live data", live)
            return False

        if self._step(live, "check backup", self._store.instance_exists, backup):
            self._step(live, "drop backup", self._store.drop_instance, backup)
        if self._step(live, "check live", self._store.instance_exists, live):
            self._step(live, "live to backup", self._store.rename_instance, live, backup)
        self._step(live, "staging to live", self._store.rename_instance, staging, live)
        logger.info("Promoted %s -> %s (previous live kept as %s)", staging, live, backup)
        return True

    def cleanup_staging(self, live: str) -> bool:
        """Drop the staging instance of ``live`` without promoting it."""

        staging = staging_name(live)
        if not self._step(live, "check staging", self._store.instance_exists, staging):
            return False
        self._step(live, "drop staging", self._store.drop_instance, staging)
        logger.info("Dropped staging instance %s", staging)
        return True

    def inspect_staging(self, live: str, sample_size: int = 5) -> StagingInspection:
        staging = staging_name(live)
        exists = self._step(live, "check staging", self._store.instance_exists, staging)
        inspection = StagingInspection(live=live, staging=staging, staging_exists=exists)
        if exists:
            inspection.staging_count = self._step(live, "count staging", self._store.count, staging)
            if sample_size > 0:
                inspection.sample = self._step(
                    live, "sample staging", lambda: self._store.select(staging, limit=sample_size)
                )
        inspection.live_exists = self._step(live, "check live", self._store.instance_exists, live)
        if inspection.live_exists:
            inspection.live_count = self._step(live, "count live", self._store.count, live)
        inspection.backup_exists = self._step(
            live, "check backup", self._store.instance_exists, backup_name(live)
        )
        return inspection
