"""Operational recovery and maintenance commands."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Sequence

from .contracts.lock_state import LockState
from .datasets import DATASETS, get_dataset, validate_mode
from .db.swap import StagingInspection
from .orchestration.factory import MetaSyncServices

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    processed: int = 0
    updated: int = 0
    promoted: List[str] = field(default_factory=list)
    untranslated_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "promoted": list(self.promoted),
            "untranslated_names": list(self.untranslated_names),
        }


class AdminService:
    """Commands used after a crash or to maintain reference data.

    Commands that change dataset instances hold the update lock for their
    duration, so they never interleave with a pipeline run.
    """

    def __init__(self, services: MetaSyncServices) -> None:
        self._services = services

    @contextmanager
    def _locked(self, action: str) -> Iterator[None]:
        holder = f"admin-{action}-{uuid.uuid4().hex[:8]}"
        self._services.lock.acquire(holder)
        try:
            yield
        finally:
            self._services.lock.release(holder)

    def _live_table(self, dataset: str, mode: str) -> str:
        return get_dataset(dataset).live_name(validate_mode(mode))

    def lock_state(self) -> LockState:
        return self._services.lock.state()

    def force_unlock(self) -> LockState:
        state = self._services.lock.state()
        if not state.is_updating:
            logger.info("Lock already idle")
        else:
            logger.warning("Force-releasing update lock held by %s since %s", state.holder, state.locked_at)
        return self._services.lock.release()

    def inspect_staging(self, dataset: str, mode: str, sample_size: int = 5) -> StagingInspection:
        return self._services.swap.inspect_staging(self._live_table(dataset, mode), sample_size)

    def force_promote(self, dataset: str, mode: str) -> bool:
        table = self._live_table(dataset, mode)
        with self._locked("promote"):
            promoted = self._services.swap.promote(table)
            if table in self._services.lock.pending():
                self._services.lock.complete_pending(table)
        logger.info("Force promote of %s: %s", table, "done" if promoted else "nothing staged")
        return promoted

    def force_cleanup(self, dataset: str, mode: str) -> bool:
        table = self._live_table(dataset, mode)
        with self._locked("cleanup"):
            return self._services.swap.cleanup_staging(table)

    def add_translation(self, source_name: str, localized_name: str) -> int:
        """Store a translation and reload the cache; returns the cache size."""
        self._services.translation_repository.upsert(source_name, localized_name)
        return self._services.translations.reload()

    def repair_localized_names(self, modes: Sequence[str]) -> RepairReport:
        """Re-resolve ``localized_name`` on every live localized dataset."""

        services = self._services
        services.translations.reload()
        report = RepairReport()
        untranslated: set = set()
        staged: List[str] = []

        with self._locked("repair"):
            try:
                for mode in modes:
                    for spec in DATASETS:
                        if not spec.localized:
                            continue
                        table = spec.live_name(validate_mode(mode))
                        if not services.store.instance_exists(table):
                            continue
                        records = services.store.select(table)
                        if not records:
                            continue
                        for record in records:
                            name = record.get("name") or ""
                            localized = services.translations.lookup(name)
                            if not services.translations.is_translated(name):
                                untranslated.add(name)
                            if record.get("localized_name") != localized:
                                record["localized_name"] = localized
                                report.updated += 1
                            report.processed += 1
                        staged.append(table)
                        services.writer.open(table)
                        services.writer.upsert_all(spec, table, records)
            except Exception:
                for table in staged:
                    services.swap.cleanup_staging(table)
                raise

            services.lock.record_pending(staged)
            for table in staged:
                if services.swap.promote(table):
                    report.promoted.append(table)
                services.lock.complete_pending(table)

        report.untranslated_names = sorted(untranslated)
        logger.info(
            "Repaired localized names: %d processed, %d updated, %d untranslated",
            report.processed,
            report.updated,
            len(report.untranslated_names),
        )
        return report
