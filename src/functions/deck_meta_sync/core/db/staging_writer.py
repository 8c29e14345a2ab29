"""Idempotent bulk upserts into staging instances."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from src.shared.utils.logging import get_logger

from ..datasets import DatasetSpec, staging_name
from ..errors import MetaSyncError, StagingWriteError
from .store import DatasetStore


def dedupe_by_key(spec: DatasetSpec, records: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse records sharing a natural key; the last one in order wins."""

    latest: Dict[Tuple[Any, ...], Dict[str, Any]] = {}
    for record in records:
        key = spec.natural_key(record)
        latest.pop(key, None)
        latest[key] = dict(record)
    return list(latest.values())


class StagingWriter:
    """Writes normalized records to ``<live>_staging`` keyed by natural key."""

    def __init__(self, store: DatasetStore, *, chunk_size: int = 500) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._store = store
        self._chunk_size = chunk_size
        self.logger = get_logger(__name__)

    def open(self, live: str) -> str:
        """Create a fresh, empty staging instance for ``live``, dropping any leftover."""

        staging = staging_name(live)
        try:
            if self._store.instance_exists(staging):
                self.logger.warning("Dropping leftover staging instance %s", staging)
                self._store.drop_instance(staging)
            self._store.create_staging(live, staging)
        except MetaSyncError as exc:
            raise StagingWriteError(staging, str(exc)) from exc
        self.logger.debug("Opened staging instance %s", staging)
        return staging

    def upsert_all(self, spec: DatasetSpec, live: str, records: Sequence[Mapping[str, Any]]) -> int:
        """Upsert ``records`` into the staging instance of ``live``.

        Returns the number of distinct natural keys written. Chunks already
        written stay written when a later chunk fails.
        """

        staging = staging_name(live)
        try:
            unique = dedupe_by_key(spec, records)
        except ValueError as exc:
            raise StagingWriteError(staging, str(exc)) from exc

        if len(unique) != len(records):
            self.logger.debug("Collapsed %d records to %d natural keys", len(records), len(unique))

        written = 0
        for start in range(0, len(unique), self._chunk_size):
            chunk = unique[start : start + self._chunk_size]
            try:
                self._store.upsert(staging, chunk, spec.key_fields)
            except MetaSyncError as exc:
                raise StagingWriteError(staging, str(exc)) from exc
            written += len(chunk)

        self.logger.info("Upserted %d records into %s", written, staging)
        return written
