"""Persistence for translation reference entries."""

from __future__ import annotations

import logging
from typing import Dict

from .store import DatasetStore

logger = logging.getLogger(__name__)

KEY_FIELDS = ("source_name",)


class TranslationRepository:
    """Reads and writes ``{source_name, localized_name}`` rows."""

    def __init__(self, store: DatasetStore, table: str = "deck_translations") -> None:
        self._store = store
        self._table = table

    def load_all(self) -> Dict[str, str]:
        rows = self._store.select(self._table)
        mapping: Dict[str, str] = {}
        for row in rows:
            source = (row.get("source_name") or "").strip()
            localized = (row.get("localized_name") or "").strip()
            if source and localized:
                mapping[source] = localized
        return mapping

    def upsert(self, source_name: str, localized_name: str) -> None:
        source_name = source_name.strip()
        localized_name = localized_name.strip()
        if not source_name or not localized_name:
            raise ValueError("source_name and localized_name must be non-empty")
        self._store.upsert(
            self._table,
            [{"source_name": source_name, "localized_name": localized_name}],
            KEY_FIELDS,
        )
        logger.info("Stored translation for %s", source_name)
