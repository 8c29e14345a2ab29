"""Reloadable in-memory lookup tables."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Generic, Mapping, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

V = TypeVar("V")


class ReferenceCache(Generic[V]):
    """Keyed lookup service with an explicit init/reload lifecycle.

    ``reload`` builds a complete new mapping from the loader and then swaps
    the reference in one assignment, so concurrent readers observe either
    the previous mapping or the new one and never a partial map. A failed
    reload keeps the previous mapping.
    """

    def __init__(self, name: str, loader: Callable[[], Mapping[str, V]]) -> None:
        self.name = name
        self._loader = loader
        self._entries: Optional[Mapping[str, V]] = None
        self.loaded_at: Optional[datetime] = None

    @property
    def loaded(self) -> bool:
        return self._entries is not None

    @property
    def size(self) -> int:
        return len(self._entries) if self._entries is not None else 0

    def init(self) -> None:
        self.reload()

    def ensure_loaded(self) -> None:
        if not self.loaded:
            self.reload()

    def reload(self) -> int:
        fresh = dict(self._loader())
        self._entries = MappingProxyType(fresh)
        self.loaded_at = datetime.now(timezone.utc)
        logger.info("Loaded %d entries into %s cache", len(fresh), self.name)
        return len(fresh)

    def snapshot(self) -> Mapping[str, V]:
        entries = self._entries
        if entries is None:
            raise RuntimeError(f"{self.name} cache used before init()")
        return entries

    def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        return self.snapshot().get(key, default)

    def lookup(self, key: str) -> Union[V, str]:
        """Entry for ``key``, or ``key`` itself when there is none."""
        return self.snapshot().get(key, key)

    def __contains__(self, key: object) -> bool:
        return key in self.snapshot()


class TranslationCache(ReferenceCache[str]):
    """Source name to localized name; unknown names map to themselves."""

    def is_translated(self, source_name: str) -> bool:
        return source_name in self.snapshot()
