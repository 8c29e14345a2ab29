"""Lock-aware reads of live dataset instances."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..contracts.config import ReadPolicy, ReadSettings
from ..contracts.lock_state import LockState
from ..datasets import get_dataset
from ..errors import UpdateInProgressError
from .store import DatasetStore, OrderBy
from .update_lock import UpdateLock

logger = logging.getLogger(__name__)


@dataclass
class ReadResult:
    records: List[Dict[str, Any]]
    stale: bool
    lock: LockState


class LiveReader:
    """Serves live records after consulting the update lock.

    With ``serve_stale`` an active run only sets the ``stale`` flag; with
    ``reject`` it raises ``UpdateInProgressError``.
    """

    def __init__(self, store: DatasetStore, lock: UpdateLock, settings: Optional[ReadSettings] = None) -> None:
        self._store = store
        self._lock = lock
        self._settings = settings or ReadSettings()

    @property
    def settings(self) -> ReadSettings:
        return self._settings

    def read_lock_state(self) -> LockState:
        return self._lock.state()

    def guard(self) -> LockState:
        state = self._lock.state()
        if state.is_updating and self._settings.policy is ReadPolicy.REJECT:
            logger.info("Rejecting read while update is in progress")
            raise UpdateInProgressError(self._settings.retry_after_seconds)
        return state

    def read_live(
        self,
        dataset: str,
        mode: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> ReadResult:
        state = self.guard()
        table = get_dataset(dataset).live_name(mode)
        records = self._store.select(table, filters=filters, order_by=sort, limit=limit)
        return ReadResult(records=records, stale=state.is_updating, lock=state)
