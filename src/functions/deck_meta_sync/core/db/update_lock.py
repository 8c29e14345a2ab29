"""Run-exclusivity guard stored as a singleton lock row."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from ..contracts.lock_state import LockState, utcnow
from ..errors import LockContentionError, StoreError
from .store import DatasetStore

logger = logging.getLogger(__name__)


class UpdateLock:
    """Idle/Running flag shared by the pipeline and the read layer.

    ``acquire`` is a single conditional update (``is_updating = false``), so
    two concurrent triggers can never both win. A lock older than
    ``stale_after`` may be taken over through the same conditional update
    keyed on ``locked_at``.
    """

    def __init__(
        self,
        store: DatasetStore,
        *,
        stale_after: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._stale_after = stale_after
        self._clock = clock

    def state(self) -> LockState:
        return LockState.from_row(self._store.read_lock())

    def acquire(self, holder: str) -> LockState:
        self._store.ensure_lock()
        now = self._clock()
        values = {"is_updating": True, "locked_at": now.isoformat(), "holder": holder}

        row = self._store.update_lock(values, expect_updating=False)
        if row is None and self._stale_after:
            row = self._store.update_lock(
                values,
                expect_updating=True,
                locked_before=now - self._stale_after,
            )
            if row is not None:
                logger.warning("Took over stale update lock (older than %s)", self._stale_after)

        if row is None:
            current = self.state()
            locked_at = current.locked_at.isoformat() if current.locked_at else None
            raise LockContentionError(locked_at)

        logger.info("Update lock acquired by %s", holder)
        return LockState.from_row(row)

    def release(self, holder: Optional[str] = None) -> LockState:
        """Return to Idle. Unfinished promotion entries stay for roll-forward.

        With ``holder`` the update only applies while that holder still owns
        the lock; a run whose lock was taken over as stale leaves the new
        holder in place. Without ``holder`` the lock is cleared unconditionally.
        """
        values = {
            "is_updating": False,
            "unlocked_at": self._clock().isoformat(),
            "holder": None,
        }
        row = self._store.update_lock(values, holder=holder)
        if row is None:
            current = self._store.read_lock()
            if holder is not None and current is not None:
                logger.warning(
                    "Update lock no longer held by %s (now %s); leaving it in place", holder, current.get("holder")
                )
                return LockState.from_row(current)
            raise StoreError("lock row missing on release")
        logger.info("Update lock released")
        return LockState.from_row(row)

    def record_pending(self, tables: Sequence[str]) -> None:
        """Journal the tables about to be promoted."""
        self._write_pending(list(tables))

    def complete_pending(self, table: str) -> None:
        remaining = [name for name in self.state().pending_promotion if name != table]
        self._write_pending(remaining)

    def pending(self) -> List[str]:
        return list(self.state().pending_promotion)

    def _write_pending(self, tables: List[str]) -> None:
        if self._store.update_lock({"pending_promotion": tables}) is None:
            raise StoreError("lock row missing while journaling promotion")
