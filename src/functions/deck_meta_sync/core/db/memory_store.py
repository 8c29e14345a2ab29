"""In-process ``DatasetStore`` used for dry runs and tests."""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..contracts.lock_state import LOCK_ROW_ID, LockState
from ..datasets import backup_name
from ..errors import StoreError
from .store import OrderBy


class _Instance:
    __slots__ = ("key_fields", "rows")

    def __init__(self, key_fields: Tuple[str, ...] = ()) -> None:
        self.key_fields = key_fields
        self.rows: Dict[Tuple[Any, ...], Dict[str, Any]] = {}


class InMemoryDatasetStore:
    """Dict-backed store with the same instance semantics as the SQL functions.

    Staging instances copy their key fields from the live instance, else from
    the backup. With ``require_template`` a staging instance without either
    is refused, like ``meta_dataset_create_staging``; otherwise it starts
    without key fields so dry runs can begin from an empty store.
    """

    def __init__(self, *, require_template: bool = False) -> None:
        self._require_template = require_template
        self._instances: Dict[str, _Instance] = {}
        self._lock_row: Optional[Dict[str, Any]] = None
        self._mutex = threading.RLock()

    def seed(self, name: str, records: Sequence[Mapping[str, Any]], key_fields: Sequence[str]) -> None:
        """Create ``name`` (replacing it) holding ``records``."""
        with self._mutex:
            self._instances[name] = _Instance(tuple(key_fields))
        self.upsert(name, records, key_fields)

    def instances(self) -> List[str]:
        with self._mutex:
            return sorted(self._instances)

    def instance_exists(self, name: str) -> bool:
        with self._mutex:
            return name in self._instances

    def create_staging(self, live: str, staging: str) -> None:
        with self._mutex:
            template = self._instances.get(live) or self._instances.get(backup_name(live))
            if template is None and self._require_template:
                raise StoreError(f"create {staging} failed: neither {live} nor its backup exists")
            self._instances[staging] = _Instance(template.key_fields if template else ())

    def drop_instance(self, name: str) -> None:
        with self._mutex:
            self._instances.pop(name, None)

    def rename_instance(self, source: str, target: str) -> None:
        with self._mutex:
            if source not in self._instances:
                raise StoreError(f"rename failed: {source} does not exist")
            if target in self._instances:
                raise StoreError(f"rename failed: {target} already exists")
            self._instances[target] = self._instances.pop(source)

    def upsert(self, name: str, records: Sequence[Mapping[str, Any]], key_fields: Sequence[str]) -> int:
        key_fields = tuple(key_fields)
        with self._mutex:
            instance = self._instances.get(name)
            if instance is None:
                raise StoreError(f"upsert into {name} failed: relation does not exist")
            if not instance.key_fields:
                instance.key_fields = key_fields
            for record in records:
                try:
                    key = tuple(record[field] for field in key_fields)
                except KeyError as exc:
                    raise StoreError(f"upsert into {name} failed: missing key field {exc}") from exc
                instance.rows[key] = copy.deepcopy(dict(record))
        return len(records)

    def select(
        self,
        name: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._mutex:
            instance = self._instances.get(name)
            if instance is None:
                raise StoreError(f"select from {name} failed: relation does not exist")
            rows = [copy.deepcopy(row) for row in instance.rows.values()]
        if filters:
            rows = [row for row in rows if all(row.get(col) == value for col, value in filters.items())]
        for column, descending in reversed(list(order_by or ())):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=descending)
        return rows[:limit] if limit is not None else rows

    def count(self, name: str) -> int:
        with self._mutex:
            instance = self._instances.get(name)
            if instance is None:
                raise StoreError(f"count {name} failed: relation does not exist")
            return len(instance.rows)

    def ensure_lock(self) -> None:
        with self._mutex:
            if self._lock_row is None:
                self._lock_row = {"id": LOCK_ROW_ID, "is_updating": False}

    def read_lock(self) -> Optional[Dict[str, Any]]:
        with self._mutex:
            return dict(self._lock_row) if self._lock_row is not None else None

    def update_lock(
        self,
        values: Mapping[str, Any],
        *,
        expect_updating: Optional[bool] = None,
        locked_before: Optional[datetime] = None,
        holder: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        with self._mutex:
            row = self._lock_row
            if row is None:
                return None
            if expect_updating is not None and bool(row.get("is_updating")) != expect_updating:
                return None
            if locked_before is not None:
                locked_at = LockState.from_row(row).locked_at
                if locked_at is None or not locked_at < locked_before:
                    return None
            if holder is not None and row.get("holder") != holder:
                return None
            row.update(copy.deepcopy(dict(values)))
            return dict(row)
