"""Storage backends for dataset instances and the update lock row.

A dataset instance is a physical table (``decks``, ``decks_staging``,
``decks_backup``). Creating, dropping and renaming instances goes through
SQL functions (see ``sql/schema.sql``) because PostgREST cannot issue DDL;
record reads and writes use the regular table API.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx
from postgrest.exceptions import APIError

from ..contracts.lock_state import LOCK_ROW_ID
from ..errors import StoreError

logger = logging.getLogger(__name__)

OrderBy = Sequence[Tuple[str, bool]]

PAGE_SIZE = 1000
# PostgREST answers these while its schema cache has not seen a new table yet.
SCHEMA_CACHE_CODES = {"PGRST205", "42P01"}


class DatasetStore(Protocol):
    """Operations the pipeline needs from the backing database."""

    def instance_exists(self, name: str) -> bool:
        ...

    def create_staging(self, live: str, staging: str) -> None:
        ...

    def drop_instance(self, name: str) -> None:
        ...

    def rename_instance(self, source: str, target: str) -> None:
        ...

    def upsert(self, name: str, records: Sequence[Mapping[str, Any]], key_fields: Sequence[str]) -> int:
        ...

    def select(
        self,
        name: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    def count(self, name: str) -> int:
        ...

    def ensure_lock(self) -> None:
        ...

    def read_lock(self) -> Optional[Dict[str, Any]]:
        ...

    def update_lock(
        self,
        values: Mapping[str, Any],
        *,
        expect_updating: Optional[bool] = None,
        locked_before: Optional[datetime] = None,
        holder: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        ...


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except APIError as exc:
        raise StoreError(f"{operation} failed: {exc.message or exc}") from exc
    except httpx.HTTPError as exc:
        raise StoreError(f"{operation} failed: {exc}") from exc


class SupabaseDatasetStore:
    """``DatasetStore`` backed by Supabase tables and SQL functions."""

    def __init__(
        self,
        client: Any,
        *,
        lock_table: str = "pipeline_lock",
        schema_retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self._client = client
        self._lock_table = lock_table
        self._schema_retries = schema_retries
        self._retry_delay = retry_delay

    def _rpc(self, function: str, params: Dict[str, Any]) -> Any:
        with _store_errors(f"rpc {function}"):
            return self._client.rpc(function, params).execute().data

    def _with_schema_retry(self, operation: str, call):
        for attempt in range(1, self._schema_retries + 1):
            try:
                with _store_errors(operation):
                    return call()
            except StoreError as exc:
                code = getattr(exc.__cause__, "code", None)
                if code not in SCHEMA_CACHE_CODES or attempt == self._schema_retries:
                    raise
                logger.debug("%s hit a stale schema cache (attempt %d), retrying", operation, attempt)
                time.sleep(self._retry_delay * attempt)
        raise StoreError(f"{operation} failed")

    def instance_exists(self, name: str) -> bool:
        return bool(self._rpc("meta_dataset_exists", {"p_name": name}))

    def create_staging(self, live: str, staging: str) -> None:
        self._rpc("meta_dataset_create_staging", {"p_live": live, "p_staging": staging})

    def drop_instance(self, name: str) -> None:
        self._rpc("meta_dataset_drop", {"p_name": name})

    def rename_instance(self, source: str, target: str) -> None:
        self._rpc("meta_dataset_rename", {"p_from": source, "p_to": target})

    def upsert(self, name: str, records: Sequence[Mapping[str, Any]], key_fields: Sequence[str]) -> int:
        if not records:
            return 0
        conflict = ",".join(key_fields)
        payload = [dict(record) for record in records]
        self._with_schema_retry(
            f"upsert into {name}",
            lambda: self._client.table(name).upsert(payload, on_conflict=conflict).execute(),
        )
        return len(payload)

    def select(
        self,
        name: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_size = PAGE_SIZE if limit is None else min(PAGE_SIZE, limit - len(rows))
            if page_size <= 0:
                break
            query = self._client.table(name).select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            for column, descending in order_by or ():
                query = query.order(column, desc=descending)
            query = query.range(offset, offset + page_size - 1)
            with _store_errors(f"select from {name}"):
                page = query.execute().data or []
            rows.extend(page)
            if len(page) < page_size:
                break
            offset += page_size
        return rows

    def count(self, name: str) -> int:
        with _store_errors(f"count {name}"):
            response = self._client.table(name).select("*", count="exact").limit(1).execute()
        return int(response.count or 0)

    def ensure_lock(self) -> None:
        row = {"id": LOCK_ROW_ID, "is_updating": False}
        with _store_errors("create lock row"):
            self._client.table(self._lock_table).upsert(
                row, on_conflict="id", ignore_duplicates=True
            ).execute()

    def read_lock(self) -> Optional[Dict[str, Any]]:
        with _store_errors("read lock row"):
            response = (
                self._client.table(self._lock_table).select("*").eq("id", LOCK_ROW_ID).limit(1).execute()
            )
        rows = response.data or []
        return rows[0] if rows else None

    def update_lock(
        self,
        values: Mapping[str, Any],
        *,
        expect_updating: Optional[bool] = None,
        locked_before: Optional[datetime] = None,
        holder: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        # A single UPDATE ... WHERE is the compare-and-set; no prior read.
        query = self._client.table(self._lock_table).update(dict(values)).eq("id", LOCK_ROW_ID)
        if expect_updating is not None:
            query = query.eq("is_updating", expect_updating)
        if locked_before is not None:
            query = query.lt("locked_at", locked_before.isoformat())
        if holder is not None:
            query = query.eq("holder", holder)
        with _store_errors("update lock row"):
            rows = query.execute().data or []
        return rows[0] if rows else None
