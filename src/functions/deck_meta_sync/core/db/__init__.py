"""Storage, staging, promotion and lock primitives."""

from .memory_store import InMemoryDatasetStore
from .queries import DatasetQueries, QueryResult
from .reader import LiveReader, ReadResult
from .staging_writer import StagingWriter, dedupe_by_key
from .store import DatasetStore, SupabaseDatasetStore
from .swap import StagingInspection, SwapCoordinator
from .translations import TranslationRepository
from .update_lock import UpdateLock

__all__ = [
    "DatasetQueries",
    "DatasetStore",
    "InMemoryDatasetStore",
    "LiveReader",
    "QueryResult",
    "ReadResult",
    "StagingInspection",
    "StagingWriter",
    "SupabaseDatasetStore",
    "SwapCoordinator",
    "TranslationRepository",
    "UpdateLock",
    "dedupe_by_key",
]
