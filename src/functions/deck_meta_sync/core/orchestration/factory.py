"""Wiring of stores, reference caches, readers and the pipeline runner."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from src.shared.db.connection import SupabaseConfig, get_supabase_client

from ..config.ladders import LadderTable, load_ladder_table
from ..contracts.config import PipelineConfig, ReadSettings, SourceSettings, SupabaseSettings
from ..contracts.records import CardInfo
from ..contracts.run_report import RunReport
from ..datasets import DatasetSpec
from ..db.memory_store import InMemoryDatasetStore
from ..db.queries import DatasetQueries
from ..db.reader import LiveReader
from ..db.staging_writer import StagingWriter
from ..db.store import DatasetStore, SupabaseDatasetStore
from ..db.swap import SwapCoordinator
from ..db.translations import TranslationRepository
from ..db.update_lock import UpdateLock
from ..errors import StoreError
from ..fetching.fetcher import Fetcher
from ..fetching.http_client import PageClient
from ..monitoring.error_handler import ErrorHandler
from ..reference.cache import ReferenceCache, TranslationCache
from ..reference.card_catalog import build_card_cache
from .batch import BatchOrchestrator
from .config_loader import (
    build_pipeline_config,
    build_read_settings,
    build_source_settings,
    build_supabase_settings,
)
from .runner import PipelineRunner
from .stages import LiveFallback, build_stages

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATION_TABLE = "deck_translations"


@dataclass
class MetaSyncServices:
    """Long-lived collaborators shared by the runner, readers and admin tools."""

    config: PipelineConfig
    source: SourceSettings
    store: DatasetStore
    lock: UpdateLock
    writer: StagingWriter
    swap: SwapCoordinator
    translation_repository: TranslationRepository
    translations: TranslationCache
    cards: ReferenceCache[CardInfo]
    reader: LiveReader
    queries: DatasetQueries
    ladders: LadderTable

    @property
    def references(self) -> List[ReferenceCache]:
        return [self.translations, self.cards]


def build_store(
    config: PipelineConfig, supabase: Optional[SupabaseSettings] = None
) -> tuple[DatasetStore, str]:
    """Return the backing store and the translation table name."""

    if config.dry_run:
        logger.info("Dry run: using the in-memory dataset store")
        store = InMemoryDatasetStore()
        store.seed(DEFAULT_TRANSLATION_TABLE, [], ("source_name",))
        return store, DEFAULT_TRANSLATION_TABLE

    settings = supabase or build_supabase_settings()
    client = get_supabase_client(
        SupabaseConfig(url=str(settings.url), key=settings.key, schema=settings.schema_name)
    )
    return SupabaseDatasetStore(client, lock_table=settings.lock_table), settings.translation_table


def live_fallback(store: DatasetStore) -> LiveFallback:
    """Read the current live instance; a missing instance reads as empty."""

    def read(spec: DatasetSpec, mode: str) -> List[Dict[str, Any]]:
        table = spec.live_name(mode)
        try:
            return store.select(table)
        except StoreError as exc:
            logger.warning("Live %s unavailable for fallback: %s", table, exc)
            return []

    return read


def build_services(
    config: Optional[PipelineConfig] = None,
    *,
    store: Optional[DatasetStore] = None,
    translation_table: str = DEFAULT_TRANSLATION_TABLE,
    source: Optional[SourceSettings] = None,
    read_settings: Optional[ReadSettings] = None,
    supabase: Optional[SupabaseSettings] = None,
    ladders: Optional[LadderTable] = None,
    cards: Optional[ReferenceCache[CardInfo]] = None,
) -> MetaSyncServices:
    config = config or build_pipeline_config()
    source = source or build_source_settings()
    if store is None:
        store, translation_table = build_store(config, supabase)

    stale_after = (
        timedelta(minutes=config.lock_stale_after_minutes) if config.lock_stale_after_minutes else None
    )
    lock = UpdateLock(store, stale_after=stale_after)
    repository = TranslationRepository(store, translation_table)
    translations = TranslationCache("translations", repository.load_all)
    if cards is None:
        cards = build_card_cache(str(source.card_catalog_url), timeout=source.request_timeout_seconds)
    reader = LiveReader(store, lock, read_settings or build_read_settings())

    return MetaSyncServices(
        config=config,
        source=source,
        store=store,
        lock=lock,
        writer=StagingWriter(store, chunk_size=config.upsert_chunk_size),
        swap=SwapCoordinator(store),
        translation_repository=repository,
        translations=translations,
        cards=cards,
        reader=reader,
        queries=DatasetQueries(reader),
        ladders=ladders or load_ladder_table(config.ladder_config_path),
    )


@asynccontextmanager
async def open_runner(
    services: MetaSyncServices,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    errors: Optional[ErrorHandler] = None,
) -> AsyncIterator[PipelineRunner]:
    """Yield a runner whose stages share one HTTP client for the run."""

    async with PageClient(services.source, transport=transport) as client:
        fetcher = Fetcher(client, attempt_delay=services.source.attempt_delay_seconds)
        orchestrator = BatchOrchestrator()

        def stage_factory(mode: str):
            return build_stages(
                mode,
                fetcher=fetcher,
                orchestrator=orchestrator,
                ladders=services.ladders,
                translations=services.translations,
                cards=services.cards,
            )

        yield PipelineRunner(
            lock=services.lock,
            writer=services.writer,
            swap=services.swap,
            stage_factory=stage_factory,
            references=services.references,
            errors=errors or ErrorHandler(),
            live_fallback=live_fallback(services.store),
            inter_stage_delay=services.config.inter_stage_delay_seconds,
        )


async def run_pipeline(
    services: MetaSyncServices,
    modes: Optional[Sequence[str]] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RunReport:
    async with open_runner(services, transport=transport) as runner:
        return await runner.run(modes or services.config.modes)
