"""Pipeline stages: one per dataset, executed in dependency order.

Each stage turns its targets into page queries, drives them through the
batch orchestrator and the threshold-ladder fetcher, and normalizes the
parsed rows into dataset records. Stages never write anything; the
runner decides what to commit.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Type

from pydantic import BaseModel, ValidationError

from ..config.ladders import LadderTable
from ..contracts.records import (
    ArchetypeDeckRecord,
    CardImpact,
    CardInfo,
    CardStatRecord,
    DeckCard,
    DeckRecord,
    MatchupRecord,
    Opponent,
    RankStatRecord,
    dump_record,
)
from ..datasets import (
    ARCHETYPE_DECKS,
    CARD_STATS,
    DECKS,
    MATCHUPS,
    MODE_FORMATS,
    PERIODS,
    RANK_STATS,
    RANKS,
    DatasetSpec,
    validate_mode,
)
from ..errors import TargetFailure
from ..fetching.fetcher import Fetcher, PageQuery
from ..fetching.parsers import parse_card_stats, parse_deck_list, parse_matchups, parse_meta_table
from ..reference.cache import ReferenceCache, TranslationCache
from .batch import BatchOrchestrator

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
LiveFallback = Callable[[DatasetSpec, str], List[Record]]

MIN_POPULARITY_PERCENT = 0.2
IMPACT_RANGE = 20.0


def impact_color(value: float) -> str:
    """Red at -20 or below, green at +20 or above, blended in between."""
    if value <= -IMPACT_RANGE:
        return "rgb(255, 0, 0)"
    if value >= IMPACT_RANGE:
        return "rgb(0, 255, 0)"
    ratio = (value + IMPACT_RANGE) / (2 * IMPACT_RANGE)
    red = round(255 * (1 - ratio))
    green = round(255 * ratio)
    return f"rgb({red}, {green}, 0)"


@dataclass(frozen=True)
class StageTarget:
    """One unit of fetch work inside a stage."""

    rank: str
    period: Optional[str] = None
    archetype: Optional[str] = None
    deck_id: Optional[str] = None

    def __str__(self) -> str:
        subject = self.archetype or self.deck_id
        parts = [part for part in (subject, self.period) if part]
        return "@".join(parts + [self.rank]) if parts else self.rank


@dataclass
class StageContext:
    """Per-mode state shared by the stages of one run."""

    mode: str
    run_started_at: datetime
    outputs: Dict[str, List[Record]] = field(default_factory=dict)
    fallback: Optional[LiveFallback] = None
    untranslated: Set[str] = field(default_factory=set)

    @property
    def updated_at(self) -> str:
        return self.run_started_at.isoformat()

    async def upstream(self, spec: DatasetSpec) -> List[Record]:
        """Records produced this run for ``spec``, else the current live data."""
        produced = self.outputs.get(spec.name)
        if produced:
            return produced
        if self.fallback is None:
            return []
        logger.info("No %s records produced this run; reading live %s", spec.name, spec.live_name(self.mode))
        return await asyncio.to_thread(self.fallback, spec, self.mode)


@dataclass
class StageOutput:
    records: List[Record]
    targets: int
    succeeded: int
    failures: List[TargetFailure] = field(default_factory=list)


def _unique(values: Iterable[Optional[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def _build(model: Type[BaseModel], **fields: Any) -> Optional[Record]:
    try:
        return dump_record(model(**fields))
    except ValidationError as exc:
        logger.debug("Dropping invalid %s row: %s", model.__name__, exc)
        return None


class Stage(ABC):
    """Fetches and normalizes the records of one dataset for one mode."""

    dataset: DatasetSpec
    category: str

    def __init__(
        self,
        *,
        mode: str,
        fetcher: Fetcher,
        orchestrator: BatchOrchestrator,
        ladders: LadderTable,
        translations: TranslationCache,
        cards: ReferenceCache[CardInfo],
    ) -> None:
        self.mode = validate_mode(mode)
        self.format = MODE_FORMATS[mode]
        self._fetcher = fetcher
        self._orchestrator = orchestrator
        self._ladders = ladders
        self._translations = translations
        self._cards = cards

    @property
    def name(self) -> str:
        return self.dataset.name

    @property
    def live_table(self) -> str:
        return self.dataset.live_name(self.mode)

    @abstractmethod
    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        ...

    @abstractmethod
    def query(self, target: StageTarget) -> PageQuery:
        ...

    @abstractmethod
    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        ...

    async def collect(self, ctx: StageContext) -> StageOutput:
        targets = await self.targets(ctx)
        if not targets:
            logger.warning("[%s] %s has no targets", self.mode, self.name)
            return StageOutput(records=[], targets=0, succeeded=0)

        category = self._ladders.category(self.category)
        outcomes = await self._orchestrator.run_batch(
            targets,
            category.concurrency,
            category.inter_batch_delay_seconds,
            lambda target: self._fetch_target(ctx, target),
        )

        records: List[Record] = []
        failures: List[TargetFailure] = []
        for outcome in outcomes:
            if outcome.failure is not None:
                failures.append(outcome.failure)
            else:
                records.extend(outcome.value or [])
        return StageOutput(
            records=records,
            targets=len(targets),
            succeeded=len(targets) - len(failures),
            failures=failures,
        )

    async def _fetch_target(self, ctx: StageContext, target: StageTarget) -> List[Record]:
        ladder = self._ladders.resolve(self.category, self.mode, target.rank)
        result = await self._fetcher.fetch(
            self.query(target),
            ladder.thresholds,
            ladder.min_viable_size,
            ladder.per_attempt_timeout_seconds,
        )
        return self.normalize(ctx, target, result.records)

    def localize(self, ctx: StageContext, source_name: str) -> str:
        if not self._translations.is_translated(source_name):
            ctx.untranslated.add(source_name)
        return self._translations.lookup(source_name)

    def deck_cards(self, raw_cards: Sequence[Record]) -> List[DeckCard]:
        """Resolve card ids against the catalog, dropping unknown cards."""
        cards: List[DeckCard] = []
        for raw in raw_cards:
            info = self._cards.get(str(raw.get("dbf_id")))
            if info is None:
                continue
            cards.append(DeckCard(**info.model_dump(), count=str(raw.get("count") or "")))
        return cards

    def _deck_fields(self, ctx: StageContext, target: StageTarget, position: int, row: Record) -> Optional[Record]:
        cards = self.deck_cards(row.get("cards") or [])
        if not cards:
            return None
        return {
            "mode": self.mode,
            "rank": target.rank,
            "updated_at": ctx.updated_at,
            "deck_id": row.get("deck_id"),
            "position": position,
            "legendary_count": sum(1 for card in cards if card.rarity == "LEGENDARY"),
            "deck_code": row.get("deck_code") or "",
            "cards": cards,
            "dust": row.get("dust", 0),
            "games": row.get("games", 0),
            "winrate": row.get("winrate", 0.0),
            "deck_class": row.get("deck_class") or "unknown",
        }


class RankStatsStage(Stage):
    dataset = RANK_STATS
    category = "meta"

    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        return [StageTarget(rank=rank) for rank in RANKS]

    def query(self, target: StageTarget) -> PageQuery:
        return PageQuery(
            path="/meta",
            parser=parse_meta_table,
            params={"rank": target.rank, "format": self.format},
            label=f"meta {self.mode}/{target.rank}",
        )

    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        records: List[Record] = []
        for row in rows:
            if row.get("popularity_percent", 0.0) <= MIN_POPULARITY_PERCENT:
                continue
            record = _build(
                RankStatRecord,
                mode=self.mode,
                rank=target.rank,
                updated_at=ctx.updated_at,
                localized_name=self.localize(ctx, row["name"]),
                **row,
            )
            if record:
                records.append(record)
        return records


class DecksStage(Stage):
    dataset = DECKS
    category = "decks"

    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        return [StageTarget(rank=rank, period=period) for rank in RANKS for period in PERIODS]

    def query(self, target: StageTarget) -> PageQuery:
        return PageQuery(
            path="/decks",
            parser=parse_deck_list,
            params={"rank": target.rank, "format": self.format, "period": target.period or "all_time"},
            label=f"decks {self.mode}/{target.rank}/{target.period}",
        )

    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        records: List[Record] = []
        for position, row in enumerate(rows):
            fields = self._deck_fields(ctx, target, position, row)
            if fields is None:
                continue
            name = row.get("name") or "Unknown Deck"
            record = _build(
                DeckRecord,
                period=target.period,
                name=name,
                localized_name=self.localize(ctx, name),
                **fields,
            )
            if record:
                records.append(record)
        return records


class CardStatsStage(Stage):
    dataset = CARD_STATS
    category = "card_stats"

    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        archetypes = _unique(row.get("name") for row in await ctx.upstream(RANK_STATS))
        return [StageTarget(rank=rank, archetype=name) for name in archetypes for rank in RANKS]

    def query(self, target: StageTarget) -> PageQuery:
        return PageQuery(
            path="/card-stats",
            parser=parse_card_stats,
            params={"archetype": target.archetype or "", "rank": target.rank, "format": self.format},
            label=f"card stats {self.mode}/{target}",
        )

    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        cards: List[CardImpact] = []
        for row in rows:
            info = self._cards.get(str(row.get("dbf_id")))
            if info is None:
                continue
            impacts = {
                key: float(row.get(key, 0.0))
                for key in ("mulligan_impact", "drawn_impact", "kept_impact")
            }
            colors = {f"{key}_color": impact_color(value) for key, value in impacts.items()}
            cards.append(CardImpact(**info.model_dump(), **impacts, **colors))
        if not cards:
            return []
        record = _build(
            CardStatRecord,
            mode=self.mode,
            rank=target.rank,
            updated_at=ctx.updated_at,
            archetype=target.archetype,
            cards=cards,
        )
        return [record] if record else []


class ArchetypeDecksStage(Stage):
    dataset = ARCHETYPE_DECKS
    category = "archetype_decks"

    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        archetypes = _unique(row.get("name") for row in await ctx.upstream(RANK_STATS))
        return [StageTarget(rank=rank, archetype=name) for name in archetypes for rank in RANKS]

    def query(self, target: StageTarget) -> PageQuery:
        return PageQuery(
            path="/decks",
            parser=parse_deck_list,
            params={
                "player_deck_archetype[]": target.archetype or "",
                "rank": target.rank,
                "format": self.format,
            },
            label=f"archetype decks {self.mode}/{target}",
        )

    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        name = target.archetype or ""
        localized = self.localize(ctx, name)
        records: List[Record] = []
        for position, row in enumerate(rows):
            fields = self._deck_fields(ctx, target, position, row)
            if fields is None:
                continue
            record = _build(ArchetypeDeckRecord, name=name, localized_name=localized, **fields)
            if record:
                records.append(record)
        return records


class MatchupsStage(Stage):
    dataset = MATCHUPS
    category = "matchups"

    async def targets(self, ctx: StageContext) -> List[StageTarget]:
        rows = await ctx.upstream(DECKS) + await ctx.upstream(ARCHETYPE_DECKS)
        deck_ids = _unique(row.get("deck_id") for row in rows)
        return [StageTarget(rank=rank, deck_id=deck_id) for deck_id in deck_ids for rank in RANKS]

    def query(self, target: StageTarget) -> PageQuery:
        return PageQuery(
            path=f"/deck/{target.deck_id}",
            parser=parse_matchups,
            params={"rank": target.rank},
            label=f"matchups {self.mode}/{target}",
        )

    def normalize(self, ctx: StageContext, target: StageTarget, rows: List[Record]) -> List[Record]:
        opponents = [Opponent(**row) for row in rows]
        if not opponents:
            return []
        record = _build(
            MatchupRecord,
            mode=self.mode,
            rank=target.rank,
            updated_at=ctx.updated_at,
            deck_id=target.deck_id,
            opponents=opponents,
        )
        return [record] if record else []


STAGE_TYPES: Sequence[Type[Stage]] = (
    RankStatsStage,
    DecksStage,
    CardStatsStage,
    ArchetypeDecksStage,
    MatchupsStage,
)


def build_stages(
    mode: str,
    *,
    fetcher: Fetcher,
    orchestrator: BatchOrchestrator,
    ladders: LadderTable,
    translations: TranslationCache,
    cards: ReferenceCache[CardInfo],
) -> List[Stage]:
    """Instantiate every stage for ``mode`` in dependency order."""
    return [
        stage_type(
            mode=mode,
            fetcher=fetcher,
            orchestrator=orchestrator,
            ladders=ladders,
            translations=translations,
            cards=cards,
        )
        for stage_type in STAGE_TYPES
    ]
