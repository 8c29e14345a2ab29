"""Shared fakes and sample pages for the deck meta sync tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from src.functions.deck_meta_sync.core.config.ladders import LadderTable, parse_ladder_table
from src.functions.deck_meta_sync.core.datasets import DatasetSpec
from src.functions.deck_meta_sync.core.db.memory_store import InMemoryDatasetStore
from src.functions.deck_meta_sync.core.errors import StoreError, TargetFailure
from src.functions.deck_meta_sync.core.orchestration.stages import StageContext, StageOutput
from src.functions.deck_meta_sync.core.reference.cache import ReferenceCache, TranslationCache
from src.functions.deck_meta_sync.core.reference.card_catalog import index_catalog


CATALOG: List[Dict[str, Any]] = [
    {"dbfId": 1001, "id": "CORE_001", "cost": 1, "rarity": "COMMON", "name": "Righteous Protector"},
    {"dbfId": 1002, "id": "CORE_002", "cost": 2, "rarity": "RARE", "name": "Knife Juggler"},
    {"dbfId": 1003, "id": "CORE_003", "cost": 5, "rarity": "LEGENDARY", "name": "Leeroy Jenkins"},
]

TRANSLATIONS = {"Aggro Paladin": "快攻圣骑士"}


async def no_sleep(_seconds: float) -> None:
    return None


def make_card_cache() -> ReferenceCache:
    cache = ReferenceCache("cards", lambda: index_catalog(CATALOG))
    cache.init()
    return cache


def make_translation_cache(entries: Optional[Dict[str, str]] = None) -> TranslationCache:
    mapping = dict(TRANSLATIONS if entries is None else entries)
    cache = TranslationCache("translations", lambda: mapping)
    cache.init()
    return cache


def flat_ladders(**category_overrides: Dict[str, Any]) -> LadderTable:
    """Ladder table with a single default rung and no delays for every category."""
    categories: Dict[str, Any] = {
        name: {"ladder": [None]} for name in ("meta", "decks", "card_stats", "archetype_decks", "matchups")
    }
    for name, body in category_overrides.items():
        categories[name] = {**categories[name], **body}
    return parse_ladder_table(
        {
            "version": 1,
            "defaults": {"min_viable_size": 1, "concurrency": 2, "inter_batch_delay_seconds": 0},
            "categories": categories,
        }
    )


# --- HTML pages -----------------------------------------------------------


def meta_page(rows: Iterable[Dict[str, Any]]) -> str:
    body = "".join(
        f"""
        <tr>
          <td class="decklist-info {row.get('deck_class', 'paladin')}">
            <a class="basic-black-text">{row['name']}</a>
          </td>
          <td><span class="basic-black-text">{row.get('winrate', 50.0)}</span></td>
          <td>{row.get('popularity_percent', 1.0)}% ({row.get('popularity_num', 100)})</td>
          <td>{row.get('climbing_speed', 1.5)} ⭐/h</td>
        </tr>"""
        for row in rows
    )
    return f"<html><body><table><tbody>{body}</tbody></table></body></html>"


def deck_page(decks: Iterable[Dict[str, Any]]) -> str:
    blocks = []
    for deck in decks:
        cards = "".join(
            f"""<div phx-value-card_id="{card_id}">
                  <span class="card-number deck-text decklist-card-background">{count}</span>
                </div>"""
            for card_id, count in deck.get("cards", [("1001", "2")])
        )
        blocks.append(
            f"""
            <div id="deck_stats-{deck['deck_id']}">
              <div class="decklist-info dust-bar {deck.get('deck_class', 'paladin')}">
                <div class="dust-bar-inner">{deck.get('dust', '1,200')}</div>
              </div>
              <div class="deck-title">
                <a class="basic-black-text">{deck.get('name', 'Aggro Paladin')}</a>
                <span style="font-size: 0">{deck.get('deck_code', 'AAECAZ8F')}</span>
              </div>
              <div class="column tag">{deck.get('winrate', 55.5)}% Games: {deck.get('games', 300)}</div>
              {cards}
            </div>"""
        )
    return f"<html><body>{''.join(blocks)}</body></html>"


def card_stats_page(cards: Iterable[Dict[str, Any]]) -> str:
    body = "".join(
        f"""
        <tr>
          <td><div class="decklist-card card-{card['dbf_id']}"></div></td>
          <td><span class="basic-black-text">{card.get('mulligan', 0)}</span></td>
          <td><span class="basic-black-text">{card.get('drawn', 0)}</span></td>
          <td><span class="basic-black-text">{card.get('kept', 0)}</span></td>
        </tr>"""
        for card in cards
    )
    return f"<html><body><table><tbody>{body}</tbody></table></body></html>"


def matchup_page(rows: Iterable[Dict[str, Any]]) -> str:
    body = []
    for row in rows:
        if row["opponent_class"] == "total":
            first = "<td>Total</td>"
        else:
            first = f'<td><span class="tag player-name {row["opponent_class"]}">x</span></td>'
        body.append(
            f"""<tr>{first}
                 <td><span class="basic-black-text">{row.get('winrate', 50)}</span></td>
                 <td>{row.get('total', 100)}</td></tr>"""
        )
    return f"<html><body><table><tbody>{''.join(body)}</tbody></table></body></html>"


# --- Runner fakes ---------------------------------------------------------


class FakeStage:
    """Stage stand-in returning canned records."""

    def __init__(
        self,
        dataset: DatasetSpec,
        mode: str,
        records: Sequence[Dict[str, Any]] = (),
        *,
        failed_targets: Sequence[str] = (),
        error: Optional[Exception] = None,
        on_collect: Optional[Callable[[StageContext], None]] = None,
    ) -> None:
        self.dataset = dataset
        self.mode = mode
        self.records = [dict(record) for record in records]
        self.failed_targets = list(failed_targets)
        self.error = error
        self.on_collect = on_collect
        self.calls = 0

    @property
    def name(self) -> str:
        return self.dataset.name

    @property
    def live_table(self) -> str:
        return self.dataset.live_name(self.mode)

    async def collect(self, ctx: StageContext) -> StageOutput:
        self.calls += 1
        if self.on_collect is not None:
            self.on_collect(ctx)
        if self.error is not None:
            raise self.error
        failures = [TargetFailure(target, RuntimeError("boom")) for target in self.failed_targets]
        targets = (1 if self.records else 0) + len(failures)
        return StageOutput(
            records=list(self.records),
            targets=targets,
            succeeded=targets - len(failures),
            failures=failures,
        )


class FailingStore(InMemoryDatasetStore):
    """In-memory store whose upserts into ``fail_on`` raise."""

    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on

    def upsert(self, name, records, key_fields):
        if name == self.fail_on:
            raise StoreError(f"upsert into {name} failed: simulated outage")
        return super().upsert(name, records, key_fields)


def rank_rows(count: int, *, rank: str = "top_legend", prefix: str = "Deck") -> List[Dict[str, Any]]:
    return [{"rank": rank, "name": f"{prefix} {index}", "winrate": 50.0 + index} for index in range(count)]


def card_stat_rows(count: int, *, rank: str = "top_legend", prefix: str = "Arch") -> List[Dict[str, Any]]:
    return [{"rank": rank, "archetype": f"{prefix} {index}", "cards": []} for index in range(count)]
