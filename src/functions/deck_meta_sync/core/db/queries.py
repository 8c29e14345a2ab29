"""Read-side projections served by the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from ..datasets import ARCHETYPE_DECKS, CARD_STATS, DECKS, MATCHUPS, PERIODS, RANK_STATS, RANKS
from .reader import LiveReader, ReadResult


@dataclass
class QueryResult:
    mode: str
    data: Dict[str, Any]
    stale: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "mode": self.mode, "stale": self.stale, "data": self.data}


def _by_rank(records: List[Dict[str, Any]], field: str = "") -> Dict[str, Any]:
    grouped: Dict[str, Any] = {rank: [] for rank in RANKS}
    for record in records:
        rank = record.get("rank")
        if rank not in grouped:
            continue
        if field:
            grouped[rank] = record.get(field) or []
        else:
            grouped[rank].append(record)
    return grouped


class DatasetQueries:
    """Domain queries over the live datasets, grouped by rank bracket."""

    def __init__(self, reader: LiveReader) -> None:
        self._reader = reader

    def _result(self, mode: str, read: ReadResult, field: str = "") -> QueryResult:
        return QueryResult(mode=mode, data=_by_rank(read.records, field), stale=read.stale)

    def rank_stats(self, mode: str) -> QueryResult:
        read = self._reader.read_live(RANK_STATS.name, mode, sort=[("winrate", True)])
        return self._result(mode, read)

    def decks(self, mode: str, period: str = "all_time") -> QueryResult:
        if period not in PERIODS:
            raise ValueError(f"period must be one of: {', '.join(PERIODS)}")
        read = self._reader.read_live(DECKS.name, mode, filters={"period": period}, sort=[("position", False)])
        result = self._result(mode, read)
        result.data = {"period": period, "ranks": result.data}
        return result

    def card_stats(self, mode: str, archetype: str) -> QueryResult:
        read = self._reader.read_live(CARD_STATS.name, mode, filters={"archetype": archetype})
        return self._result(mode, read, field="cards")

    def archetype_decks(self, mode: str, name: str) -> QueryResult:
        read = self._reader.read_live(
            ARCHETYPE_DECKS.name, mode, filters={"name": name}, sort=[("position", False)]
        )
        return self._result(mode, read)

    def matchups(self, mode: str, deck_id: str) -> QueryResult:
        read = self._reader.read_live(MATCHUPS.name, mode, filters={"deck_id": deck_id})
        return self._result(mode, read, field="opponents")
