"""Normalized record models written to the meta datasets."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..datasets import PERIODS, RANKS


class CardInfo(BaseModel):
    """Card metadata resolved from the card catalog."""

    dbf_id: int = Field(..., description="Card database id")
    card_id: str = Field(..., description="Card string id")
    cost: Optional[int] = None
    rarity: Optional[str] = None
    name: str

    @classmethod
    def from_catalog(cls, entry: Dict[str, Any]) -> "CardInfo":
        return cls(
            dbf_id=int(entry["dbfId"]),
            card_id=str(entry["id"]),
            cost=entry.get("cost"),
            rarity=entry.get("rarity"),
            name=entry.get("name") or str(entry["id"]),
        )


class DeckCard(CardInfo):
    """A card inside a deck list; ``count`` is the site's count badge (e.g. "2" or a star)."""

    count: str = ""


class CardImpact(CardInfo):
    """Per-card impact statistics for an archetype."""

    mulligan_impact: float = 0.0
    drawn_impact: float = 0.0
    kept_impact: float = 0.0
    mulligan_impact_color: str = ""
    drawn_impact_color: str = ""
    kept_impact_color: str = ""


class Opponent(BaseModel):
    opponent_class: str
    winrate: float = 0.0
    total: int = 0


class _RankedRecord(BaseModel):
    mode: str
    rank: str
    updated_at: str

    @field_validator("rank")
    @classmethod
    def _validate_rank(cls, value: str) -> str:
        if value not in RANKS:
            raise ValueError(f"unknown rank '{value}'")
        return value


class RankStatRecord(_RankedRecord):
    """Archetype popularity and performance within a rank bracket."""

    name: str = Field(..., min_length=1)
    localized_name: str
    deck_class: str = "unknown"
    winrate: float = 0.0
    popularity_percent: float = 0.0
    popularity_num: int = 0
    climbing_speed: float = 0.0


class DeckRecord(_RankedRecord):
    """One deck list as ranked on the decks page."""

    deck_id: str = Field(..., min_length=1)
    period: str = "all_time"
    position: int = Field(..., ge=0)
    name: str
    localized_name: str
    legendary_count: int = 0
    deck_code: str = ""
    cards: List[DeckCard] = Field(default_factory=list)
    dust: int = 0
    games: int = 0
    winrate: float = 0.0
    deck_class: str = "unknown"

    @field_validator("period")
    @classmethod
    def _validate_period(cls, value: str) -> str:
        if value not in PERIODS:
            raise ValueError(f"unknown period '{value}'")
        return value


class ArchetypeDeckRecord(_RankedRecord):
    """A deck listed under a specific archetype filter."""

    deck_id: str = Field(..., min_length=1)
    position: int = Field(..., ge=0)
    name: str
    localized_name: str
    legendary_count: int = 0
    deck_code: str = ""
    cards: List[DeckCard] = Field(default_factory=list)
    dust: int = 0
    games: int = 0
    winrate: float = 0.0
    deck_class: str = "unknown"


class CardStatRecord(_RankedRecord):
    archetype: str = Field(..., min_length=1)
    cards: List[CardImpact] = Field(default_factory=list)


class MatchupRecord(_RankedRecord):
    deck_id: str = Field(..., min_length=1)
    opponents: List[Opponent] = Field(default_factory=list)


def dump_record(record: BaseModel) -> Dict[str, Any]:
    """Serialise a record into the flat JSON shape stored in the datasets."""
    return record.model_dump(mode="json")
