"""Dataset registry: logical datasets, their natural keys and physical names."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple

STANDARD = "standard"
WILD = "wild"

# Site format ids per mode.
MODE_FORMATS: Dict[str, str] = {STANDARD: "2", WILD: "1"}

RANKS: Tuple[str, ...] = ("diamond_4to1", "diamond_to_legend", "top_10k", "top_legend")
PERIODS: Tuple[str, ...] = ("all_time", "past_day")

STAGING_SUFFIX = "_staging"
BACKUP_SUFFIX = "_backup"


@dataclass(frozen=True)
class DatasetSpec:
    """A logical dataset; one physical table per mode and instance."""

    name: str
    key_fields: Tuple[str, ...]
    localized: bool = False

    def live_name(self, mode: str) -> str:
        validate_mode(mode)
        return self.name if mode == STANDARD else f"{self.name}_{mode}"

    def natural_key(self, record: Mapping[str, object]) -> Tuple[object, ...]:
        try:
            return tuple(record[field] for field in self.key_fields)
        except KeyError as exc:
            raise ValueError(f"Record for {self.name} is missing key field {exc}") from exc


RANK_STATS = DatasetSpec("rank_stats", ("rank", "name"), localized=True)
DECKS = DatasetSpec("decks", ("deck_id", "rank", "period"), localized=True)
CARD_STATS = DatasetSpec("card_stats", ("archetype", "rank"))
ARCHETYPE_DECKS = DatasetSpec("archetype_decks", ("deck_id", "rank", "name"), localized=True)
MATCHUPS = DatasetSpec("matchups", ("deck_id", "rank"))

# Dependency order: later datasets read the output of earlier ones.
DATASETS: Tuple[DatasetSpec, ...] = (RANK_STATS, DECKS, CARD_STATS, ARCHETYPE_DECKS, MATCHUPS)
DATASETS_BY_NAME: Dict[str, DatasetSpec] = {spec.name: spec for spec in DATASETS}


def validate_mode(mode: str) -> str:
    if mode not in MODE_FORMATS:
        raise ValueError(f"Unknown mode '{mode}'. Expected one of: {', '.join(MODE_FORMATS)}")
    return mode


def get_dataset(name: str) -> DatasetSpec:
    try:
        return DATASETS_BY_NAME[name]
    except KeyError:
        raise ValueError(
            f"Unknown dataset '{name}'. Expected one of: {', '.join(DATASETS_BY_NAME)}"
        ) from None


def staging_name(live: str) -> str:
    return f"{live}{STAGING_SUFFIX}"


def backup_name(live: str) -> str:
    return f"{live}{BACKUP_SUFFIX}"


def live_names(modes: Sequence[str]) -> Tuple[str, ...]:
    """Live table names for every dataset of ``modes`` in promotion order."""
    return tuple(spec.live_name(mode) for mode in modes for spec in DATASETS)
