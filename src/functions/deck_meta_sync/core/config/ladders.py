"""
Threshold ladder configuration.

Loads the per-category ladder table from YAML. Each category carries its
ordered threshold list, the minimum viable page size, the per-attempt
timeout and the batch fan-out settings used by its stage. Ladders may be
overridden per mode and per rank.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LADDER_PATH = Path(__file__).parent / "ladders.yaml"
SUPPORTED_VERSION = 1

Threshold = Optional[int]
ModeOverride = Union[Tuple[Threshold, ...], Dict[str, Tuple[Threshold, ...]]]


def _normalize_ladder(category: str, raw: Any) -> Tuple[Threshold, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValueError(f"Category '{category}' ladder must be a non-empty list")
    ladder: list[Threshold] = []
    for index, value in enumerate(raw):
        if value is None:
            if index != 0:
                raise ValueError(f"Category '{category}': null is only allowed as the first rung")
            ladder.append(None)
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"Category '{category}' has invalid threshold {value!r}")
        ladder.append(value)
    numeric = [value for value in ladder if value is not None]
    if any(later >= earlier for earlier, later in zip(numeric, numeric[1:])):
        raise ValueError(f"Category '{category}' thresholds must be strictly decreasing: {numeric}")
    return tuple(ladder)


@dataclass(frozen=True)
class LadderSpec:
    """Everything the fetcher needs for one query."""

    category: str
    thresholds: Tuple[Threshold, ...]
    min_viable_size: int
    per_attempt_timeout_seconds: float


@dataclass(frozen=True)
class CategoryConfig:
    """Ladder and fan-out settings for one fetch category."""

    name: str
    ladder: Tuple[Threshold, ...]
    min_viable_size: int = 1
    per_attempt_timeout_seconds: float = 30.0
    concurrency: int = 2
    inter_batch_delay_seconds: float = 0.5
    overrides: Dict[str, ModeOverride] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.min_viable_size < 0:
            raise ValueError(f"Category '{self.name}' min_viable_size cannot be negative")
        if self.per_attempt_timeout_seconds <= 0:
            raise ValueError(f"Category '{self.name}' per_attempt_timeout_seconds must be positive")
        if not (1 <= self.concurrency <= 50):
            raise ValueError(f"Category '{self.name}' concurrency must be between 1 and 50")
        if self.inter_batch_delay_seconds < 0:
            raise ValueError(f"Category '{self.name}' inter_batch_delay_seconds cannot be negative")

    def thresholds_for(self, mode: str, rank: Optional[str] = None) -> Tuple[Threshold, ...]:
        override = self.overrides.get(mode)
        if isinstance(override, tuple):
            return override
        if isinstance(override, dict) and rank in override:
            return override[rank]
        return self.ladder

    def ladder_for(self, mode: str, rank: Optional[str] = None) -> LadderSpec:
        return LadderSpec(
            category=self.name,
            thresholds=self.thresholds_for(mode, rank),
            min_viable_size=self.min_viable_size,
            per_attempt_timeout_seconds=self.per_attempt_timeout_seconds,
        )


@dataclass
class LadderTable:
    version: int
    categories: Dict[str, CategoryConfig]

    def category(self, name: str) -> CategoryConfig:
        try:
            return self.categories[name]
        except KeyError:
            raise ValueError(f"No ladder configured for category '{name}'") from None

    def resolve(self, name: str, mode: str, rank: Optional[str] = None) -> LadderSpec:
        return self.category(name).ladder_for(mode, rank)


def _parse_overrides(category: str, raw: Any) -> Dict[str, ModeOverride]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Category '{category}' ladders must map mode to ladder")
    overrides: Dict[str, ModeOverride] = {}
    for mode, value in raw.items():
        if isinstance(value, Mapping):
            overrides[str(mode)] = {
                str(rank): _normalize_ladder(f"{category}.{mode}.{rank}", ladder)
                for rank, ladder in value.items()
            }
        else:
            overrides[str(mode)] = _normalize_ladder(f"{category}.{mode}", value)
    return overrides


def parse_ladder_table(raw_config: Any) -> LadderTable:
    """Validate a decoded YAML document and build the ladder table."""

    if not isinstance(raw_config, Mapping):
        raise ValueError("Ladder configuration must be a YAML dictionary")

    version = raw_config.get("version")
    if version != SUPPORTED_VERSION:
        raise ValueError(
            f"Unsupported ladder configuration version: {version}. Expected version {SUPPORTED_VERSION}."
        )

    defaults = dict(raw_config.get("defaults") or {})
    raw_categories = raw_config.get("categories") or {}
    if not isinstance(raw_categories, Mapping) or not raw_categories:
        raise ValueError("Ladder configuration must define at least one category")

    categories: Dict[str, CategoryConfig] = {}
    for name, body in raw_categories.items():
        merged = {**defaults, **(body or {})}
        categories[name] = CategoryConfig(
            name=name,
            ladder=_normalize_ladder(name, merged.get("ladder")),
            min_viable_size=int(merged.get("min_viable_size", 1)),
            per_attempt_timeout_seconds=float(merged.get("per_attempt_timeout_seconds", 30)),
            concurrency=int(merged.get("concurrency", 2)),
            inter_batch_delay_seconds=float(merged.get("inter_batch_delay_seconds", 0.5)),
            overrides=_parse_overrides(name, merged.get("ladders")),
        )

    return LadderTable(version=version, categories=categories)


def load_ladder_table(config_path: Optional[str] = None) -> LadderTable:
    """
    Load the ladder table from YAML.

    Args:
        config_path: Path to a ladders file. Falls back to META_LADDER_CONFIG,
            then the bundled ladders.yaml.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the YAML is malformed or a ladder is invalid
    """
    path = Path(config_path or os.getenv("META_LADDER_CONFIG") or DEFAULT_LADDER_PATH)
    if not path.exists():
        raise FileNotFoundError(f"Ladder configuration not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw_config = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in ladder configuration: {exc}") from exc

    table = parse_ladder_table(raw_config)
    logger.info("Loaded %d ladder categories from %s", len(table.categories), path)
    return table


def describe(thresholds: Sequence[Threshold]) -> str:
    return "[" + ", ".join("default" if value is None else str(value) for value in thresholds) + "]"
