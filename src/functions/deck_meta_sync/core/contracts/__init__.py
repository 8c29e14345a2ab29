"""Data contracts for the deck meta sync pipeline."""

from .config import PipelineConfig, ReadPolicy, ReadSettings, SourceSettings, SupabaseSettings
from .lock_state import LockState
from .records import (
    ArchetypeDeckRecord,
    CardImpact,
    CardInfo,
    CardStatRecord,
    DeckCard,
    DeckRecord,
    MatchupRecord,
    Opponent,
    RankStatRecord,
)
from .run_report import FailureDetail, RunReport, StageReport

__all__ = [
    "ArchetypeDeckRecord",
    "CardImpact",
    "CardInfo",
    "CardStatRecord",
    "DeckCard",
    "DeckRecord",
    "FailureDetail",
    "LockState",
    "MatchupRecord",
    "Opponent",
    "PipelineConfig",
    "RankStatRecord",
    "ReadPolicy",
    "ReadSettings",
    "RunReport",
    "SourceSettings",
    "StageReport",
    "SupabaseSettings",
]
