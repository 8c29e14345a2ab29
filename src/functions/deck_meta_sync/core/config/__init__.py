"""Ladder configuration for the deck meta sync pipeline."""

from .ladders import CategoryConfig, LadderSpec, LadderTable, load_ladder_table, parse_ladder_table

__all__ = ["CategoryConfig", "LadderSpec", "LadderTable", "load_ladder_table", "parse_ladder_table"]
