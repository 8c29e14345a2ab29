"""HTML parsers for the statistics site pages.

Each parser returns raw dictionaries; enrichment with card metadata and
localized names happens in the stages. Rows that cannot be parsed are
skipped with a debug log so one malformed row never drops a whole page.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_POPULARITY_RE = re.compile(r"(\d+\.?\d*)%\s*\((\d+)\)")
_CLIMBING_RE = re.compile(r"([-\d.]+)\s*⭐\s*/\s*h")
_WINRATE_RE = re.compile(r"^(\d+\.?\d*)")
_GAMES_RE = re.compile(r"Games:\s*(\d+)")
_CARD_CLASS_RE = re.compile(r"card-(\d+)")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def parse_number(text: Optional[str], default: float = 0.0) -> float:
    if not text:
        return default
    match = _NUMBER_RE.search(text.replace(",", ""))
    return float(match.group(0)) if match else default


def _text(node: Optional[Tag]) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def _class_besides(node: Optional[Tag], ignored: Iterable[str]) -> str:
    if node is None:
        return "unknown"
    ignored = set(ignored)
    for name in node.get("class") or []:
        if name not in ignored:
            return name
    return "unknown"


def parse_meta_table(html: str) -> List[Dict[str, Any]]:
    """Archetype rows from the meta page."""
    rows: List[Dict[str, Any]] = []
    for row in _soup(html).select("tbody tr"):
        try:
            name_cell = row.select_one("td:nth-of-type(1)")
            name = _text(name_cell.select_one("a.basic-black-text") if name_cell else None)
            if not name:
                continue
            popularity = _POPULARITY_RE.search(_text(row.select_one("td:nth-of-type(3)")))
            cells = row.find_all("td")
            climbing = _CLIMBING_RE.search(_text(cells[-1]) if cells else "")
            rows.append(
                {
                    "name": name,
                    "deck_class": _class_besides(name_cell, ("decklist-info", "basic-black-text")),
                    "winrate": parse_number(_text(row.select_one("td:nth-of-type(2) .basic-black-text"))),
                    "popularity_percent": float(popularity.group(1)) if popularity else 0.0,
                    "popularity_num": int(popularity.group(2)) if popularity else 0,
                    "climbing_speed": float(climbing.group(1)) if climbing else 0.0,
                }
            )
        except (AttributeError, ValueError, IndexError) as exc:
            logger.debug("Skipping malformed meta row: %s", exc)
    return rows


def _deck_code(element: Tag) -> str:
    title = element.select_one(".deck-title")
    if title is None:
        return ""
    for span in title.find_all("span"):
        style = (span.get("style") or "").replace(" ", "")
        if "font-size:0" in style:
            return _text(span)
    return ""


def _deck_cards(element: Tag) -> List[Dict[str, str]]:
    cards: Dict[str, str] = {}
    for card in element.select("div[phx-value-card_id]"):
        card_id = card.get("phx-value-card_id")
        if not card_id:
            continue
        count = _text(card.select_one(".card-number.deck-text.decklist-card-background"))
        cards[str(card_id)] = count
    return [{"dbf_id": card_id, "count": count} for card_id, count in cards.items()]


def parse_deck_list(html: str) -> List[Dict[str, Any]]:
    """Deck entries from a decks page, in page order."""
    decks: List[Dict[str, Any]] = []
    for element in _soup(html).select('div[id^="deck_stats-"]'):
        try:
            deck_id = element.get("id", "").split("-", 1)[1]
        except IndexError:
            continue
        if not deck_id:
            continue
        stats_text = _text(element.select_one(".column.tag"))
        winrate = _WINRATE_RE.search(stats_text)
        games = _GAMES_RE.search(stats_text)
        decks.append(
            {
                "deck_id": deck_id,
                "name": _text(element.select_one(".deck-title a.basic-black-text")) or "Unknown Deck",
                "deck_code": _deck_code(element),
                "dust": int(parse_number(_text(element.select_one(".dust-bar-inner")))),
                "games": int(games.group(1)) if games else 0,
                "winrate": float(winrate.group(1)) if winrate else 0.0,
                "deck_class": _class_besides(
                    element.select_one(".decklist-info.dust-bar"),
                    ("basic-black-text", "decklist-info", "dust-bar"),
                ),
                "cards": _deck_cards(element),
            }
        )
    return decks


def parse_card_stats(html: str) -> List[Dict[str, Any]]:
    """Per-card mulligan, drawn and kept impact rows."""
    cards: List[Dict[str, Any]] = []
    for row in _soup(html).select("tbody tr"):
        card = row.select_one(".decklist-card")
        if card is None:
            continue
        match = _CARD_CLASS_RE.search(" ".join(card.get("class") or []))
        if not match:
            continue
        cards.append(
            {
                "dbf_id": match.group(1),
                "mulligan_impact": parse_number(_text(row.select_one("td:nth-of-type(2) .basic-black-text"))),
                "drawn_impact": parse_number(_text(row.select_one("td:nth-of-type(3) .basic-black-text"))),
                "kept_impact": parse_number(_text(row.select_one("td:nth-of-type(4) .basic-black-text"))),
            }
        )
    return cards


def parse_matchups(html: str) -> List[Dict[str, Any]]:
    """Opponent class rows from a deck page, including the 'total' row."""
    opponents: List[Dict[str, Any]] = []
    for row in _soup(html).select("tbody tr"):
        cells = row.find_all("td")
        if len(cells) < 3:
            continue
        if _text(cells[0]) == "Total":
            opponent_class = "total"
        else:
            opponent_class = _class_besides(cells[0].select_one(".tag"), ("tag", "player-name"))
        opponents.append(
            {
                "opponent_class": opponent_class,
                "winrate": parse_number(_text(cells[1].select_one(".basic-black-text"))),
                "total": int(parse_number(_text(cells[2]))),
            }
        )
    return opponents
