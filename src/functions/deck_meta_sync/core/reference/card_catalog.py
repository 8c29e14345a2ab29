"""Collectible card catalog loader."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from src.shared.batch.retry import retry_on_network_error

from ..contracts.records import CardInfo
from ..errors import ReferenceLoadError
from .cache import ReferenceCache

logger = logging.getLogger(__name__)


class CardCatalogLoader:
    """Downloads the catalog JSON and indexes it by card database id."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client_factory: Optional[Callable[[], httpx.Client]] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._client_factory = client_factory or (lambda: httpx.Client(timeout=self._timeout))

    def _download(self) -> list:
        with self._client_factory() as client:
            response = client.get(self._url)
            response.raise_for_status()
            return response.json()

    def __call__(self) -> Dict[str, CardInfo]:
        try:
            payload = retry_on_network_error(
                self._download, max_retries=self._max_retries, initial_delay=self._retry_delay
            )
        except (httpx.HTTPError, ValueError) as exc:
            raise ReferenceLoadError("cards", f"{self._url}: {exc}") from exc
        if not isinstance(payload, list):
            raise ReferenceLoadError("cards", f"{self._url} is not a JSON array")
        return index_catalog(payload)


def index_catalog(entries: list) -> Dict[str, CardInfo]:
    cards: Dict[str, CardInfo] = {}
    skipped = 0
    for entry in entries:
        if not isinstance(entry, dict) or "dbfId" not in entry or "id" not in entry:
            skipped += 1
            continue
        try:
            card = CardInfo.from_catalog(entry)
        except (ValidationError, TypeError, ValueError):
            skipped += 1
            continue
        cards[str(card.dbf_id)] = card
    if skipped:
        logger.debug("Skipped %d catalog entries without usable ids", skipped)
    return cards


def build_card_cache(url: str, **loader_options: Any) -> ReferenceCache[CardInfo]:
    return ReferenceCache("cards", CardCatalogLoader(url, **loader_options))
