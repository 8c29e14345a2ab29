"""Async HTTP client for the statistics site."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

import httpx

from ..contracts.config import SourceSettings


class PageClient:
    """Thin wrapper around ``httpx.AsyncClient`` returning page HTML.

    Used as an async context manager; one instance is shared by every
    concurrent target of a run.
    """

    def __init__(
        self,
        settings: SourceSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = logger or logging.getLogger(__name__)

    async def __aenter__(self) -> "PageClient":
        self._client = httpx.AsyncClient(
            base_url=str(self._settings.base_url),
            headers=self._settings.build_headers(),
            timeout=self._settings.request_timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_text(self, path: str, params: Optional[Mapping[str, str]] = None) -> str:
        """GET ``path`` and return the body; non-2xx raises ``httpx.HTTPStatusError``."""
        if self._client is None:
            raise RuntimeError("PageClient must be used inside 'async with'")
        query: Dict[str, str] = dict(params or {})
        response = await self._client.get(path, params=query)
        response.raise_for_status()
        self._logger.debug("Fetched %s (%d bytes)", response.url, len(response.content))
        return response.text
