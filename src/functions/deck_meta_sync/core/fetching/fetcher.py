"""Adaptive page retrieval with a degrading threshold ladder."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from ..errors import FetchError, FetchTimeoutError, FetchTransportError, ThresholdExhausted

logger = logging.getLogger(__name__)

Parser = Callable[[str], List[Dict[str, Any]]]


class TextSource(Protocol):
    async def get_text(self, path: str, params: Optional[Mapping[str, str]] = None) -> str:
        ...


@dataclass(frozen=True)
class PageQuery:
    """One logical page request; the threshold is filled in per attempt."""

    path: str
    parser: Parser
    params: Mapping[str, str] = field(default_factory=dict)
    threshold_param: str = "min_games"
    label: str = ""

    def params_for(self, threshold: Optional[int]) -> Dict[str, str]:
        params = dict(self.params)
        if threshold is not None:
            params[self.threshold_param] = str(threshold)
        return params

    def describe(self) -> str:
        if self.label:
            return self.label
        parts = "&".join(f"{key}={value}" for key, value in sorted(self.params.items()))
        return f"{self.path}?{parts}" if parts else self.path


@dataclass
class FetchResult:
    records: List[Dict[str, Any]]
    threshold: Optional[int]
    attempts: int

    def __len__(self) -> int:
        return len(self.records)


class Fetcher:
    """Tries thresholds in order until a page is large enough.

    Transport errors and timeouts move on to the next rung. The first page
    with at least ``min_viable_size`` records wins; otherwise the last rung
    is accepted whatever its size. When the last rung errors, the latest
    successful page is returned. ``ThresholdExhausted`` is raised only when
    every attempt failed.
    """

    def __init__(
        self,
        source: TextSource,
        *,
        attempt_delay: float = 0.05,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._attempt_delay = attempt_delay
        self._sleep = sleep

    async def fetch(
        self,
        query: PageQuery,
        ladder: Sequence[Optional[int]],
        min_viable_size: int,
        per_attempt_timeout: float,
    ) -> FetchResult:
        if not ladder:
            raise ValueError("threshold ladder must contain at least one value")

        errors: List[FetchError] = []
        latest: Optional[FetchResult] = None
        last_index = len(ladder) - 1

        for index, threshold in enumerate(ladder):
            if index:
                await self._sleep(self._attempt_delay)
            try:
                records = await self._attempt(query, threshold, per_attempt_timeout)
            except FetchError as exc:
                logger.warning(
                    "Attempt %d/%d for %s failed (threshold=%s): %s",
                    index + 1,
                    len(ladder),
                    query.describe(),
                    threshold,
                    exc,
                )
                errors.append(exc)
                continue

            latest = FetchResult(records=records, threshold=threshold, attempts=index + 1)
            if len(records) >= min_viable_size:
                logger.debug(
                    "%s accepted at threshold=%s with %d records",
                    query.describe(),
                    threshold,
                    len(records),
                )
                return latest
            if index == last_index:
                logger.info(
                    "%s reached the ladder floor (threshold=%s) with %d records",
                    query.describe(),
                    threshold,
                    len(records),
                )
                return latest
            logger.debug(
                "%s returned %d records at threshold=%s (< %d), degrading",
                query.describe(),
                len(records),
                threshold,
                min_viable_size,
            )

        if latest is not None:
            logger.warning(
                "Final rung failed for %s; keeping %d records from threshold=%s",
                query.describe(),
                len(latest.records),
                latest.threshold,
            )
            return latest

        raise ThresholdExhausted(query.describe(), errors)

    async def _attempt(
        self,
        query: PageQuery,
        threshold: Optional[int],
        timeout: float,
    ) -> List[Dict[str, Any]]:
        params = query.params_for(threshold)
        try:
            html = await asyncio.wait_for(self._source.get_text(query.path, params), timeout)
        except asyncio.TimeoutError as exc:
            raise FetchTimeoutError(
                f"timed out after {timeout:.1f}s", threshold=threshold
            ) from exc
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(str(exc) or "request timed out", threshold=threshold) from exc
        except httpx.HTTPError as exc:
            raise FetchTransportError(str(exc) or type(exc).__name__, threshold=threshold) from exc
        return query.parser(html)
