"""Bounded fan-out of fetch targets."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from ..errors import TargetFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TargetOutcome(Generic[T, R]):
    target: T
    value: Optional[R] = None
    failure: Optional[TargetFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class BatchOrchestrator:
    """Runs targets in consecutive chunks of ``concurrency``.

    Targets inside a chunk run concurrently; chunks run one after another
    with ``inter_batch_delay`` after each chunk. A failing target is
    captured as a ``TargetFailure`` and never cancels its siblings.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        describe: Callable[[object], str] = str,
    ) -> None:
        self._sleep = sleep
        self._describe = describe

    async def run_batch(
        self,
        targets: Sequence[T],
        concurrency: int,
        inter_batch_delay: float,
        per_target: Callable[[T], Awaitable[R]],
    ) -> List[TargetOutcome[T, R]]:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        outcomes: List[TargetOutcome[T, R]] = []
        total_chunks = (len(targets) + concurrency - 1) // concurrency
        for index, start in enumerate(range(0, len(targets), concurrency), start=1):
            chunk = targets[start : start + concurrency]
            logger.debug("Running chunk %d/%d (%d targets)", index, total_chunks, len(chunk))
            outcomes.extend(await asyncio.gather(*(self._guard(target, per_target) for target in chunk)))
            await self._sleep(inter_batch_delay)

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        if failed:
            logger.warning("%d of %d targets failed", failed, len(outcomes))
        return outcomes

    async def _guard(self, target: T, per_target: Callable[[T], Awaitable[R]]) -> TargetOutcome[T, R]:
        try:
            return TargetOutcome(target=target, value=await per_target(target))
        except Exception as exc:  # noqa: BLE001 - every target failure is captured
            label = self._describe(target)
            logger.warning("Target %s failed: %s", label, exc)
            return TargetOutcome(target=target, failure=TargetFailure(label, exc))
