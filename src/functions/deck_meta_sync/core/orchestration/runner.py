"""Pipeline runner: lock lifecycle, stage sequencing, commit or abort."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from ..contracts.run_report import RunReport, StageReport
from ..datasets import live_names, validate_mode
from ..db.staging_writer import StagingWriter
from ..db.swap import SwapCoordinator
from ..db.update_lock import UpdateLock
from ..monitoring.error_handler import ErrorHandler
from ..reference.cache import ReferenceCache
from .stages import LiveFallback, Stage, StageContext

logger = logging.getLogger(__name__)

StageFactory = Callable[[str], Sequence[Stage]]


class RunnerState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RUNNING = "running"
    PROMOTING = "promoting"
    ABORTING = "aborting"


class PipelineRunner:
    """Runs every stage of the requested modes under the update lock.

    Stages write only to staging instances. Promotion starts after every
    stage of every mode succeeded; a stage-level failure drops this run's
    staging instances and leaves live data untouched. The lock is released
    on every path once acquired.
    """

    def __init__(
        self,
        *,
        lock: UpdateLock,
        writer: StagingWriter,
        swap: SwapCoordinator,
        stage_factory: StageFactory,
        references: Sequence[ReferenceCache] = (),
        errors: Optional[ErrorHandler] = None,
        live_fallback: Optional[LiveFallback] = None,
        inter_stage_delay: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._lock = lock
        self._writer = writer
        self._swap = swap
        self._stage_factory = stage_factory
        self._references = list(references)
        self._errors = errors or ErrorHandler()
        self._live_fallback = live_fallback
        self._inter_stage_delay = inter_stage_delay
        self._sleep = sleep
        self.state = RunnerState.IDLE
        self.last_report: Optional[RunReport] = None

    async def run(self, modes: Sequence[str]) -> RunReport:
        """Execute one full run.

        Raises:
            LockContentionError: another run holds the lock; nothing is changed.
            StagingWriteError, SwapError, StoreError: the run was aborted.
        """
        modes = list(dict.fromkeys(validate_mode(mode) for mode in modes))
        if not modes:
            raise ValueError("at least one mode is required")

        run_id = uuid.uuid4().hex[:12]
        report = RunReport(run_id=run_id, modes=modes)
        self._errors.clear()

        self.state = RunnerState.ACQUIRING
        try:
            await asyncio.to_thread(self._lock.acquire, run_id)
        except Exception:
            self.state = RunnerState.IDLE
            raise

        logger.info("Run %s started for modes %s", run_id, ", ".join(modes))
        touched: List[str] = []
        try:
            self.state = RunnerState.RUNNING
            await self._recover(modes, report)
            for reference in self._references:
                await asyncio.to_thread(reference.ensure_loaded)

            untranslated: set = set()
            for mode in modes:
                untranslated |= await self._run_mode(mode, report, touched)
            report.untranslated_names = sorted(untranslated)

            self.state = RunnerState.PROMOTING
            await self._promote(touched, report)
            report.finish("success")
        except Exception as exc:
            if self.state is not RunnerState.PROMOTING:
                self.state = RunnerState.ABORTING
                logger.error("Run %s aborted: %s", run_id, exc, exc_info=True)
                report.cleaned_up.extend(await self._cleanup(touched))
            else:
                logger.error(
                    "Run %s failed during promotion; pending tables stay journaled: %s",
                    run_id,
                    exc,
                    exc_info=True,
                )
            report.finish("aborted", str(exc))
            raise
        finally:
            report.failed_targets = self._errors.as_details()
            try:
                await asyncio.to_thread(self._lock.release, run_id)
            finally:
                self.state = RunnerState.IDLE
                self.last_report = report
            logger.info(
                "Run %s finished with status %s in %.2fs",
                run_id,
                report.status,
                report.duration_seconds,
            )
        return report

    async def _recover(self, modes: Sequence[str], report: RunReport) -> None:
        """Roll forward a journaled promotion, then drop orphaned staging."""

        pending = await asyncio.to_thread(self._lock.pending)
        for table in pending:
            logger.warning("Rolling forward interrupted promotion of %s", table)
            await asyncio.to_thread(self._swap.promote, table)
            await asyncio.to_thread(self._lock.complete_pending, table)
            report.recovered.append(table)

        for table in live_names(modes):
            if await asyncio.to_thread(self._swap.cleanup_staging, table):
                logger.warning("Dropped orphaned staging instance of %s", table)
                report.cleaned_up.append(table)

    async def _run_mode(self, mode: str, report: RunReport, touched: List[str]) -> set:
        ctx = StageContext(mode=mode, run_started_at=report.start_time, fallback=self._live_fallback)
        for index, stage in enumerate(self._stage_factory(mode)):
            if index and self._inter_stage_delay:
                await self._sleep(self._inter_stage_delay)

            started = time.monotonic()
            logger.info("[%s] Stage %s starting", mode, stage.name)
            output = await stage.collect(ctx)
            for failure in output.failures:
                self._errors.record(mode, stage.name, failure)
            ctx.outputs[stage.name] = output.records

            stage_report = StageReport(
                mode=mode,
                stage=stage.name,
                table=stage.live_table,
                targets=output.targets,
                succeeded=output.succeeded,
                failed=len(output.failures),
            )
            if output.succeeded and output.records:
                touched.append(stage.live_table)
                await asyncio.to_thread(self._writer.open, stage.live_table)
                stage_report.records = await asyncio.to_thread(
                    self._writer.upsert_all, stage.dataset, stage.live_table, output.records
                )
                stage_report.committed = True
            else:
                logger.warning(
                    "[%s] Stage %s produced no records (%d/%d targets succeeded); keeping live %s",
                    mode,
                    stage.name,
                    output.succeeded,
                    output.targets,
                    stage.live_table,
                )
            stage_report.duration_seconds = round(time.monotonic() - started, 4)
            report.add_stage(stage_report)
            logger.info(
                "[%s] Stage %s done: %d records, %d/%d targets, %d failed",
                mode,
                stage.name,
                stage_report.records,
                output.succeeded,
                output.targets,
                stage_report.failed,
            )
        return ctx.untranslated

    async def _promote(self, tables: Sequence[str], report: RunReport) -> None:
        if not tables:
            logger.info("Nothing staged this run; live data unchanged")
            return
        await asyncio.to_thread(self._lock.record_pending, tables)
        for table in tables:
            if await asyncio.to_thread(self._swap.promote, table):
                report.promoted.append(table)
            await asyncio.to_thread(self._lock.complete_pending, table)

    async def _cleanup(self, tables: Sequence[str]) -> List[str]:
        cleaned: List[str] = []
        for table in tables:
            try:
                if await asyncio.to_thread(self._swap.cleanup_staging, table):
                    cleaned.append(table)
            except Exception as exc:  # noqa: BLE001 - keep cleaning the remaining tables
                logger.error("Failed to drop staging for %s: %s", table, exc)
        return cleaned
