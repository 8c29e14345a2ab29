"""Exception hierarchy for the deck meta sync pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence


class MetaSyncError(Exception):
    """Base class for every error raised by the sync pipeline."""


class FetchError(MetaSyncError):
    """A single fetch attempt against the statistics site failed."""

    def __init__(self, message: str, *, threshold: Optional[int] = None) -> None:
        super().__init__(message)
        self.threshold = threshold


class FetchTransportError(FetchError):
    """Connection failure or non-success HTTP status."""


class FetchTimeoutError(FetchError):
    """The attempt exceeded its per-attempt timeout."""


class ThresholdExhausted(MetaSyncError):
    """Every rung of a threshold ladder errored; the fetch produced nothing."""

    def __init__(self, query: str, errors: Sequence[FetchError]) -> None:
        self.query = query
        self.errors: List[FetchError] = list(errors)
        self.records: list = []
        super().__init__(f"All {len(self.errors)} attempts failed for {query}")


class TargetFailure(MetaSyncError):
    """Terminal failure of one batch target. Collected, never raised by the orchestrator."""

    def __init__(self, target: str, cause: BaseException) -> None:
        self.target = target
        self.cause = cause
        super().__init__(f"{target}: {cause}")

    @property
    def exception_type(self) -> str:
        return type(self.cause).__name__


class StoreError(MetaSyncError):
    """The backing store rejected an operation."""


class ReferenceLoadError(MetaSyncError):
    """A reference table (card catalog, translations) could not be loaded."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"Loading reference data {name} failed: {message}")


class StagingWriteError(MetaSyncError):
    """Bulk upsert into a staging instance failed. Fatal for the run."""

    def __init__(self, table: str, message: str) -> None:
        self.table = table
        super().__init__(f"Staging write to {table} failed: {message}")


class SwapError(MetaSyncError):
    """A promotion or staging cleanup step failed."""

    def __init__(self, table: str, step: str, message: str) -> None:
        self.table = table
        self.step = step
        super().__init__(f"Swap step '{step}' failed for {table}: {message}")


class LockContentionError(MetaSyncError):
    """A run was requested while another run holds the update lock."""

    def __init__(self, locked_at: Optional[str] = None) -> None:
        self.locked_at = locked_at
        suffix = f" (locked at {locked_at})" if locked_at else ""
        super().__init__(f"Pipeline update already in progress{suffix}")


class UpdateInProgressError(MetaSyncError):
    """Read rejected because a run is active and the reject policy is configured."""

    def __init__(self, retry_after_seconds: int) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__("Data refresh in progress, retry later")
