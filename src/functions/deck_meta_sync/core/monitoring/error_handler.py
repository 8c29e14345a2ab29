"""Error aggregation for per-target failures during a run."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from typing import List, Optional

from ..contracts.run_report import FailureDetail
from ..errors import TargetFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordedError:
    """Structured representation of a captured target failure."""

    mode: str
    stage: str
    target: str
    message: str
    exception_type: str
    traceback: Optional[str]


class ErrorHandler:
    """Collects non-fatal failures so the run report can list them."""

    def __init__(self) -> None:
        self._errors: List[RecordedError] = []

    def record(self, mode: str, stage: str, failure: TargetFailure) -> None:
        cause = failure.cause
        tb = "".join(traceback.format_exception(cause)).strip()
        logger.debug("Recording failure at %s/%s for %s: %s", mode, stage, failure.target, cause)
        self._errors.append(
            RecordedError(
                mode=mode,
                stage=stage,
                target=failure.target,
                message=str(cause) or failure.exception_type,
                exception_type=failure.exception_type,
                traceback=tb or None,
            )
        )

    @property
    def errors(self) -> List[RecordedError]:
        return list(self._errors)

    def clear(self) -> None:
        self._errors.clear()

    def as_details(self) -> List[FailureDetail]:
        return [
            FailureDetail(
                stage=f"{error.mode}/{error.stage}",
                target=error.target,
                message=error.message,
                exception_type=error.exception_type,
            )
            for error in self._errors
        ]
