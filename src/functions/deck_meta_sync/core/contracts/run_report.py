"""Result models for a deck meta sync run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FailureDetail(BaseModel):
    """A non-fatal per-target failure captured during a stage."""

    stage: str = Field(..., description="Stage that produced the failure")
    target: str = Field(..., description="Target key, e.g. 'top_legend' or 'Aggro Paladin@top_10k'")
    message: str = Field(..., description="Human readable error message")
    exception_type: str = Field(default="Exception")

    @field_validator("stage", "target")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            msg = "must be a non-empty string"
            raise ValueError(msg)
        return cleaned


class StageReport(BaseModel):
    """Outcome of one stage for one mode."""

    mode: str
    stage: str
    table: str
    targets: int = Field(default=0, ge=0)
    succeeded: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    records: int = Field(default=0, ge=0)
    committed: bool = Field(
        default=False,
        description="Whether records were written to staging for promotion",
    )
    duration_seconds: float = Field(default=0.0, ge=0)


class RunReport(BaseModel):
    """Container for the overall run outcome."""

    run_id: str
    modes: List[str] = Field(default_factory=list)
    status: str = Field(default="running", description="running|success|aborted")
    start_time: datetime = Field(default_factory=_now)
    end_time: Optional[datetime] = None
    stages: List[StageReport] = Field(default_factory=list)
    failed_targets: List[FailureDetail] = Field(default_factory=list)
    promoted: List[str] = Field(default_factory=list)
    recovered: List[str] = Field(default_factory=list)
    cleaned_up: List[str] = Field(default_factory=list)
    untranslated_names: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    def add_stage(self, report: StageReport) -> None:
        self.stages.append(report)

    def finish(self, status: str, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        self.end_time = _now()

    @property
    def duration_seconds(self) -> float:
        if not self.end_time:
            return 0.0
        return round((self.end_time - self.start_time).total_seconds(), 4)

    def record_counts(self) -> Dict[str, int]:
        """Records written per live table."""

        counts: Dict[str, int] = {}
        for stage in self.stages:
            if stage.committed:
                counts[stage.table] = counts.get(stage.table, 0) + stage.records
        return counts

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serialisable representation."""

        payload = self.model_dump(mode="json")
        payload["duration_seconds"] = self.duration_seconds
        payload["record_counts"] = self.record_counts()
        return payload
