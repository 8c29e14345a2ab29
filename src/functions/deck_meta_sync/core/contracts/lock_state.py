"""Update lock state shared by the pipeline and the read layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

LOCK_ROW_ID = 1


class LockState(BaseModel):
    """Singleton row describing whether a sync run is active."""

    is_updating: bool = False
    locked_at: Optional[datetime] = None
    unlocked_at: Optional[datetime] = None
    holder: Optional[str] = Field(default=None, description="Run id of the current holder")
    pending_promotion: List[str] = Field(
        default_factory=list,
        description="Live tables still to be promoted by an interrupted run",
    )

    @classmethod
    def from_row(cls, row: Optional[Dict[str, Any]]) -> "LockState":
        if not row:
            return cls()
        return cls(
            is_updating=bool(row.get("is_updating")),
            locked_at=_parse_ts(row.get("locked_at")),
            unlocked_at=_parse_ts(row.get("unlocked_at")),
            holder=row.get("holder"),
            pending_promotion=list(row.get("pending_promotion") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_updating": self.is_updating,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
            "holder": self.holder,
            "pending_promotion": list(self.pending_promotion),
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
