"""
Sync cursor and run models.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SyncCursor(BaseModel):
    """Last block fully processed for a watched contract address."""

    contract_address: str = Field(..., description="Lowercase contract address")
    last_synced_block: int = Field(..., ge=0, description="Last committed block")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Updated at",
    )


class SyncState(str, Enum):
    """Engine state during a run."""

    IDLE = "idle"
    COMPUTING_RANGE = "computing_range"
    FETCHING = "fetching"
    APPLYING = "applying"
    ADVANCING = "advancing"
    ABORTED = "aborted"


@dataclass
class SyncSummary:
    """Outcome of one run."""

    contract_address: str
    from_block: int
    to_block: int
    events_found: int = 0
    events_applied: int = 0
    events_skipped: int = 0
    duplicates: int = 0
    last_synced_block: Optional[int] = None
    cancelled: bool = False
