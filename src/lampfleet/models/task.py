"""Replacement task model."""

from __future__ import annotations

from enum import StrEnum

from lampfleet.models._base import FleetBaseModel, UtcDatetime


class TaskStatus(StrEnum):
    FLYING = "flying"
    REPLACING = "replacing"
    COMPLETED = "completed"


class ReplacementTask(FleetBaseModel):
    """One drone trip to swap the module of a single lamp."""

    id: int
    """Monotonic id (creation time in epoch milliseconds)."""

    lamp_id: int
    """Id of the lamp being serviced."""

    status: TaskStatus = TaskStatus.FLYING

    started_at: UtcDatetime

    completed_at: UtcDatetime | None = None
    """Set once the module has been swapped."""

    @property
    def is_active(self) -> bool:
        return self.status != TaskStatus.COMPLETED
