"""Full fleet snapshot, the unit of every server push."""

from __future__ import annotations

from pydantic import Field

from lampfleet.models._base import FleetBaseModel
from lampfleet.models.drone import DroneStatus
from lampfleet.models.lamp import Lamp, LampStatus
from lampfleet.models.task import ReplacementTask


class FleetSnapshot(FleetBaseModel):
    """Everything a viewer needs to redraw the fleet at one instant."""

    lamps: list[Lamp] = Field(default_factory=list)
    replacement_tasks: list[ReplacementTask] = Field(default_factory=list)
    drone_status: DroneStatus = DroneStatus.IDLE
    active_target_lamp_id: int | None = None

    def lamp(self, lamp_id: int) -> Lamp | None:
        """Return the lamp with *lamp_id*, if present."""
        for lamp in self.lamps:
            if lamp.id == lamp_id:
                return lamp
        return None

    @property
    def lamp_ids(self) -> set[int]:
        return {lamp.id for lamp in self.lamps}

    @property
    def active_task(self) -> ReplacementTask | None:
        """The task the drone is working on, if any."""
        for task in self.replacement_tasks:
            if task.is_active:
                return task
        return None

    @property
    def active_lamp_count(self) -> int:
        return sum(1 for lamp in self.lamps if lamp.status == LampStatus.ON)

    @property
    def fault_lamp_count(self) -> int:
        return sum(1 for lamp in self.lamps if lamp.is_broken)
