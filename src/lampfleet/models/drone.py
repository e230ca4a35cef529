"""Drone model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import model_validator

from lampfleet.models._base import FleetBaseModel


class DroneStatus(StrEnum):
    IDLE = "idle"
    FLYING = "flying"
    REPLACING = "replacing"
    RETURNING = "returning"


class DroneState(FleetBaseModel):
    """The single service drone.  There is exactly one per server process."""

    status: DroneStatus = DroneStatus.IDLE
    active_target_lamp_id: int | None = None

    @model_validator(mode="after")
    def _target_iff_busy(self) -> DroneState:
        if self.status == DroneStatus.IDLE and self.active_target_lamp_id is not None:
            raise ValueError("an idle drone cannot have a target lamp")
        if self.status != DroneStatus.IDLE and self.active_target_lamp_id is None:
            raise ValueError(f"a {self.status} drone needs a target lamp")
        return self

    @property
    def is_idle(self) -> bool:
        return self.status == DroneStatus.IDLE
