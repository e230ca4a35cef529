"""Data models for the lamp fleet wire format."""

from lampfleet.models._base import FleetBaseModel, UtcDatetime
from lampfleet.models.drone import DroneState, DroneStatus
from lampfleet.models.lamp import Lamp, LampPosition, LampStatus
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.models.task import ReplacementTask, TaskStatus

__all__ = [
    "DroneState",
    "DroneStatus",
    "FleetBaseModel",
    "FleetSnapshot",
    "Lamp",
    "LampPosition",
    "LampStatus",
    "ReplacementTask",
    "TaskStatus",
    "UtcDatetime",
]
