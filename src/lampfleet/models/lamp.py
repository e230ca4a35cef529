"""Street lamp model."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, SerializerFunctionWrapHandler, model_serializer, model_validator

from lampfleet.models._base import FleetBaseModel


class LampStatus(StrEnum):
    ON = "on"
    OFF = "off"
    FAULT = "fault"


class LampPosition(BaseModel):
    """Geographic position of a lamp pole.  Fixed at creation."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Lamp(FleetBaseModel):
    """A single street lamp as seen on the wire.

    The wire form is flat (``{"id", "lat", "lng", ...}``); a nested
    ``position`` object is accepted on input too.
    """

    id: int
    position: LampPosition
    status: LampStatus
    temperature: float
    needs_replacement: bool = False

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_position(cls, values: Any) -> Any:
        if not isinstance(values, dict) or "position" in values:
            return values
        if "lat" not in values or "lng" not in values:
            return values
        working = dict(values)
        working["position"] = {"lat": working.pop("lat"), "lng": working.pop("lng")}
        return working

    @model_validator(mode="after")
    def _fault_needs_replacement(self) -> Lamp:
        """A faulty lamp always needs replacement."""
        if self.status == LampStatus.FAULT and not self.needs_replacement:
            object.__setattr__(self, "needs_replacement", True)
        return self

    @model_serializer(mode="wrap")
    def _flatten_position(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        position = data.pop("position", None)
        if isinstance(position, dict):
            data["lat"] = position.get("lat")
            data["lng"] = position.get("lng")
        return data

    @property
    def is_broken(self) -> bool:
        """Whether the lamp shows up as broken in the fleet view."""
        return self.needs_replacement or self.status == LampStatus.FAULT
