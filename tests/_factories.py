"""Builders shared by the test modules."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from lampfleet.models.snapshot import FleetSnapshot


def fixed_clock() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def make_lamp(lamp_id: int, status: str = "on", **overrides: Any) -> dict[str, Any]:
    lamp: dict[str, Any] = {
        "id": lamp_id,
        "lat": 55.75 + lamp_id / 1000,
        "lng": 37.61 + lamp_id / 1000,
        "status": status,
        "temperature": 25,
        "needsReplacement": False,
    }
    lamp.update(overrides)
    return lamp


def make_snapshot(*lamps: dict[str, Any], **extra: Any) -> FleetSnapshot:
    return FleetSnapshot.model_validate({"lamps": list(lamps), **extra})
