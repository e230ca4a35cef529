"""Internal constants shared across the library."""

from __future__ import annotations

from typing import Any

WS_PATH = "/ws"
STATE_PATH = "/api/state"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

# ------------------------------------------------------------------
# Flight schedule (seconds)
# ------------------------------------------------------------------

FLYING_DELAY_S = 3.0
REPLACING_DELAY_S = 5.0
RETURNING_DELAY_S = 2.0
TICK_INTERVAL_S = 5.0

# ------------------------------------------------------------------
# Lamp temperatures (°C)
# ------------------------------------------------------------------

TEMPERATURE_MIN_C = 20.0
TEMPERATURE_MAX_C = 60.0
TEMPERATURE_STEP_C = 1.0
REPAIRED_TEMPERATURE_C = 25.0
FAULT_MIN_TEMPERATURE_C = 45.0


def clamp_temperature(
    value: float,
    low: float = TEMPERATURE_MIN_C,
    high: float = TEMPERATURE_MAX_C,
) -> float:
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))


# ------------------------------------------------------------------
# Seed fleet loaded at process start
# ------------------------------------------------------------------

SEED_LAMPS: tuple[dict[str, Any], ...] = (
    {"id": 1, "lat": 55.751244, "lng": 37.618423, "status": "on", "temperature": 25, "needsReplacement": False},
    {"id": 2, "lat": 55.752244, "lng": 37.619423, "status": "off", "temperature": 18, "needsReplacement": True},
    {"id": 3, "lat": 55.753244, "lng": 37.620423, "status": "on", "temperature": 22, "needsReplacement": False},
    {"id": 4, "lat": 55.754244, "lng": 37.621423, "status": "fault", "temperature": 45, "needsReplacement": True},
)
