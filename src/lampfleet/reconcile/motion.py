"""Cosmetic drone motion.

The animator free-runs once per animation frame using only the last drone
status the reconciler saw.  It never waits for snapshots, so missed or late
updates just keep the drone heading to its previous target.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from lampfleet.models.drone import DroneStatus
from lampfleet.reconcile.scene import ScenePoint, SnapshotReconciler


def _default_speeds() -> dict[DroneStatus, float]:
    return {
        DroneStatus.IDLE: 4.0,
        DroneStatus.FLYING: 6.0,
        DroneStatus.REPLACING: 3.0,
        DroneStatus.RETURNING: 6.0,
    }


@dataclass(frozen=True)
class MotionProfile:
    """Geometry and per-state speeds (scene units per second)."""

    home: ScenePoint = ScenePoint(0.0, 5.0, 0.0)
    cruise_height: float = 8.0
    orbit_height: float = 5.5
    orbit_radius: float = 1.5
    orbit_angular_speed: float = 1.5
    speeds: dict[DroneStatus, float] = field(default_factory=_default_speeds)


def step_towards(current: ScenePoint, target: ScenePoint, max_distance: float) -> ScenePoint:
    """Move at most *max_distance* from *current* towards *target*, never past it."""
    dx = target.x - current.x
    dy = target.y - current.y
    dz = target.z - current.z
    distance = math.sqrt(dx * dx + dy * dy + dz * dz)
    if distance <= max_distance or distance == 0.0:
        return target
    if max_distance <= 0.0:
        return current
    ratio = max_distance / distance
    return ScenePoint(current.x + dx * ratio, current.y + dy * ratio, current.z + dz * ratio)


class DroneAnimator:
    def __init__(
        self,
        reconciler: SnapshotReconciler,
        profile: MotionProfile | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._profile = profile or MotionProfile()
        self.position: ScenePoint = self._profile.home
        self.orbit_angle = 0.0

    def target_point(self) -> ScenePoint:
        """Where the drone is heading for the last known status."""
        profile = self._profile
        status = self._reconciler.drone_status
        target = self._reconciler.entity(self._reconciler.active_target_lamp_id)
        if target is None or status in (DroneStatus.IDLE, DroneStatus.RETURNING):
            return profile.home

        base = target.position
        if status == DroneStatus.REPLACING:
            return ScenePoint(
                base.x + profile.orbit_radius * math.cos(self.orbit_angle),
                profile.orbit_height,
                base.z + profile.orbit_radius * math.sin(self.orbit_angle),
            )
        return ScenePoint(base.x, profile.cruise_height, base.z)

    def advance(self, dt: float) -> ScenePoint:
        """Advance one frame of *dt* seconds and return the new position."""
        if dt <= 0:
            return self.position
        status = self._reconciler.drone_status
        if status == DroneStatus.REPLACING:
            self.orbit_angle = (self.orbit_angle + self._profile.orbit_angular_speed * dt) % math.tau
        speed = self._profile.speeds.get(status, 0.0)
        self.position = step_towards(self.position, self.target_point(), speed * dt)
        return self.position
