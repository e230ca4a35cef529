"""Client-side reconciliation of fleet snapshots."""

from lampfleet.reconcile.motion import DroneAnimator, MotionProfile, step_towards
from lampfleet.reconcile.scene import (
    DefaultEntityFactory,
    EntityFactory,
    FleetView,
    LampEntity,
    ReconcileResult,
    SceneProjection,
    ScenePoint,
    SelectedLamp,
    SelectorOption,
    SnapshotReconciler,
)

__all__ = [
    "DefaultEntityFactory",
    "DroneAnimator",
    "EntityFactory",
    "FleetView",
    "LampEntity",
    "MotionProfile",
    "ReconcileResult",
    "ScenePoint",
    "SceneProjection",
    "SelectedLamp",
    "SelectorOption",
    "SnapshotReconciler",
    "step_towards",
]
