"""lampfleet - street lamp fleet simulator with a replacement drone."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("lampfleet")
except PackageNotFoundError:
    __version__ = "0+local"

from lampfleet.client import FleetClient
from lampfleet.config import FleetConfig
from lampfleet.exceptions import (
    FleetConfigError,
    FleetProtocolError,
    FleetTransportError,
    LampFleetError,
)
from lampfleet.models import (
    DroneState,
    DroneStatus,
    FleetSnapshot,
    Lamp,
    LampPosition,
    LampStatus,
    ReplacementTask,
    TaskStatus,
)
from lampfleet.reconcile import DroneAnimator, SnapshotReconciler
from lampfleet.server import create_app, run_server
from lampfleet.state import FleetStore

__all__ = [
    "__version__",
    "DroneAnimator",
    "DroneState",
    "DroneStatus",
    "FleetClient",
    "FleetConfig",
    "FleetConfigError",
    "FleetProtocolError",
    "FleetSnapshot",
    "FleetStore",
    "FleetTransportError",
    "Lamp",
    "LampFleetError",
    "LampPosition",
    "LampStatus",
    "ReplacementTask",
    "SnapshotReconciler",
    "TaskStatus",
    "create_app",
    "run_server",
]
