"""State/store layer.

This package is the single source of truth for the lamp fleet: the store
owns lamps, replacement tasks and the drone, and is the only place that
mutates them.  Inbound commands reach it through :mod:`.dispatch`.
"""

from lampfleet.state.dispatch import dispatch_command
from lampfleet.state.store import FleetState, FleetStore, seed_lamps

__all__ = ["FleetState", "FleetStore", "dispatch_command", "seed_lamps"]
