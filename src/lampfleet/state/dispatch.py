"""Route validated client commands to store operations."""

from __future__ import annotations

from lampfleet.protocol import (
    CancelReplacement,
    Command,
    SetLampFault,
    StartReplacement,
    UpdateDronePosition,
)
from lampfleet.state.store import FleetStore


def dispatch_command(store: FleetStore, command: Command) -> None:
    """Apply one command.  Effects are only observable via the next snapshot."""
    if isinstance(command, StartReplacement):
        store.request_replacement(command.lamp_id)
    elif isinstance(command, CancelReplacement):
        store.cancel_replacement(command.task_id)
    elif isinstance(command, SetLampFault):
        store.mark_lamp_fault(command.lamp_id, command.status)
    elif isinstance(command, UpdateDronePosition):
        store.report_drone_position(command.position)
