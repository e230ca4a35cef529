"""Websocket message envelope.

Server to client messages carry a full :class:`FleetSnapshot`.  Client to
server messages are commands, validated here as a tagged union on the
``type`` field before anything reaches the store.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, StrictInt, TypeAdapter, ValidationError, field_validator

from lampfleet.exceptions import FleetProtocolError
from lampfleet.models._base import FleetBaseModel
from lampfleet.models.lamp import LampStatus
from lampfleet.models.snapshot import FleetSnapshot


class MessageType(StrEnum):
    INITIAL = "initial"
    UPDATE = "update"
    REJECTED = "rejected"
    START_REPLACEMENT = "startReplacement"
    CANCEL_REPLACEMENT = "cancelReplacement"
    SET_LAMP_FAULT = "setLampFault"
    UPDATE_DRONE_POSITION = "updateDronePosition"


# ------------------------------------------------------------------
# Client -> server
# ------------------------------------------------------------------


class StartReplacement(FleetBaseModel):
    type: Literal["startReplacement"] = "startReplacement"
    lamp_id: StrictInt


class CancelReplacement(FleetBaseModel):
    type: Literal["cancelReplacement"] = "cancelReplacement"
    task_id: StrictInt


class SetLampFault(FleetBaseModel):
    type: Literal["setLampFault"] = "setLampFault"
    lamp_id: StrictInt
    status: LampStatus = LampStatus.FAULT

    @field_validator("status")
    @classmethod
    def _fault_or_off(cls, value: LampStatus) -> LampStatus:
        if value == LampStatus.ON:
            raise ValueError("a lamp can only be marked fault or off")
        return value


class UpdateDronePosition(FleetBaseModel):
    """Cosmetic position report.  Only triggers a rebroadcast."""

    type: Literal["updateDronePosition"] = "updateDronePosition"
    position: Any = None


Command = Annotated[
    StartReplacement | CancelReplacement | SetLampFault | UpdateDronePosition,
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)
_COMMAND_TYPES = frozenset(
    {
        MessageType.START_REPLACEMENT,
        MessageType.CANCEL_REPLACEMENT,
        MessageType.SET_LAMP_FAULT,
        MessageType.UPDATE_DRONE_POSITION,
    }
)


# ------------------------------------------------------------------
# Server -> client
# ------------------------------------------------------------------


# A pushed snapshot replaces the viewer's whole picture, so none of these
# may be left to model defaults.
_REQUIRED_SNAPSHOT_KEYS: tuple[tuple[str, str], ...] = (
    ("lamps", "lamps"),
    ("replacementTasks", "replacement_tasks"),
    ("droneStatus", "drone_status"),
)


class SnapshotMessage(FleetBaseModel):
    type: Literal["initial", "update"]
    data: FleetSnapshot

    @field_validator("data", mode="before")
    @classmethod
    def _complete_snapshot(cls, value: Any) -> Any:
        if isinstance(value, dict):
            missing = [alias for alias, name in _REQUIRED_SNAPSHOT_KEYS if alias not in value and name not in value]
            if missing:
                raise ValueError(f"partial snapshot, missing {', '.join(missing)}")
        return value


class RejectedMessage(FleetBaseModel):
    """Answer to a malformed command (only sent when enabled)."""

    type: Literal["rejected"] = "rejected"
    reason: str
    command: str | None = None


def _load_json_object(raw: str | bytes) -> dict[str, Any]:
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FleetProtocolError(f"Message is not valid JSON: {exc}", raw=raw) from exc
    if not isinstance(decoded, dict):
        raise FleetProtocolError("Message is not a JSON object", raw=raw)
    return decoded


def parse_command(raw: str | bytes | dict[str, Any]) -> Command:
    """Decode one inbound client message into a typed command.

    Raises
    ------
    FleetProtocolError
        If *raw* is not JSON, has an unknown ``type`` or does not match the
        command's schema.
    """
    payload = raw if isinstance(raw, dict) else _load_json_object(raw)
    message_type = payload.get("type")
    if not isinstance(message_type, str) or message_type not in _COMMAND_TYPES:
        raise FleetProtocolError(
            f"Unknown command type: {message_type!r}",
            message_type=message_type if isinstance(message_type, str) else None,
            raw=raw if not isinstance(raw, dict) else None,
        )
    try:
        return _COMMAND_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise FleetProtocolError(
            f"Invalid {message_type} command: {exc.error_count()} validation error(s)",
            message_type=message_type,
            raw=raw if not isinstance(raw, dict) else None,
        ) from exc


def parse_server_message(raw: str | bytes | dict[str, Any]) -> SnapshotMessage | None:
    """Decode a server push.  Returns ``None`` for anything that is not a snapshot."""
    if isinstance(raw, dict):
        payload = raw
    else:
        try:
            payload = _load_json_object(raw)
        except FleetProtocolError:
            return None
    if payload.get("type") not in (MessageType.INITIAL, MessageType.UPDATE) or "data" not in payload:
        return None
    try:
        return SnapshotMessage.model_validate(payload)
    except ValidationError:
        return None


def encode_message(message: FleetBaseModel) -> str:
    """Serialize any envelope model to compact JSON text."""
    return json.dumps(message.to_wire(), separators=(",", ":"))


def snapshot_message(snapshot: FleetSnapshot, *, initial: bool = False) -> SnapshotMessage:
    return SnapshotMessage(
        type=MessageType.INITIAL.value if initial else MessageType.UPDATE.value,
        data=snapshot,
    )
