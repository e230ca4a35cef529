"""Authoritative in-memory fleet store.

This is the only component allowed to mutate lamps, replacement tasks and
the drone.  Every mutation is synchronous (it never awaits), so commands
and timer callbacks running on the event loop are atomic with respect to
each other.  Each successful mutation ends with a single :meth:`publish`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Callable, Coroutine, Iterable
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from lampfleet._constants import (
    FAULT_MIN_TEMPERATURE_C,
    REPAIRED_TEMPERATURE_C,
    SEED_LAMPS,
    TEMPERATURE_STEP_C,
    clamp_temperature,
)
from lampfleet.config import FleetConfig
from lampfleet.models.drone import DroneState, DroneStatus
from lampfleet.models.lamp import Lamp, LampStatus
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.models.task import ReplacementTask, TaskStatus

_logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[FleetSnapshot], None]

_M = TypeVar("_M", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _replace(model: _M, **changes: Any) -> _M:
    """Copy a frozen model with *changes*, re-running its validators.

    ``model_copy(update=...)`` skips validation, which would let a faulty
    lamp lose its replacement flag.
    """
    data = model.model_dump()
    data.update(changes)
    return type(model).model_validate(data)


def seed_lamps() -> list[Lamp]:
    """The fixed fleet every server process starts with."""
    return [Lamp.model_validate(item) for item in SEED_LAMPS]


class FleetState(BaseModel):
    """The single owned state object behind :class:`FleetStore`."""

    model_config = ConfigDict(extra="forbid")

    lamps: dict[int, Lamp] = Field(default_factory=dict)
    tasks: list[ReplacementTask] = Field(default_factory=list)
    drone: DroneState = Field(default_factory=DroneState)


class FleetStore:
    """Source of truth for the lamp fleet and its service drone.

    Replacement flights run as one asyncio task at a time (the active
    flight handle).  Methods that start a flight must be called from a
    running event loop.
    """

    def __init__(
        self,
        config: FleetConfig | None = None,
        *,
        lamps: Iterable[Lamp] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or FleetConfig()
        self._clock = clock
        self._rng = rng or random.Random(self._config.random_seed)
        initial = list(lamps) if lamps is not None else seed_lamps()
        self._state = FleetState(lamps={lamp.id: lamp for lamp in initial})
        self._subscribers: list[SnapshotCallback] = []
        self._flight: asyncio.Task[None] | None = None
        self._last_task_id = 0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def config(self) -> FleetConfig:
        return self._config

    @property
    def drone(self) -> DroneState:
        return self._state.drone

    @property
    def tasks(self) -> tuple[ReplacementTask, ...]:
        return tuple(self._state.tasks)

    def lamp(self, lamp_id: int) -> Lamp | None:
        return self._state.lamps.get(lamp_id)

    @property
    def active_flight(self) -> asyncio.Task[None] | None:
        """The running flight (or return leg), if any."""
        flight = self._flight
        if flight is None or flight.done():
            return None
        return flight

    def snapshot(self) -> FleetSnapshot:
        """Immutable view of the current state."""
        drone = self._state.drone
        return FleetSnapshot(
            lamps=[self._state.lamps[lamp_id] for lamp_id in sorted(self._state.lamps)],
            replacement_tasks=list(self._state.tasks),
            drone_status=drone.status,
            active_target_lamp_id=drone.active_target_lamp_id,
        )

    # ------------------------------------------------------------------
    # Publish / subscribe
    # ------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Register *callback* for every published snapshot.

        Returns a function that removes the subscription again.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self) -> FleetSnapshot:
        """Fan the current snapshot out to all subscribers."""
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                _logger.warning("Snapshot subscriber %r failed", callback, exc_info=True)
        return snapshot

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_replacement(self, lamp_id: int) -> ReplacementTask | None:
        """Dispatch the drone to *lamp_id*.

        Returns ``None`` without touching state when the lamp is unknown or
        the drone is busy.
        """
        lamp = self._state.lamps.get(lamp_id)
        if lamp is None:
            _logger.debug("Replacement ignored: unknown lamp %s", lamp_id)
            return None
        if not self._state.drone.is_idle:
            _logger.debug(
                "Replacement of lamp %s ignored: drone is %s",
                lamp_id,
                self._state.drone.status,
            )
            return None

        task = ReplacementTask(
            id=self._next_task_id(),
            lamp_id=lamp_id,
            status=TaskStatus.FLYING,
            started_at=self._clock(),
        )
        self._state.tasks.append(task)
        # The lamp validator keeps the flag on faulty lamps.
        self._state.lamps[lamp_id] = _replace(lamp, needs_replacement=False)
        self._state.drone = DroneState(status=DroneStatus.FLYING, active_target_lamp_id=lamp_id)
        _logger.debug("Task %s: drone flying to lamp %s", task.id, lamp_id)
        self.publish()

        self._start_flight(self._fly(task.id, lamp_id))
        return task

    def mark_lamp_fault(self, lamp_id: int, status: LampStatus | str = LampStatus.FAULT) -> bool:
        """Report lamp *lamp_id* as faulty (default) or switched off."""
        try:
            new_status = LampStatus(status)
        except ValueError:
            _logger.debug("Fault report ignored: invalid status %r", status)
            return False
        if new_status == LampStatus.ON:
            _logger.debug("Fault report ignored: status 'on' is not a fault")
            return False

        lamp = self._state.lamps.get(lamp_id)
        if lamp is None:
            _logger.debug("Fault report ignored: unknown lamp %s", lamp_id)
            return False

        temperature = lamp.temperature
        if new_status == LampStatus.FAULT:
            temperature = max(temperature, FAULT_MIN_TEMPERATURE_C)
        self._state.lamps[lamp_id] = _replace(
            lamp,
            status=new_status,
            needs_replacement=True,
            temperature=temperature,
        )
        _logger.debug("Lamp %s marked %s", lamp_id, new_status)
        self.publish()
        return True

    def cancel_replacement(self, task_id: int) -> bool:
        """Remove task *task_id*.

        Cancelling the task the drone is working on aborts the flight and
        sends the drone home.  Cancelling a completed task only removes it.
        """
        task = self._find_task(task_id)
        if task is None:
            _logger.debug("Cancel ignored: unknown task %s", task_id)
            return False

        self._state.tasks = [candidate for candidate in self._state.tasks if candidate.id != task_id]
        if task.is_active:
            self._cancel_flight()
            lamp = self._state.lamps.get(task.lamp_id)
            if lamp is not None and lamp.status != LampStatus.ON:
                self._state.lamps[lamp.id] = _replace(lamp, needs_replacement=True)
            self._state.drone = DroneState(
                status=DroneStatus.RETURNING,
                active_target_lamp_id=task.lamp_id,
            )
            _logger.debug("Task %s cancelled: drone returning", task_id)
            self.publish()
            self._start_flight(self._return_home())
        else:
            _logger.debug("Completed task %s removed", task_id)
            self.publish()
        return True

    def report_drone_position(self, position: Any = None) -> None:
        """Accept a cosmetic drone position report.  Only rebroadcasts."""
        _logger.debug("Drone position report %r", position)
        self.publish()

    def tick(self) -> FleetSnapshot:
        """Random-walk the temperature of every lit lamp, then broadcast."""
        step = TEMPERATURE_STEP_C
        for lamp_id, lamp in list(self._state.lamps.items()):
            if lamp.status != LampStatus.ON:
                continue
            drifted = lamp.temperature + self._rng.uniform(-step, step)
            self._state.lamps[lamp_id] = _replace(
                lamp,
                temperature=clamp_temperature(
                    drifted,
                    self._config.temperature_min,
                    self._config.temperature_max,
                ),
            )
        return self.publish()

    async def close(self) -> None:
        """Abort any running flight.  Used at server shutdown."""
        flight = self._flight
        self._flight = None
        if flight is None or flight.done():
            return
        flight.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await flight

    # ------------------------------------------------------------------
    # Flight schedule
    # ------------------------------------------------------------------

    def _start_flight(self, coro: Coroutine[Any, Any, None]) -> None:
        self._cancel_flight()
        self._flight = asyncio.get_running_loop().create_task(coro)

    def _cancel_flight(self) -> None:
        flight = self._flight
        self._flight = None
        if flight is not None and not flight.done():
            flight.cancel()

    async def _fly(self, task_id: int, lamp_id: int) -> None:
        await asyncio.sleep(self._config.flying_delay)
        self._begin_replacing(task_id, lamp_id)
        await asyncio.sleep(self._config.replacing_delay)
        self._finish_replacing(task_id, lamp_id)
        await self._return_home()

    async def _return_home(self) -> None:
        await asyncio.sleep(self._config.returning_delay)
        self._land()

    def _begin_replacing(self, task_id: int, lamp_id: int) -> None:
        self._set_task_status(task_id, TaskStatus.REPLACING)
        self._state.drone = DroneState(status=DroneStatus.REPLACING, active_target_lamp_id=lamp_id)
        _logger.debug("Task %s: replacing module of lamp %s", task_id, lamp_id)
        self.publish()

    def _finish_replacing(self, task_id: int, lamp_id: int) -> None:
        lamp = self._state.lamps.get(lamp_id)
        if lamp is not None:
            self._state.lamps[lamp_id] = _replace(
                lamp,
                status=LampStatus.ON,
                temperature=REPAIRED_TEMPERATURE_C,
                needs_replacement=False,
            )
        self._set_task_status(task_id, TaskStatus.COMPLETED, completed_at=self._clock())
        self._state.drone = DroneState(status=DroneStatus.RETURNING, active_target_lamp_id=lamp_id)
        _logger.debug("Task %s: lamp %s repaired, drone returning", task_id, lamp_id)
        self.publish()

    def _land(self) -> None:
        self._state.drone = DroneState()
        _logger.debug("Drone idle")
        self.publish()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_task(self, task_id: int) -> ReplacementTask | None:
        for task in self._state.tasks:
            if task.id == task_id:
                return task
        return None

    def _set_task_status(self, task_id: int, status: TaskStatus, **changes: Any) -> None:
        self._state.tasks = [
            _replace(task, status=status, **changes) if task.id == task_id else task for task in self._state.tasks
        ]

    def _next_task_id(self) -> int:
        candidate = int(self._clock().timestamp() * 1000)
        task_id = max(candidate, self._last_task_id + 1)
        self._last_task_id = task_id
        return task_id
