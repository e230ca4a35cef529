from __future__ import annotations

import asyncio
import logging
import random

import pytest
from _factories import fixed_clock

from lampfleet.config import FleetConfig
from lampfleet.models.drone import DroneStatus
from lampfleet.models.lamp import Lamp, LampStatus
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.models.task import TaskStatus
from lampfleet.state.store import FleetStore, seed_lamps


class _FixedStepRng(random.Random):
    def __init__(self, step: float) -> None:
        super().__init__(0)
        self._step = step

    def uniform(self, a: float, b: float) -> float:
        return self._step


def _record(store: FleetStore) -> list[FleetSnapshot]:
    published: list[FleetSnapshot] = []
    store.subscribe(published.append)
    return published


def _assert_invariants(snapshot: FleetSnapshot) -> None:
    for lamp in snapshot.lamps:
        if lamp.status == LampStatus.FAULT:
            assert lamp.needs_replacement, f"lamp {lamp.id} is faulty without replacement flag"
    active = [task for task in snapshot.replacement_tasks if task.status != TaskStatus.COMPLETED]
    assert len(active) <= 1
    if snapshot.drone_status == DroneStatus.IDLE:
        assert snapshot.active_target_lamp_id is None
    else:
        assert snapshot.active_target_lamp_id is not None


# ------------------------------------------------------------------
# Snapshot / seed
# ------------------------------------------------------------------


def test_seed_fleet() -> None:
    snapshot = FleetStore().snapshot()
    assert [lamp.id for lamp in snapshot.lamps] == [1, 2, 3, 4]
    assert snapshot.lamp(2).status == LampStatus.OFF  # type: ignore[union-attr]
    assert snapshot.lamp(2).needs_replacement  # type: ignore[union-attr]
    assert snapshot.lamp(4).status == LampStatus.FAULT  # type: ignore[union-attr]
    assert snapshot.drone_status == DroneStatus.IDLE
    assert snapshot.active_target_lamp_id is None
    assert snapshot.replacement_tasks == []
    _assert_invariants(snapshot)


def test_snapshot_is_sorted_and_detached() -> None:
    lamps = list(reversed(seed_lamps()))
    store = FleetStore(lamps=lamps)
    snapshot = store.snapshot()
    assert [lamp.id for lamp in snapshot.lamps] == [1, 2, 3, 4]

    snapshot.lamps.clear()
    assert len(store.snapshot().lamps) == 4


# ------------------------------------------------------------------
# mark_lamp_fault
# ------------------------------------------------------------------


def test_mark_lamp_off_sets_flag_and_leaves_drone(store: FleetStore) -> None:
    published = _record(store)

    assert store.mark_lamp_fault(2, "off") is True

    lamp = store.lamp(2)
    assert lamp is not None
    assert lamp.status == LampStatus.OFF
    assert lamp.needs_replacement is True
    assert store.drone.status == DroneStatus.IDLE
    assert len(published) == 1


def test_mark_lamp_fault_raises_temperature(store: FleetStore) -> None:
    assert store.mark_lamp_fault(1) is True
    lamp = store.lamp(1)
    assert lamp is not None
    assert lamp.status == LampStatus.FAULT
    assert lamp.needs_replacement is True
    assert lamp.temperature == 45.0


def test_mark_lamp_fault_keeps_higher_temperature() -> None:
    store = FleetStore(lamps=[Lamp.model_validate({"id": 1, "lat": 0, "lng": 0, "status": "on", "temperature": 58})])
    store.mark_lamp_fault(1, LampStatus.FAULT)
    assert store.lamp(1).temperature == 58  # type: ignore[union-attr]


def test_mark_lamp_off_keeps_temperature(store: FleetStore) -> None:
    store.mark_lamp_fault(1, "off")
    assert store.lamp(1).temperature == 25  # type: ignore[union-attr]


@pytest.mark.parametrize(("lamp_id", "status"), [(99, "fault"), (1, "on"), (1, "melted")])
def test_mark_lamp_fault_noop(store: FleetStore, lamp_id: int, status: str) -> None:
    published = _record(store)
    before = store.snapshot()

    assert store.mark_lamp_fault(lamp_id, status) is False

    assert store.snapshot() == before
    assert published == []


# ------------------------------------------------------------------
# tick
# ------------------------------------------------------------------


def test_tick_drifts_only_lit_lamps_and_clamps() -> None:
    lamps = [
        Lamp.model_validate({"id": 1, "lat": 0, "lng": 0, "status": "on", "temperature": 59.5}),
        Lamp.model_validate({"id": 2, "lat": 0, "lng": 0, "status": "on", "temperature": 30}),
        Lamp.model_validate({"id": 3, "lat": 0, "lng": 0, "status": "off", "temperature": 18}),
        Lamp.model_validate({"id": 4, "lat": 0, "lng": 0, "status": "fault", "temperature": 45}),
    ]
    store = FleetStore(lamps=lamps, rng=_FixedStepRng(1.0))
    published = _record(store)

    snapshot = store.tick()

    assert [lamp.temperature for lamp in snapshot.lamps] == [60.0, 31.0, 18, 45]
    assert published == [snapshot]


def test_tick_clamps_at_lower_bound() -> None:
    lamps = [Lamp.model_validate({"id": 1, "lat": 0, "lng": 0, "status": "on", "temperature": 20.2})]
    store = FleetStore(lamps=lamps, rng=_FixedStepRng(-1.0))
    assert store.tick().lamps[0].temperature == 20.0


def test_tick_random_walk_stays_in_bounds() -> None:
    store = FleetStore(FleetConfig(random_seed=1))
    for _ in range(500):
        snapshot = store.tick()
        for lamp in snapshot.lamps:
            if lamp.status == LampStatus.ON:
                assert 20.0 <= lamp.temperature <= 60.0


# ------------------------------------------------------------------
# publish / subscribe
# ------------------------------------------------------------------


def test_failing_subscriber_does_not_block_others(store: FleetStore, caplog: pytest.LogCaptureFixture) -> None:
    def _broken(_snapshot: FleetSnapshot) -> None:
        raise RuntimeError("boom")

    store.subscribe(_broken)
    published = _record(store)

    with caplog.at_level(logging.WARNING, logger="lampfleet.state.store"):
        store.report_drone_position({"x": 1})

    assert len(published) == 1
    assert "subscriber" in caplog.text


def test_unsubscribe(store: FleetStore) -> None:
    published: list[FleetSnapshot] = []
    unsubscribe = store.subscribe(published.append)
    assert store.subscriber_count == 1

    unsubscribe()
    unsubscribe()
    store.publish()

    assert store.subscriber_count == 0
    assert published == []


# ------------------------------------------------------------------
# Replacement flight
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_replacement_flight(store: FleetStore) -> None:
    published = _record(store)

    task = store.request_replacement(1)

    assert task is not None
    assert task.status == TaskStatus.FLYING
    assert task.started_at == fixed_clock()
    assert store.drone.status == DroneStatus.FLYING
    assert store.drone.active_target_lamp_id == 1
    assert len(published) == 1

    flight = store.active_flight
    assert flight is not None
    await flight

    assert [(s.drone_status, s.active_target_lamp_id) for s in published] == [
        (DroneStatus.FLYING, 1),
        (DroneStatus.REPLACING, 1),
        (DroneStatus.RETURNING, 1),
        (DroneStatus.IDLE, None),
    ]
    assert [s.replacement_tasks[0].status for s in published] == [
        TaskStatus.FLYING,
        TaskStatus.REPLACING,
        TaskStatus.COMPLETED,
        TaskStatus.COMPLETED,
    ]
    repaired = published[2].lamp(1)
    assert repaired is not None
    assert repaired.status == LampStatus.ON
    assert repaired.temperature == 25.0
    assert repaired.needs_replacement is False
    assert published[2].replacement_tasks[0].completed_at == fixed_clock()
    for snapshot in published:
        _assert_invariants(snapshot)
    assert store.active_flight is None


@pytest.mark.asyncio
async def test_replacing_faulty_lamp_keeps_flag_until_repaired(store: FleetStore) -> None:
    published = _record(store)

    store.request_replacement(4)
    assert store.lamp(4).needs_replacement is True  # type: ignore[union-attr]
    await store.active_flight  # type: ignore[misc]

    for snapshot in published:
        _assert_invariants(snapshot)
    lamp = store.lamp(4)
    assert lamp is not None
    assert lamp.status == LampStatus.ON
    assert lamp.needs_replacement is False


@pytest.mark.asyncio
async def test_replacing_off_lamp_clears_flag_immediately(store: FleetStore) -> None:
    store.request_replacement(2)
    assert store.lamp(2).needs_replacement is False  # type: ignore[union-attr]
    await store.close()


@pytest.mark.asyncio
async def test_request_rejected_while_drone_busy(store: FleetStore) -> None:
    store.request_replacement(1)
    published = _record(store)
    before = store.snapshot()

    assert store.request_replacement(3) is None

    assert store.snapshot() == before
    assert published == []
    assert len(store.tasks) == 1
    await store.close()


@pytest.mark.asyncio
async def test_request_unknown_lamp_is_noop(store: FleetStore) -> None:
    published = _record(store)

    assert store.request_replacement(42) is None

    assert published == []
    assert store.tasks == ()
    assert store.active_flight is None


@pytest.mark.asyncio
async def test_fault_allowed_while_drone_busy(store: FleetStore) -> None:
    store.request_replacement(1)

    assert store.mark_lamp_fault(3) is True

    assert store.lamp(3).status == LampStatus.FAULT  # type: ignore[union-attr]
    assert store.drone.status == DroneStatus.FLYING
    await store.close()


@pytest.mark.asyncio
async def test_task_ids_are_monotonic(store: FleetStore) -> None:
    first = store.request_replacement(1)
    await store.active_flight  # type: ignore[misc]
    second = store.request_replacement(3)
    await store.active_flight  # type: ignore[misc]

    assert first is not None and second is not None
    assert first.id == int(fixed_clock().timestamp() * 1000)
    assert second.id == first.id + 1


# ------------------------------------------------------------------
# Cancellation
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancel_active_task_aborts_flight() -> None:
    config = FleetConfig(flying_delay=0.05, replacing_delay=0.05, returning_delay=0.01)
    store = FleetStore(config, clock=fixed_clock)
    task = store.request_replacement(2)
    assert task is not None
    published = _record(store)

    assert store.cancel_replacement(task.id) is True

    assert store.tasks == ()
    assert store.drone.status == DroneStatus.RETURNING
    assert store.drone.active_target_lamp_id == 2
    assert store.lamp(2).needs_replacement is True  # type: ignore[union-attr]

    await store.active_flight  # type: ignore[misc]
    # Let the timers of the cancelled chain elapse too.
    await asyncio.sleep(0.12)

    assert [s.drone_status for s in published] == [DroneStatus.RETURNING, DroneStatus.IDLE]
    assert store.drone.status == DroneStatus.IDLE
    assert store.lamp(2).status == LampStatus.OFF  # type: ignore[union-attr]
    for snapshot in published:
        _assert_invariants(snapshot)


@pytest.mark.asyncio
async def test_cancel_while_replacing_skips_repair() -> None:
    config = FleetConfig(flying_delay=0.01, replacing_delay=0.2, returning_delay=0.01)
    store = FleetStore(config, clock=fixed_clock)
    task = store.request_replacement(2)
    assert task is not None
    for _ in range(100):
        if store.drone.status == DroneStatus.REPLACING:
            break
        await asyncio.sleep(0.005)
    assert store.drone.status == DroneStatus.REPLACING
    assert store.tasks[0].status == TaskStatus.REPLACING
    published = _record(store)

    assert store.cancel_replacement(task.id) is True

    assert store.tasks == ()
    assert store.drone.status == DroneStatus.RETURNING
    await store.active_flight  # type: ignore[misc]
    await asyncio.sleep(0.25)

    assert [s.drone_status for s in published] == [DroneStatus.RETURNING, DroneStatus.IDLE]
    lamp = store.lamp(2)
    assert lamp is not None
    assert lamp.status == LampStatus.OFF
    assert lamp.needs_replacement is True
    assert lamp.temperature == 18
    assert store.tasks == ()
    for snapshot in published:
        _assert_invariants(snapshot)


@pytest.mark.asyncio
async def test_request_rejected_while_returning_after_cancel(store: FleetStore) -> None:
    task = store.request_replacement(1)
    assert task is not None
    store.cancel_replacement(task.id)

    assert store.request_replacement(3) is None

    await store.active_flight  # type: ignore[misc]
    assert store.request_replacement(3) is not None
    await store.close()


@pytest.mark.asyncio
async def test_cancel_completed_task_only_removes_it(store: FleetStore) -> None:
    task = store.request_replacement(1)
    assert task is not None
    await store.active_flight  # type: ignore[misc]
    published = _record(store)

    assert store.cancel_replacement(task.id) is True

    assert store.tasks == ()
    assert store.drone.status == DroneStatus.IDLE
    assert store.active_flight is None
    assert len(published) == 1


def test_cancel_unknown_task_is_noop(store: FleetStore) -> None:
    published = _record(store)
    assert store.cancel_replacement(123) is False
    assert published == []
    assert store.drone.status == DroneStatus.IDLE


@pytest.mark.asyncio
async def test_close_cancels_flight(store: FleetStore) -> None:
    store.request_replacement(1)
    flight = store.active_flight
    assert flight is not None

    await store.close()

    assert flight.cancelled()
    assert store.active_flight is None
