"""Client-side snapshot reconciliation.

The reconciler keeps one long-lived :class:`LampEntity` per lamp id and
converges it onto whatever snapshot arrives last.  Entities are created
once, updated in place on every later snapshot and disposed when their
lamp disappears, so renderer decorations and running transitions survive
the periodic updates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Protocol

from lampfleet.models.drone import DroneStatus
from lampfleet.models.lamp import Lamp, LampPosition, LampStatus
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.models.task import ReplacementTask
from lampfleet.protocol import SetLampFault, StartReplacement, parse_server_message

_logger = logging.getLogger(__name__)


class ScenePoint(NamedTuple):
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class SceneProjection:
    """Linear map from lat/lng to scene coordinates (y is up)."""

    origin_lat: float = 55.0
    origin_lng: float = 37.0
    scale: float = 100.0

    def project(self, position: LampPosition) -> ScenePoint:
        return ScenePoint(
            (position.lat - self.origin_lat) * self.scale,
            0.0,
            (position.lng - self.origin_lng) * self.scale,
        )


_STATUS_TEXT: dict[LampStatus, str] = {
    LampStatus.ON: "working",
    LampStatus.OFF: "off",
    LampStatus.FAULT: "fault",
}


@dataclass(eq=False)
class LampEntity:
    """Locally owned visual/logical counterpart of one lamp."""

    lamp_id: int
    position: ScenePoint
    status: LampStatus
    temperature: float
    needs_replacement: bool
    is_broken: bool = False
    is_selected_for_replace: bool = False
    decorations: dict[str, Any] = field(default_factory=dict)
    """Renderer-owned state (meshes, labels, running transitions)."""
    disposed: bool = False

    @classmethod
    def from_lamp(cls, lamp: Lamp, position: ScenePoint) -> LampEntity:
        return cls(
            lamp_id=lamp.id,
            position=position,
            status=lamp.status,
            temperature=lamp.temperature,
            needs_replacement=lamp.needs_replacement,
        )

    def update(self, lamp: Lamp, position: ScenePoint) -> None:
        self.position = position
        self.status = lamp.status
        self.temperature = lamp.temperature
        self.needs_replacement = lamp.needs_replacement

    @property
    def label(self) -> str:
        return f"ID: {self.lamp_id} | {_STATUS_TEXT[self.status]} | {round(self.temperature)}°C"


class EntityFactory(Protocol):
    """Builds and tears down entities.  Renderers plug their meshes in here."""

    def create(self, lamp: Lamp, position: ScenePoint) -> LampEntity: ...

    def dispose(self, entity: LampEntity) -> None: ...


class DefaultEntityFactory:
    def create(self, lamp: Lamp, position: ScenePoint) -> LampEntity:
        return LampEntity.from_lamp(lamp, position)

    def dispose(self, entity: LampEntity) -> None:
        entity.decorations.clear()
        entity.disposed = True


class SelectorOption(NamedTuple):
    lamp_id: int
    label: str


class SelectedLamp(NamedTuple):
    """Info panel for the lamp last clicked on the map."""

    lamp_id: int
    lat: float
    lng: float
    status: LampStatus

    @property
    def text(self) -> str:
        return f"Lamp #{self.lamp_id} at {self.lat:.6f}, {self.lng:.6f}: {_STATUS_TEXT[self.status]}"


@dataclass(frozen=True)
class FleetView:
    """Derived panel state, recomputed after every reconciliation.

    ``tasks`` is ordered newest first by ``started_at``.
    """

    options: tuple[SelectorOption, ...] = ()
    total: int = 0
    active: int = 0
    fault: int = 0
    selected: SelectedLamp | None = None
    tasks: tuple[ReplacementTask, ...] = ()

    @property
    def lamp_ids(self) -> tuple[int, ...]:
        return tuple(option.lamp_id for option in self.options)


@dataclass(frozen=True)
class ReconcileResult:
    created: tuple[int, ...] = ()
    updated: tuple[int, ...] = ()
    removed: tuple[int, ...] = ()

    @property
    def structural_change(self) -> bool:
        """Whether any entity was created or removed."""
        return bool(self.created or self.removed)


class SnapshotReconciler:
    """Converge local entities and selections onto incoming snapshots.

    Snapshots may arrive late, repeated or out of order; each one is taken
    as the full truth.  Selections are local and only leave this object as
    parameters of the command builders.
    """

    def __init__(
        self,
        *,
        factory: EntityFactory | None = None,
        projection: SceneProjection | None = None,
        on_change: Callable[[ReconcileResult], None] | None = None,
    ) -> None:
        self._factory: EntityFactory = factory or DefaultEntityFactory()
        self._projection = projection or SceneProjection()
        self._on_change = on_change
        self._entities: dict[int, LampEntity] = {}
        self._lamps: dict[int, Lamp] = {}
        self.selected_broken_lamp_id: int | None = None
        self.selected_replace_lamp_id: int | None = None
        self.selected_lamp_id: int | None = None
        self.drone_status: DroneStatus = DroneStatus.IDLE
        self.active_target_lamp_id: int | None = None
        self.tasks: tuple[ReplacementTask, ...] = ()
        self.view = FleetView()

    @property
    def entities(self) -> dict[int, LampEntity]:
        """Read-only copy of the id to entity mapping."""
        return dict(self._entities)

    def entity(self, lamp_id: int | None) -> LampEntity | None:
        if lamp_id is None:
            return None
        return self._entities.get(lamp_id)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def apply_message(self, raw: str | bytes | dict[str, Any]) -> ReconcileResult | None:
        """Reconcile a raw server push.  Malformed messages change nothing."""
        message = parse_server_message(raw)
        if message is None:
            _logger.debug("Ignoring malformed server message")
            return None
        return self.apply(message.data)

    def apply(self, snapshot: FleetSnapshot) -> ReconcileResult:
        incoming = {lamp.id: lamp for lamp in snapshot.lamps}

        created: list[int] = []
        updated: list[int] = []
        for lamp_id, lamp in incoming.items():
            position = self._projection.project(lamp.position)
            entity = self._entities.get(lamp_id)
            if entity is None:
                self._entities[lamp_id] = self._factory.create(lamp, position)
                created.append(lamp_id)
            else:
                entity.update(lamp, position)
                updated.append(lamp_id)

        removed = [lamp_id for lamp_id in self._entities if lamp_id not in incoming]
        for lamp_id in removed:
            self._factory.dispose(self._entities.pop(lamp_id))

        self._lamps = incoming
        self.drone_status = snapshot.drone_status
        self.active_target_lamp_id = snapshot.active_target_lamp_id
        self.tasks = tuple(snapshot.replacement_tasks)
        self._refresh()

        result = ReconcileResult(
            created=tuple(sorted(created)),
            updated=tuple(sorted(updated)),
            removed=tuple(sorted(removed)),
        )
        if created or removed:
            _logger.debug("Reconciled: created=%s removed=%s", result.created, result.removed)
        if self._on_change is not None:
            self._on_change(result)
        return result

    def _refresh(self) -> None:
        ordered = sorted(self._lamps)
        fallback = ordered[0] if ordered else None
        if self.selected_broken_lamp_id not in self._lamps:
            self.selected_broken_lamp_id = fallback
        if self.selected_replace_lamp_id not in self._lamps:
            self.selected_replace_lamp_id = fallback
        if self.selected_lamp_id not in self._lamps:
            self.selected_lamp_id = fallback

        for lamp_id, entity in self._entities.items():
            lamp = self._lamps[lamp_id]
            entity.is_selected_for_replace = lamp_id == self.selected_replace_lamp_id
            entity.is_broken = lamp.is_broken or lamp_id == self.selected_broken_lamp_id

        selected = None
        if self.selected_lamp_id is not None:
            clicked = self._lamps[self.selected_lamp_id]
            selected = SelectedLamp(clicked.id, clicked.position.lat, clicked.position.lng, clicked.status)

        lamps = [self._lamps[lamp_id] for lamp_id in ordered]
        self.view = FleetView(
            options=tuple(SelectorOption(lamp.id, f"#{lamp.id} - {_STATUS_TEXT[lamp.status]}") for lamp in lamps),
            total=len(lamps),
            active=sum(1 for lamp in lamps if lamp.status == LampStatus.ON),
            fault=sum(1 for lamp in lamps if lamp.is_broken),
            selected=selected,
            tasks=tuple(sorted(self.tasks, key=lambda task: task.started_at, reverse=True)),
        )

    # ------------------------------------------------------------------
    # Local selection
    # ------------------------------------------------------------------

    def select_broken(self, lamp_id: int) -> bool:
        if lamp_id not in self._lamps:
            return False
        self.selected_broken_lamp_id = lamp_id
        self._refresh()
        return True

    def select_replace(self, lamp_id: int) -> bool:
        if lamp_id not in self._lamps:
            return False
        self.selected_replace_lamp_id = lamp_id
        self._refresh()
        return True

    def select_lamp(self, lamp_id: int) -> bool:
        """Map click: the lamp fills the info panel and both selectors."""
        if lamp_id not in self._lamps:
            return False
        self.selected_lamp_id = lamp_id
        self.selected_broken_lamp_id = lamp_id
        self.selected_replace_lamp_id = lamp_id
        self._refresh()
        return True

    # ------------------------------------------------------------------
    # Command builders
    # ------------------------------------------------------------------

    @property
    def drone_busy(self) -> bool:
        return self.drone_status != DroneStatus.IDLE

    def build_start_replacement(self) -> StartReplacement | None:
        """Request for the selected replacement lamp, or ``None`` if not sendable."""
        if self.selected_replace_lamp_id is None or self.drone_busy:
            return None
        return StartReplacement(lamp_id=self.selected_replace_lamp_id)

    def build_mark_broken(self, status: LampStatus | str = LampStatus.FAULT) -> SetLampFault | None:
        if self.selected_broken_lamp_id is None:
            return None
        return SetLampFault(lamp_id=self.selected_broken_lamp_id, status=LampStatus(status))
