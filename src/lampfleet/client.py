"""Async websocket client for a lamp fleet server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from lampfleet._constants import WS_PATH
from lampfleet._logfmt import summarize_for_log
from lampfleet.exceptions import FleetTransportError
from lampfleet.models._base import FleetBaseModel
from lampfleet.models.lamp import LampStatus
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.protocol import (
    CancelReplacement,
    SetLampFault,
    StartReplacement,
    UpdateDronePosition,
    encode_message,
    parse_server_message,
)
from lampfleet.reconcile.scene import SnapshotReconciler

_logger = logging.getLogger(__name__)


def build_ws_url(host: str, port: int) -> str:
    return f"ws://{host}:{port}{WS_PATH}"


class FleetClient:
    """Viewer connection to a fleet server.

    Usage::

        async with FleetClient("ws://localhost:3000/ws") as client:
            await client.start_replacement(4)
            await client.listen()

    Every inbound snapshot is reconciled into :attr:`reconciler` and then
    handed to *on_snapshot*.  Commands get no reply; their effects show up
    in a later snapshot.
    """

    def __init__(
        self,
        url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        reconciler: SnapshotReconciler | None = None,
        on_snapshot: Callable[[FleetSnapshot], None] | None = None,
    ) -> None:
        self._url = url
        self._external_session = session is not None
        self._http_session = session
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self.reconciler = reconciler or SnapshotReconciler()
        self._on_snapshot = on_snapshot
        self.latest_snapshot: FleetSnapshot | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        try:
            self._ws = await self._http_session.ws_connect(self._url)
        except aiohttp.ClientError as exc:
            await self._close_session()
            raise FleetTransportError(f"Could not connect to {self._url}: {exc}", url=self._url) from exc
        _logger.debug("Connected to %s", self._url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        await self._close_session()

    async def _close_session(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _require_ws(self) -> aiohttp.ClientWebSocketResponse:
        if self._ws is None or self._ws.closed:
            raise FleetTransportError("Client not connected. Use 'async with FleetClient(...) as client:'", url=self._url)
        return self._ws

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send(self, command: FleetBaseModel) -> None:
        ws = self._require_ws()
        try:
            await ws.send_str(encode_message(command))
        except ConnectionError as exc:
            raise FleetTransportError(f"Send to {self._url} failed: {exc}", url=self._url) from exc

    async def start_replacement(self, lamp_id: int) -> None:
        await self.send(StartReplacement(lamp_id=lamp_id))

    async def cancel_replacement(self, task_id: int) -> None:
        await self.send(CancelReplacement(task_id=task_id))

    async def set_lamp_fault(self, lamp_id: int, status: LampStatus | str = LampStatus.FAULT) -> None:
        await self.send(SetLampFault(lamp_id=lamp_id, status=LampStatus(status)))

    async def update_drone_position(self, position: Any) -> None:
        await self.send(UpdateDronePosition(position=position))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_text(self, data: str | bytes) -> FleetSnapshot | None:
        """Reconcile one inbound frame.  Malformed frames are ignored."""
        message = parse_server_message(data)
        if message is None:
            _logger.debug("Ignoring server message %s", summarize_for_log(data))
            return None
        snapshot = message.data
        self.latest_snapshot = snapshot
        self.reconciler.apply(snapshot)
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
        return snapshot

    async def receive_snapshot(self, timeout: float | None = None) -> FleetSnapshot:
        """Wait for the next well-formed snapshot."""
        ws = self._require_ws()
        async with asyncio.timeout(timeout):
            while True:
                msg = await ws.receive()
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    snapshot = self.handle_text(msg.data)
                    if snapshot is not None:
                        return snapshot
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                    raise FleetTransportError("Server closed the connection", url=self._url)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise FleetTransportError(f"Websocket error: {ws.exception()}", url=self._url)

    async def listen(self) -> None:
        """Reconcile snapshots until the server closes the connection."""
        ws = self._require_ws()
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self.handle_text(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise FleetTransportError(f"Websocket error: {ws.exception()}", url=self._url)
        _logger.debug("Connection to %s closed", self._url)
