"""aiohttp websocket server in front of a :class:`FleetStore`.

Every viewer gets its own websocket, its own outbox and its own periodic
tick task.  Snapshots published by the store are queued onto every
outbox; a single writer task per connection drains it, so ``initial``
always reaches the viewer before any ``update``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from collections.abc import Callable

from aiohttp import WSMsgType, web

from lampfleet._constants import STATE_PATH, WS_PATH
from lampfleet._logfmt import summarize_for_log
from lampfleet.config import FleetConfig
from lampfleet.exceptions import FleetProtocolError
from lampfleet.models.snapshot import FleetSnapshot
from lampfleet.protocol import RejectedMessage, encode_message, parse_command, snapshot_message
from lampfleet.state.dispatch import dispatch_command
from lampfleet.state.store import FleetStore

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", FleetConfig)
STORE_KEY = web.AppKey("store", FleetStore)
SOCKETS_KEY = web.AppKey("sockets", weakref.WeakSet[web.WebSocketResponse])


def create_app(config: FleetConfig | None = None, *, store: FleetStore | None = None) -> web.Application:
    """Build the web application.  Pass *store* to share one with tests."""
    config = config or FleetConfig()
    app = web.Application()
    app[CONFIG_KEY] = config
    app[STORE_KEY] = store if store is not None else FleetStore(config)
    app[SOCKETS_KEY] = weakref.WeakSet()
    app.router.add_get(WS_PATH, websocket_handler)
    app.router.add_get(STATE_PATH, state_handler)
    app.on_shutdown.append(_close_sockets)
    app.on_cleanup.append(_close_store)
    return app


async def state_handler(request: web.Request) -> web.Response:
    return web.json_response(request.app[STORE_KEY].snapshot().to_wire())


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    store = request.app[STORE_KEY]
    config = request.app[CONFIG_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    request.app[SOCKETS_KEY].add(ws)
    peer = request.remote
    _logger.info("Viewer connected: %s", peer)

    outbox: asyncio.Queue[str] = asyncio.Queue()
    outbox.put_nowait(encode_message(snapshot_message(store.snapshot(), initial=True)))

    def _on_snapshot(snapshot: FleetSnapshot) -> None:
        outbox.put_nowait(encode_message(snapshot_message(snapshot)))

    unsubscribe = store.subscribe(_on_snapshot)
    writer = asyncio.create_task(_drain_outbox(ws, outbox, peer, unsubscribe))
    ticker = asyncio.create_task(_tick_periodically(store, config.tick_interval))

    try:
        async for msg in ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                _handle_frame(msg.data, store, config, outbox, peer)
            elif msg.type == WSMsgType.ERROR:
                _logger.debug("Websocket error from %s: %s", peer, ws.exception())
    finally:
        unsubscribe()
        for task in (ticker, writer):
            task.cancel()
        for task in (ticker, writer):
            with contextlib.suppress(asyncio.CancelledError):
                await task
        _logger.info("Viewer disconnected: %s", peer)

    return ws


def _handle_frame(
    data: str | bytes,
    store: FleetStore,
    config: FleetConfig,
    outbox: asyncio.Queue[str],
    peer: str | None,
) -> None:
    try:
        command = parse_command(data)
    except FleetProtocolError as exc:
        _logger.debug("Dropped command from %s: %s payload=%s", peer, exc, summarize_for_log(data))
        if config.reply_rejections:
            outbox.put_nowait(encode_message(RejectedMessage(reason=str(exc), command=exc.message_type)))
        return
    _logger.debug("Command from %s: %s", peer, command.type)
    dispatch_command(store, command)


async def _drain_outbox(
    ws: web.WebSocketResponse,
    outbox: asyncio.Queue[str],
    peer: str | None,
    unsubscribe: Callable[[], None],
) -> None:
    """Send queued frames in order.  A viewer that cannot be written to is dropped."""
    try:
        while True:
            text = await outbox.get()
            if ws.closed:
                return
            await ws.send_str(text)
    except ConnectionError:
        _logger.debug("Send to %s failed, dropping viewer", peer, exc_info=True)
        unsubscribe()
        await ws.close()
    finally:
        unsubscribe()


async def _tick_periodically(store: FleetStore, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        store.tick()


async def _close_sockets(app: web.Application) -> None:
    for ws in list(app[SOCKETS_KEY]):
        await ws.close(code=1001, message=b"Server shutdown")


async def _close_store(app: web.Application) -> None:
    await app[STORE_KEY].close()


def run_server(config: FleetConfig | None = None) -> None:
    """Serve the fleet until interrupted."""
    config = config or FleetConfig()
    _logger.info("Serving lamp fleet on http://%s:%s (websocket %s)", config.host, config.port, WS_PATH)
    web.run_app(create_app(config), host=config.host, port=config.port, print=None)
