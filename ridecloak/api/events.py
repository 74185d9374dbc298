"""WebSocket fan-out: the publish capability backed by live connections."""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    websocket: WebSocket
    loop: asyncio.AbstractEventLoop
    kind: str = "unknown"
    party_id: Optional[str] = None


class ConnectionManager:
    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[int, Connection] = {}
        self._tasks = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        with self._lock:
            self._connections[id(websocket)] = Connection(websocket, asyncio.get_running_loop())
        logger.info("connection opened (%d active)", len(self))

    def disconnect(self, websocket: WebSocket):
        with self._lock:
            conn = self._connections.pop(id(websocket), None)
        if conn:
            logger.info("connection closed: %s %s", conn.kind, conn.party_id)

    def register(self, websocket: WebSocket, kind: str, party_id: str):
        with self._lock:
            conn = self._connections.get(id(websocket))
            if conn:
                conn.kind = kind or "unknown"
                conn.party_id = party_id
        logger.info("%s registered: %s", kind, party_id)

    def party_of(self, websocket: WebSocket) -> Optional[str]:
        with self._lock:
            conn = self._connections.get(id(websocket))
            return conn.party_id if conn else None

    def has_party(self, party_id: str) -> bool:
        with self._lock:
            return any(c.party_id == party_id for c in self._connections.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def publish(self, event: str, payload, recipient: Optional[str] = None) -> None:
        """Schedule the send and return; delivery is not awaited."""
        with self._lock:
            targets = [
                c for c in self._connections.values()
                if recipient is None or c.party_id == recipient
            ]
        if not targets:
            logger.debug("no subscribers for %s (recipient=%s)", event, recipient)
            return
        message = {"event": event, "data": payload}
        by_loop: Dict[asyncio.AbstractEventLoop, List[WebSocket]] = {}
        for conn in targets:
            by_loop.setdefault(conn.loop, []).append(conn.websocket)
        for loop, sockets in by_loop.items():
            self._schedule(loop, self._send_all(sockets, message))

    def _schedule(self, loop: asyncio.AbstractEventLoop, coro):
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(coro)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif loop.is_closed():
            coro.close()
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)

    async def _send_all(self, sockets: List[WebSocket], message: dict):
        for websocket in sockets:
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning("dropping connection after failed send of %s: %s", message["event"], e)
                self.disconnect(websocket)

    async def send(self, websocket: WebSocket, event: str, payload):
        await websocket.send_json({"event": event, "data": payload})


manager = ConnectionManager()
