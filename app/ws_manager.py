"""WebSocket connection manager for real-time repair progress."""

import asyncio
import json
import logging

logger = logging.getLogger(__name__)

# Heartbeat interval (seconds) between pings to every connection
HEARTBEAT_INTERVAL = 30

# Maximum viewers per monitoring session before oldest is evicted
MAX_CONNECTIONS_PER_SESSION = 3

# Maximum inbound message size (bytes); sandbox events carry error text
MAX_MESSAGE_SIZE = 65_536


class ConnectionManager:
    """Manages active WebSocket connections keyed by monitoring session id."""

    def __init__(self) -> None:
        self._connections: dict[str, list] = {}  # session_id -> list of websockets
        self._lock = asyncio.Lock()
        self._heartbeat_task: asyncio.Task | None = None

    # ── lifecycle ─────────────────────────────────────────────

    async def start_heartbeat(self) -> None:
        """Start the background heartbeat loop (call from lifespan startup)."""
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    async def stop_heartbeat(self) -> None:
        """Cancel the heartbeat task (call from lifespan shutdown)."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

    # ── connection management ─────────────────────────────────

    async def connect(self, session_id: str, websocket) -> None:  # noqa: ANN001
        """Register a WebSocket connection for a session.

        Enforces MAX_CONNECTIONS_PER_SESSION — oldest connection is
        evicted when the limit is reached.
        """
        async with self._lock:
            conns = self._connections.setdefault(session_id, [])

            while len(conns) >= MAX_CONNECTIONS_PER_SESSION:
                oldest = conns.pop(0)
                try:
                    await oldest.close(code=1008, reason="Connection limit reached")
                except Exception:
                    logger.debug("Evicted socket already closed", exc_info=True)

            conns.append(websocket)

    def connection_count(self, session_id: str) -> int:
        """Return the number of active connections for a session (lock-free)."""
        return len(self._connections.get(session_id, []))

    async def disconnect(self, session_id: str, websocket) -> None:  # noqa: ANN001
        """Remove a WebSocket connection for a session."""
        async with self._lock:
            conns = self._connections.get(session_id, [])
            if websocket in conns:
                conns.remove(websocket)
            if not conns:
                self._connections.pop(session_id, None)

    async def send_to_session(self, session_id: str, data: dict) -> None:
        """Send a JSON message to every connection watching *session_id*."""
        async with self._lock:
            conns = list(self._connections.get(session_id, []))
        if not conns:
            return
        message = json.dumps(data, default=str)
        dead = []
        for ws in conns:
            try:
                await asyncio.wait_for(ws.send_text(message), timeout=5.0)
            except Exception:
                dead.append(ws)
        if dead:
            await self._prune(session_id, dead)

    async def broadcast_stage_update(self, session_id: str, update: dict) -> None:
        """Broadcast a repair ``stage_update`` event."""
        await self.send_to_session(session_id, {"type": "stage_update", "payload": update})

    async def broadcast_files_fixed(self, session_id: str, files: list[dict], modified: list[str]) -> None:
        """Broadcast the merged file set after a fix lands."""
        await self.send_to_session(
            session_id,
            {"type": "files_fixed", "payload": {"files": files, "modified_files": modified}},
        )

    async def broadcast_preview_options(self, session_id: str, options: dict) -> None:
        """Broadcast the sandbox preview options (auto-reload, recompile delay)."""
        await self.send_to_session(session_id, {"type": "preview_options", "payload": options})

    async def _prune(self, session_id: str, dead: list) -> None:
        async with self._lock:
            conns = self._connections.get(session_id, [])
            for ws in dead:
                if ws in conns:
                    conns.remove(ws)
            if not conns:
                self._connections.pop(session_id, None)

    # ── heartbeat ─────────────────────────────────────────────

    async def _heartbeat_loop(self) -> None:
        """Ping every connection periodically and prune dead ones."""
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            try:
                await self._ping_all()
            except Exception:
                logger.exception("Heartbeat sweep error")

    async def _ping_all(self) -> None:
        """Send a ping frame to every connection; remove dead ones."""
        async with self._lock:
            snapshot = {sid: list(conns) for sid, conns in self._connections.items()}

        for sid, conns in snapshot.items():
            dead: list = []
            for ws in conns:
                try:
                    await ws.send_json({"type": "ping"})
                except Exception:
                    dead.append(ws)
            if dead:
                await self._prune(sid, dead)


manager = ConnectionManager()
