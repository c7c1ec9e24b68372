"""WebSocket router -- real-time repair progress for a monitoring session."""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.errors import AppError
from app.services import repair_service
from app.ws_manager import MAX_MESSAGE_SIZE, manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


async def _handle_client_message(session_id: str, websocket: WebSocket, data: str) -> None:
    """Sandboxes may push events or a stop request over the same socket."""
    try:
        msg = json.loads(data)
    except ValueError:
        await websocket.send_json({"type": "error", "detail": "Invalid JSON"})
        return

    kind = msg.get("type") if isinstance(msg, dict) else None
    try:
        if kind == "sandbox_event" and isinstance(msg.get("event"), dict):
            result = repair_service.feed_event(session_id, msg["event"])
            await websocket.send_json({"type": "event_result", "payload": result})
        elif kind == "stop":
            await repair_service.stop_repair(session_id, str(msg.get("reason") or "user"))
        elif kind == "pong":
            pass
        else:
            await websocket.send_json({"type": "error", "detail": f"Unknown message type: {kind}"})
    except AppError as exc:
        await websocket.send_json({"type": "error", "detail": str(exc)})


@router.websocket("/ws/sessions/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
    """WebSocket endpoint for one monitoring session.

    Server sends ``stage_update``, ``files_fixed`` and ``preview_options``
    events.  Clients may send ``sandbox_event`` and ``stop`` messages.
    """
    try:
        repair_service.get_monitor(session_id)
    except AppError:
        await websocket.close(code=4004, reason="Unknown session")
        return

    await websocket.accept()
    await manager.connect(session_id, websocket)
    count = manager.connection_count(session_id)
    logger.info("WS open  session=%s conns=%d", session_id[:8], count)

    try:
        while True:
            data = await websocket.receive_text()
            if len(data) > MAX_MESSAGE_SIZE:
                await websocket.close(code=1009, reason="Message too large")
                return
            await _handle_client_message(session_id, websocket, data)
    except WebSocketDisconnect:
        logger.info("WS close session=%s (client disconnect)", session_id[:8])
    except Exception:
        logger.exception("WS error session=%s", session_id[:8])
    finally:
        await manager.disconnect(session_id, websocket)
        count = manager.connection_count(session_id)
        logger.info("WS cleaned up session=%s remaining=%d", session_id[:8], count)
