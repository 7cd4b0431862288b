"""WebSocket endpoint for real-time log streaming.

Endpoint: /ws

Client → Server (JSON):
    {"type": "select", "file_path": "<path>"}

Server → Client (JSON):
    {"type": "buffer", "file_path": "<path>", "entries": [{...}, ...]}
    {"type": "log",    "file_path": "<path>", "entry": {...}}

Selects accumulate: a viewer receives live records for every file it has
selected.  Re-selecting a file sends its history again.  Anything that is
not a well-formed select is ignored.
"""

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from smartlog.hub import BroadcastHub, Session
from smartlog.registry import normalize_path

router = APIRouter()
logger = logging.getLogger(__name__)


def _selected_path(raw: str) -> str | None:
    """Return the normalized path of a select request, None for anything else."""
    try:
        payload = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(payload, dict) or payload.get("type") != "select":
        return None
    file_path = payload.get("file_path")
    if not isinstance(file_path, str) or not file_path.strip():
        return None
    return normalize_path(file_path)


async def _pump_outbound(ws: WebSocket, session: Session) -> None:
    while True:
        message = await session.queue.get()
        try:
            await ws.send_text(json.dumps(message))
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Send to session %d failed: %s", session.id, e)
            return


@router.websocket("/ws")
async def ws_logs(ws: WebSocket) -> None:
    hub: BroadcastHub = ws.app.state.hub
    await ws.accept()
    session = hub.open_session()
    sender = asyncio.create_task(_pump_outbound(ws, session))
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            path = _selected_path(raw) if raw else None
            if path is not None:
                hub.subscribe(session, path)
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe_all(session)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
