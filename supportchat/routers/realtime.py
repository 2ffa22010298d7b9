# supportchat/routers/realtime.py
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from supportchat.auth import InvalidToken, bearer_token
from supportchat.realtime.gateway import EV_ERROR
from supportchat.util.logger import get_logger

log = get_logger("supportchat.gateway")
router = APIRouter()

WS_UNAUTHORIZED = 4001


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    """
    ws://host/ws/chat?token=<user jwt>  or  ?admin_token=<staff jwt>
    (a user token may also come as ``Authorization: Bearer``).
    Frames both ways: {"event": "...", "data": {...}}
    """
    gateway = websocket.app.state.gateway
    token = websocket.query_params.get("token") or bearer_token(websocket.headers.get("authorization"))
    admin_token = websocket.query_params.get("admin_token") or ""
    try:
        role, ident = gateway.authenticate(token=token, admin_token=admin_token)
    except InvalidToken as e:
        log.info({"event": "ws_rejected", "reason": str(e)})
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await websocket.accept()
    conn = await gateway.connect(websocket, role, ident)
    try:
        while True:
            try:
                frame = json.loads(await websocket.receive_text())
            except (KeyError, TypeError, ValueError):
                # bad JSON, or a binary frame (no "text" key)
                frame = None
            if not isinstance(frame, dict):
                await conn.send(EV_ERROR, {"event": None, "message": "Malformed frame"})
                continue
            await gateway.handle(conn, frame.get("event"), frame.get("data"))
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(conn)
