import json
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

import footbet.database as _db
from footbet.services.auth_service import ACCESS_COOKIE, user_from_token
from footbet.services.websocket_manager import ConnectionLimitError, parse_filters, websocket_manager

logger = logging.getLogger("footbet.ws")

router = APIRouter()

_COMMANDS = ("subscribe", "unsubscribe", "replace")


def _token_from_ws(ws) -> str | None:
    return ws.cookies.get(ACCESS_COOKIE) or ws.query_params.get("token")


async def _resolve_ws_user(token: str | None) -> dict | None:
    if not token:
        return None
    try:
        return await user_from_token(token, _db.db)
    except HTTPException:
        return None


@router.websocket("/ws/predictions")
async def predictions_stream(ws: WebSocket):
    """Category lifecycle events. Anonymous clients are allowed; filters come
    from the query string (?dates=..&categories=..&event_types=..) and can be
    changed later with {"type": "subscribe"|"unsubscribe"|"replace", ...}."""
    user = await _resolve_ws_user(_token_from_ws(ws))
    user_id = str(user["_id"]) if user else None

    initial = {key: ws.query_params.getlist(key) for key in ("dates", "categories", "event_types")}
    try:
        connection_id = await websocket_manager.connect(ws, user_id=user_id, filters=initial)
    except ConnectionLimitError:
        logger.warning("WebSocket refused: connection limit reached")
        await ws.close(code=4002, reason="Too many connections")
        return

    await ws.send_json({
        "type": "subscribed",
        "data": {k: sorted(v) for k, v in parse_filters(initial).items()},
    })
    try:
        while True:
            raw = await ws.receive_text()
            if raw == "ping":
                await ws.send_text("pong")
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                await ws.send_json({"type": "error", "data": {"detail": "invalid_json"}})
                continue
            command = message.get("type") if isinstance(message, dict) else None
            if command not in _COMMANDS:
                await ws.send_json({"type": "error", "data": {"detail": "unsupported_command"}})
                continue
            filters = await websocket_manager.apply_command(connection_id, command, message)
            await ws.send_json({"type": "subscribed", "data": filters})
    except WebSocketDisconnect:
        pass
    finally:
        await websocket_manager.disconnect(connection_id)
