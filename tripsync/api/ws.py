"""
WebSocket endpoint for real-time group updates
"""

import json
import logging
from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect, status

from tripsync.utils.security import resolve_websocket_user

logger = logging.getLogger(__name__)

# Router for WebSocket endpoints
router = APIRouter()

@router.websocket("")
async def websocket_endpoint(websocket: WebSocket):
    """One channel per connection; a channel may join several group rooms"""
    broadcaster = websocket.app.state.broadcaster
    handlers = websocket.app.state.event_handlers

    if not broadcaster.running:
        await websocket.close(code=1013, reason="Server is not accepting connections")
        return

    user_id = resolve_websocket_user(websocket)
    if user_id is None:
        logger.warning("WebSocket handshake rejected: missing or invalid credential")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication required")
        return

    channel = await broadcaster.connect(websocket, user_id)

    try:
        # Send welcome message
        await broadcaster.send_personal_message({
            "type": "connection",
            "socketId": channel.id,
            "userId": user_id,
            "message": "Connected",
        }, channel)

        while True:
            data = await websocket.receive_text()
            try:
                client_message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from channel {channel.id}: {data}")
                await broadcaster.send_personal_message({
                    "type": "error",
                    "event": None,
                    "kind": "validation",
                    "message": "Messages must be JSON objects",
                    "details": None,
                }, channel)
                continue

            await handlers.dispatch(channel, client_message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error on channel {channel.id}: {e}")
    finally:
        await handlers.on_disconnect(channel)

@router.get("/stats")
async def websocket_stats(request: Request):
    """Get WebSocket connection statistics (for debugging)"""
    broadcaster = request.app.state.broadcaster
    counts = broadcaster.get_all_connection_counts()
    return {
        "total_groups_with_connections": len(counts),
        "connection_counts": counts,
        "total_channels": len(broadcaster.channels),
        "connected_users": request.app.state.registry.snapshot(),
    }
