"""WebSocket endpoint — clients subscribe to sensors, work orders and alerts.

Learn: Each client connects to /ws?token=JWT and then sends subscription
messages (see realtime.registry). The handler only moves frames between
the socket and the registry; matching and delivery live in the registry.

Authentication: JWT token required as ?token= query param outside
development. Revoked tokens are refused like expired ones.
"""

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from condor_mes.auth.jwt import TokenError, verify_token
from condor_mes.config import settings
from condor_mes.realtime.registry import ConnectionRegistry

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/ws")
async def subscriptions_websocket(websocket: WebSocket):
    """Long-lived subscription socket — one per client screen."""
    token = websocket.query_params.get("token")

    if not token and settings.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        try:
            payload = verify_token(token)
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return
        revocations = websocket.app.state.revocations
        if revocations.is_token_revoked(payload["jti"], payload["sub"], payload["iat"]):
            await websocket.close(code=4001, reason="Token has been revoked")
            return

    await websocket.accept()

    registry: ConnectionRegistry = websocket.app.state.connections
    connection = registry.on_open(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            reply = registry.on_message(connection, data)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        registry.on_close(connection)
    except Exception as e:
        registry.on_error(connection, e)
    finally:
        registry.on_close(connection)
        # the registry may already have closed it after a failed delivery
        if (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        ):
            await websocket.close()
