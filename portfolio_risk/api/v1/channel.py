"""WS /v1/ws/weights - push channel for weight_update broadcasts"""

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from portfolio_risk.api.dependencies import get_broadcaster
from portfolio_risk.config import settings
from portfolio_risk.infrastructure.channel.broadcaster import WeightUpdateBroadcaster

router = APIRouter()


@router.websocket("/ws/weights")
async def weight_channel(
    websocket: WebSocket,
    scope: str = Query(default=settings.default_scope),
    broadcaster: WeightUpdateBroadcaster = Depends(get_broadcaster),
):
    """Register an observer for scope until it disconnects; inbound frames are ignored"""
    await broadcaster.connect(websocket, scope)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(websocket, scope)
