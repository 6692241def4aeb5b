"""
WebSocket router for live case threads and notifications.

Endpoints:
1. /ws/cases/{case_type}/{case_id}?user_id=...: comment events for a case
2. /ws/users/{user_id}: notification events for one user

Each connection owns one hub Subscription, closed when the socket goes
away. Clients may send "ping" and receive "pong".
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ..models import CaseType
from ..services import ProfileDirectory, RealtimeEvent, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["realtime"])


async def _is_active_user(websocket: WebSocket, user_id: UUID) -> bool:
    async with websocket.app.state.session_factory() as session:
        actor = await ProfileDirectory(session).resolve_user(user_id)
    return actor is not None and actor.is_active and actor.is_internal


async def _serve(websocket: WebSocket, subscription: Subscription) -> None:
    """Keep the socket open until the client leaves, then unsubscribe."""
    try:
        await websocket.send_json({"type": "connected", "channel": subscription.channel})
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            if data == "ping":
                await websocket.send_text("pong")
    finally:
        await subscription.close()
        logger.debug(f"WebSocket left {subscription.channel}")


def _forwarder(websocket: WebSocket):
    async def forward(event: RealtimeEvent) -> None:
        await websocket.send_json(event.to_message())
    return forward


@router.websocket("/cases/{case_type}/{case_id}")
async def websocket_case(
    websocket: WebSocket,
    case_type: CaseType,
    case_id: UUID,
    user_id: UUID = Query(...),
):
    if not await _is_active_user(websocket, user_id):
        await websocket.close(code=4003, reason="Inactive or unknown user")
        return

    await websocket.accept()
    hub = websocket.app.state.hub
    subscription = hub.subscribe_case(case_type, case_id, _forwarder(websocket))
    await _serve(websocket, subscription)


@router.websocket("/users/{user_id}")
async def websocket_user(websocket: WebSocket, user_id: UUID):
    if not await _is_active_user(websocket, user_id):
        await websocket.close(code=4003, reason="Inactive or unknown user")
        return

    await websocket.accept()
    hub = websocket.app.state.hub
    subscription = hub.subscribe_user(user_id, _forwarder(websocket))
    await _serve(websocket, subscription)
