import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from file_registry_service.broadcaster import Broadcaster, Subscription
from file_registry_service.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()

async def _forward_events(websocket: WebSocket, subscription: Subscription):
    while True:
        event = await subscription.get()
        await websocket.send_json(event.model_dump(mode="json"))

async def _wait_for_disconnect(websocket: WebSocket):
    # Viewers only listen; anything they send is ignored.
    while True:
        await websocket.receive_text()

@router.websocket("/ws")
async def file_events_websocket(websocket: WebSocket):
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    # Subscribe before accepting so nothing published after the handshake is missed.
    subscription = broadcaster.subscribe()
    tasks = []
    try:
        await websocket.accept()
        tasks = [
            asyncio.create_task(_forward_events(websocket, subscription)),
            asyncio.create_task(_wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            task.result()
    except WebSocketDisconnect:
        logger.info(f"Viewer {subscription.id} disconnected")
    finally:
        for task in tasks:
            task.cancel()
        broadcaster.unsubscribe(subscription)
