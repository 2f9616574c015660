import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from datefinder import state
from datefinder.config import get_settings
from datefinder.controllers.events import build_event_view
from datefinder.errors import PersistenceError
from datefinder.events import ErrorMessage, NotFoundMessage, SnapshotMessage
from datefinder.models.event import EventData
from datefinder.subscription import subscription

router = APIRouter()

_logger = logging.getLogger("datefinder.ws.events")


def build_snapshot_message(event: EventData, limit: int) -> SnapshotMessage:
    view = build_event_view(event, limit).model_dump(mode="json")
    event_doc = view.pop("event")
    return {"type": "snapshot", "event": event_doc, "results": view}


@router.websocket("/ws/events/{event_id}")
async def websocket_event(websocket: WebSocket, event_id: str):
    await websocket.accept()
    if state.event_store is None or state.event_bus is None:
        await websocket.close(code=1011)
        return

    settings = get_settings().events
    queue: asyncio.Queue[EventData | None] = asyncio.Queue()
    _logger.info("ws_events.accept event=%s", event_id)

    async def send_snapshots():
        while True:
            event = await queue.get()
            if event is None:
                message: NotFoundMessage = {"type": "not_found", "event_id": event_id}
                await websocket.send_text(json.dumps(message))
                _logger.info("ws_events.not_found event=%s", event_id)
                return
            await websocket.send_text(json.dumps(build_snapshot_message(event, settings.ranking_limit)))

    async def heartbeat():
        while True:
            await asyncio.sleep(settings.ws_heartbeat_sec)
            await websocket.send_text(json.dumps({"type": "ping"}))

    async def receive():
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass

    tasks: list[asyncio.Task] = []
    try:
        async with subscription(state.event_store, state.event_bus, event_id, queue.put_nowait):
            sender = asyncio.create_task(send_snapshots())
            receiver = asyncio.create_task(receive())
            tasks = [sender, receiver, asyncio.create_task(heartbeat())]
            await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if sender.done() and sender.exception() is None:
                await websocket.close(code=1000)
    except PersistenceError as e:
        _logger.warning("ws_events.error event=%s detail=%s", event_id, e.detail)
        message: ErrorMessage = {"type": "error", "error": e.error, "detail": e.detail}
        await websocket.send_text(json.dumps(message))
        await websocket.close(code=1011)
    except WebSocketDisconnect:
        pass
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        _logger.info("ws_events.close event=%s", event_id)
