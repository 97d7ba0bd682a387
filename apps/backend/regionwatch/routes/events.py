"""
events.py — Browser-facing relay of realtime push events.

Routes:
  WS /api/v1/events/stream

Each browser connection registers its own handler for every push event
kind on the shared RealtimeChannel, so it sees exactly what the dashboard
components see, in delivery order. Handlers are removed when the browser
goes away.

Message format (JSON text frames):
  first   { "type": "ready", "payload": { "subjectId": "...", "state": "connected" } }
  then    { "type": "<push event kind>", "payload": <decoded model, camelCase> }

Events are buffered per connection up to _QUEUE_SIZE; a browser that falls
further behind than that loses the overflow (logged).
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from regionwatch.core.dashboard import Dashboard, get_dashboard
from regionwatch.models.events import PushEvent, PushEventKind

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/events", tags=["events"])

_QUEUE_SIZE = 256


def _relay(queue: asyncio.Queue, kind: PushEventKind):
    def enqueue(payload) -> None:
        try:
            queue.put_nowait(PushEvent(type=kind, payload=payload))
        except asyncio.QueueFull:
            logger.warning("Events client is lagging; dropped %s event", kind.value)

    return enqueue


async def _wait_for_close(websocket: WebSocket) -> None:
    # Browsers never send on this socket; anything received is ignored.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/stream")
async def event_stream(websocket: WebSocket, dashboard: Dashboard = Depends(get_dashboard)):
    await websocket.accept()
    queue: asyncio.Queue[PushEvent] = asyncio.Queue(maxsize=_QUEUE_SIZE)
    channel = dashboard.channel
    unsubscribers = [channel.register_handler(kind, _relay(queue, kind)) for kind in PushEventKind]
    closed = asyncio.create_task(_wait_for_close(websocket))

    try:
        await websocket.send_json({
            "type": "ready",
            "payload": {"subjectId": channel.subject_id, "state": channel.state.value},
        })
        while True:
            next_event = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({next_event, closed}, return_when=asyncio.FIRST_COMPLETED)
            if closed in done:
                next_event.cancel()
                break
            await websocket.send_text(next_event.result().model_dump_json(by_alias=True))
    except WebSocketDisconnect:
        logger.debug("Events client went away during send")
    finally:
        closed.cancel()
        for unsubscribe in unsubscribers:
            unsubscribe()
        logger.info("Events client disconnected")
