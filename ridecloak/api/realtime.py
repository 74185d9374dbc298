import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from ridecloak.api.deps import get_service
from ridecloak.api.events import manager
from ridecloak.service import events
from ridecloak.service.core import RideService
from ridecloak.service.errors import DispatchError, InvalidInput

logger = logging.getLogger(__name__)

router = APIRouter()

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, service: RideService = Depends(get_service)):
    await manager.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            await handle_frame(websocket, text, service)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)

async def handle_frame(websocket: WebSocket, text: str, service: RideService):
    try:
        frame = json.loads(text)
    except ValueError:
        await manager.send(websocket, "error", {"kind": "invalid_input", "detail": "frame is not JSON"})
        return
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await manager.send(websocket, "error", {"kind": "invalid_input", "detail": "frame needs an event name"})
        return

    event = frame["event"]
    data = frame.get("data")
    fields = data if isinstance(data, dict) else {}
    try:
        if event == "register":
            party_id = fields.get("id")
            if not isinstance(party_id, str) or not party_id:
                raise InvalidInput("register needs a string id")
            kind = fields.get("type")
            manager.register(websocket, kind if isinstance(kind, str) else None, party_id)
        elif event == "order:accept":
            driver_id = fields.get("driverId")
            if manager.party_of(websocket) is None and isinstance(driver_id, str) and driver_id:
                # key exchange is addressed to the accepting party
                manager.register(websocket, "driver", driver_id)
            await run_in_threadpool(service.accept, fields.get("orderId"), driver_id)
        elif event == "order:start":
            await run_in_threadpool(service.start, fields.get("orderId"))
        elif event == "order:complete":
            await run_in_threadpool(service.complete, fields.get("orderId"))
        elif event in events.RELAYED_EVENTS:
            service.relay(event, data)
        else:
            await manager.send(websocket, "error", {"kind": "invalid_input", "detail": f"unknown event {event}", "event": event})
    except DispatchError as e:
        logger.info("%s rejected: %s", event, e.detail)
        await manager.send(websocket, "error", {"kind": e.kind, "detail": e.detail, "event": event})
