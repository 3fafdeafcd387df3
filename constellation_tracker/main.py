"""
Constellation Tracker — FastAPI Backend

Endpoints:
  GET    /api/state              → render state for the map client
  GET    /api/satellites/{num}   → info panel + TLE parameters for one satellite
  POST   /api/location           → pick the ground location {latitude, longitude}
  POST   /api/view               → map panned, new view center {longitude}
  POST   /api/flags              → toggle show_spares / show_coverage / show_coverage_circles
  POST   /api/select/{num}       → marker click (toggles selection)
  POST   /api/select/index/{i}   → marker click by list position
  DELETE /api/select             → clear the selection
  POST   /api/refresh            → re-acquire TLEs now (installed on the next tick)
  WS     /ws                     → render state pushed after every propagation tick

Run with:
    uvicorn constellation_tracker.main:app
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from constellation_tracker.logging_config import configure_logging, get_logger
from constellation_tracker.render_state import satellite_info
from constellation_tracker.tracker import ConstellationTracker

configure_logging()
logger = get_logger(__name__)

tracker = ConstellationTracker()


def _log_run_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Tracker stopped unexpectedly", exc_info=error)


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(tracker.run())
    task.add_done_callback(_log_run_exit)
    try:
        yield
    finally:
        tracker.stop()
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


app = FastAPI(title="Constellation Tracker", version="1.0.0", lifespan=lifespan)


class LocationIn(BaseModel):
    latitude: float
    longitude: float


class ViewIn(BaseModel):
    longitude: float


class FlagsIn(BaseModel):
    show_spares: Optional[bool] = None
    show_coverage: Optional[bool] = None
    show_coverage_circles: Optional[bool] = None


# ── REST endpoints ─────────────────────────────────────────────────────────────

@app.get("/api/state")
async def get_state():
    """Everything the map client needs to draw the current frame."""
    return tracker.snapshot()


@app.get("/api/satellites/{number}")
async def get_satellite(number: str):
    obj = tracker.session.find(number)
    if obj is None:
        return JSONResponse(status_code=404, content={"error": f"Unknown satellite: {number}"})
    info = satellite_info(obj, with_params=True)
    if info is None:
        return JSONResponse(status_code=409, content={"error": f"No position yet for {obj.name}"})
    return info


@app.post("/api/location")
async def post_location(location: LocationIn):
    try:
        tracker.set_ground_location(location.latitude, location.longitude)
    except ValueError as e:
        return JSONResponse(status_code=422, content={"error": str(e)})
    return tracker.snapshot()


@app.post("/api/view")
async def post_view(view: ViewIn):
    try:
        tracker.set_view_center(view.longitude)
    except ValueError as e:
        return JSONResponse(status_code=422, content={"error": str(e)})
    return tracker.snapshot()


@app.post("/api/flags")
async def post_flags(flags: FlagsIn):
    for name, value in flags.model_dump(exclude_none=True).items():
        tracker.set_flag(name, value)
    return tracker.snapshot()


@app.post("/api/select/{number}")
async def post_select(number: str):
    """Marker click by satellite number (toggles the selection)."""
    try:
        selected = tracker.toggle_selection(number)
    except KeyError:
        return JSONResponse(status_code=404, content={"error": f"Unknown satellite: {number}"})
    except ValueError as e:
        return JSONResponse(status_code=409, content={"error": str(e)})
    return {"selected": selected.number if selected else None}


@app.post("/api/select/index/{index}")
async def post_select_index(index: int):
    """Marker click by position in the satellite list, for numbers shared by several satellites."""
    try:
        selected = tracker.toggle_selection_at(index)
    except KeyError as e:
        return JSONResponse(status_code=404, content={"error": str(e)})
    return {"selected": selected.number if selected else None, "index": index if selected else None}


@app.delete("/api/select")
async def delete_select():
    tracker.deselect()
    return {"selected": None}


@app.post("/api/refresh")
async def post_refresh():
    if not await tracker.refresh():
        return JSONResponse(status_code=503, content={"error": "TLE refresh failed"})
    return {"staged": len(tracker.session.pending_objects or [])}


# ── WebSocket streaming ────────────────────────────────────────────────────────

async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@app.websocket("/ws")
async def websocket_state(websocket: WebSocket):
    """
    WebSocket endpoint: pushes the render state after every tick.

    The first message is sent on connect; later messages follow the
    propagation loop, so they arrive roughly once a second.
    """
    await websocket.accept()
    logger.info(f"[WS] Client connected: {websocket.client}")

    loop = asyncio.get_running_loop()
    ticked = asyncio.Event()

    def on_tick(session):
        loop.call_soon_threadsafe(ticked.set)

    tracker.scheduler.add_listener(on_tick)
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        await websocket.send_text(json.dumps(tracker.snapshot()))
        while True:
            tick = asyncio.create_task(ticked.wait())
            done, _ = await asyncio.wait({tick, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected in done:
                tick.cancel()
                logger.info(f"[WS] Client disconnected: {websocket.client}")
                break
            ticked.clear()
            await websocket.send_text(json.dumps(tracker.snapshot()))

    except WebSocketDisconnect:
        logger.info(f"[WS] Client disconnected: {websocket.client}")
    except Exception as e:
        logger.error(f"[WS] Unexpected error: {e}")
    finally:
        tracker.scheduler.remove_listener(on_tick)
        disconnected.cancel()
