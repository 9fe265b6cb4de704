"""
Corner Holes Web Server — Layer 3 (FastAPI + WebSocket)

Serves the canvas frontend and drives the frame chain on the asyncio loop,
broadcasting each recorded frame to browser clients over WebSocket.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import GameController, SessionFlags
from physics import Color, INITIAL_BALL_RADIUS, HOLE_RADIUS, POINTER_RADIUS
from scenarios import ScenePreset
from surface import RecordingSurface

STATIC_DIR = Path(__file__).resolve().parent / "static"

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS

# ── Frame primitive: callbacks delivered once by frame_pump() ───────────────

_frame_queue: list = []


def request_frame(callback):
    _frame_queue.append(callback)


# ── Controller ──────────────────────────────────────────────────────────────

surface = RecordingSurface()
flags = SessionFlags()
ctrl = GameController(request_frame, surface, flags=flags)
_started = False


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    task = asyncio.create_task(frame_pump())
    yield
    task.cancel()


app = FastAPI(lifespan=lifespan)

# ── Client state ────────────────────────────────────────────────────────────

clients: list[WebSocket] = []

# Scenario map (keys 1-4)
SCENARIOS = {
    "1": (ScenePreset.scenario_1_dodge,   "1: Dodge"),
    "2": (ScenePreset.scenario_2_capture, "2: Capture"),
    "3": (ScenePreset.scenario_3_respawn, "3: Respawn"),
    "4": (ScenePreset.scenario_4_swallow, "4: Swallow"),
}


# ── Async frame pump ────────────────────────────────────────────────────────

def deliver_frames() -> int:
    """Run every frame callback requested since the last call. Returns how many ran."""
    due = list(_frame_queue)
    _frame_queue.clear()
    for callback in due:
        callback()
    return len(due)


async def frame_pump():
    """Deliver requested frames at ~60 fps and broadcast what they drew."""
    while True:
        now = time.perf_counter()

        delivered = deliver_frames()
        if delivered or ctrl.pending_events:
            frame_msg = _build_frame_message(sounds=delivered > 0)
            if clients:
                await _broadcast(frame_msg)

        elapsed = time.perf_counter() - now
        sleep_time = FRAME_DT - elapsed
        if sleep_time > 0:
            await asyncio.sleep(sleep_time)
        else:
            await asyncio.sleep(0)


async def _broadcast(text: str) -> None:
    dead: list[WebSocket] = []
    for ws in clients:
        try:
            await ws.send_text(text)
        except Exception:
            dead.append(ws)
    for ws in dead:
        if ws in clients:
            clients.remove(ws)
            print(f"[WS] dropped client, {len(clients)} left")


def _build_frame_message(sounds: bool = True) -> str:
    """Serialize the last recorded frame plus drained UI events into JSON."""
    events = list(ctrl.pending_events)
    ctrl.pending_events.clear()

    sound_list = []
    if sounds:
        for ev in ctrl.physics_events:
            sound_list.append({
                "type": ev.get("type", ""),
                "speed": round(float(ev.get("speed", 0.0)), 3),
            })

    frame = {
        "type": "frame",
        "region": list(surface.region),
        "circles": surface.commands,
        "events": events,
        "sounds": sound_list,
        "score": ctrl.score,
        "paused": ctrl.paused,
        "status": ctrl.status_msg,
        "info": ctrl.info_msg,
    }
    return json.dumps(frame, separators=(',', ':'))


def _build_init_message() -> str:
    return json.dumps({
        "type": "init",
        "ball_radius": INITIAL_BALL_RADIUS,
        "hole_radius": HOLE_RADIUS,
        "pointer_radius": POINTER_RADIUS,
        "colors": {c.name: c.value for c in Color},
        "fps": TARGET_FPS,
        "instructions": ctrl.instructions_visible,
        "paused": ctrl.paused,
        "score": ctrl.score,
    })


# ── Command handling ────────────────────────────────────────────────────────

def _handle_command(msg: dict) -> dict | None:
    """Apply one client command. Returns a reply for the sender, if any."""
    global _started
    cmd = msg.get("cmd", "")

    if cmd == "pointer":
        ctrl.set_pointer(float(msg.get("x", 0.0)), float(msg.get("y", 0.0)))
    elif cmd == "resize":
        w = float(msg.get("width", 0.0))
        h = float(msg.get("height", 0.0))
        if not _started:
            _started = True
            ctrl.start(w, h)
        else:
            ctrl.handle_resize(w, h)
    elif cmd == "toggle_pause":
        ctrl.toggle_pause()
    elif cmd == "click":
        ctrl.handle_click()
    elif cmd == "start":
        ctrl.dismiss_instructions()
    elif cmd == "scenario":
        entry = SCENARIOS.get(str(msg.get("key", "")))
        if entry is not None:
            fn, label = entry
            ctrl.load_scenario(fn, label)
    elif cmd == "execute":
        ctrl.execute_command(msg.get("text", ""))
    elif cmd == "get_state":
        return {"type": "state_json", "data": ctrl.get_state_json()}
    elif cmd == "get_params":
        return {"type": "params", "data": ctrl.get_params()}
    elif cmd == "adjust_param":
        idx = int(msg.get("index", 0))
        value = ctrl.adjust_param(idx, int(msg.get("direction", 0)),
                                  fine=bool(msg.get("fine", False)))
        if value is not None:
            return {"type": "param_update", "index": idx, "value": round(value, 6)}
    elif cmd == "reset_params":
        ctrl.reset_params()
        return {"type": "params", "data": ctrl.get_params()}
    return None


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    clients.append(ws)
    print(f"[WS] client connected, {len(clients)} total")

    await ws.send_text(_build_init_message())

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue
            try:
                reply = _handle_command(msg)
            except (TypeError, ValueError, LookupError) as exc:
                print(f"[WS] bad command {msg.get('cmd')!r}: {exc}")
                continue
            if reply is not None:
                await ws.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        print(f"[WS] client disconnected, {len(clients)} left")


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
