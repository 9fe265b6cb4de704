"""
GameController — Layer 2 (Game Logic)

Owns the scene, the pause flag, the score and the frame chain.
Communicates with Layer 3 (main.py Ursina front end / server.py web front end)
through two injected boundary objects and one queue:
  - request_frame(callback) : host frame primitive, delivers callback once
  - surface                 : clear(region) / draw_circle(position, radius, color)
  - pending_events          : UI commands (update_score, pause_ui, show_instructions, …)

Layer 3 calls:
  ctrl.start(w, h)            — first-run check, then scene setup + first tick
  ctrl.set_pointer(x, y)      — latest pointer position (read once per tick)
  ctrl.toggle_pause()         — pause / resume
  ctrl.handle_click()         — resume on a click outside the UI controls
  ctrl.handle_resize(w, h)    — rebuild the scene for a new viewport
  ctrl.physics_events         — engine events of the last tick (sounds)
"""

import json
import random
from pathlib import Path
import numpy as np

from physics import PhysicsEngine, Scene, BallState
import physics as _phys


# ── Session flag key (first-run instructions) ─────────────────────────────────
HAS_PLAYED_KEY = "hasPlayedGame"

# ── Default info-bar message ───────────────────────────────────────────────────
DEFAULT_INFO_MSG = (
    "[Space/P] Pause  [Click] Resume  [1-4] Scenario  "
    "[[/]] Param  [,/.] Adjust  [Backspace] Reset params"
)

# ── Tunable gameplay constants: (attr, label, min, max, step) ─────────────────
GAME_PARAMS = [
    ("PUSH_SPEED",          "Push Speed",     1.0,  30.0,  0.5),
    ("ENTRY_BUFFER",        "Entry Buffer",   0.0,  60.0,  1.0),
    ("CAPTURE_DAMPING",     "Capture Damp.",  0.0,   1.0,  0.05),
    ("SUCK_FORCE",          "Suck Force",     0.0,   0.5,  0.01),
    ("PULL_DAMPING",        "Pull Damp.",     0.5,   1.0,  0.01),
    ("SHRINK_RATE",         "Shrink Rate",    0.1,   0.99, 0.01),
    ("MIN_BALL_RADIUS",     "Min Radius",     0.1,   5.0,  0.1),
    ("COMPLETION_DISTANCE", "Done Dist.",     1.0,  50.0,  1.0),
]

PARAM_DEFAULTS = {attr: getattr(_phys, attr) for attr, *_ in GAME_PARAMS}

# ── Console save/load directory (files are named, never pathed) ─────────────────
SAVE_DIR = Path(__file__).resolve().parent / "saves"


class SessionFlags:
    """Boolean flags that live as long as the process (browser session storage stand-in)."""

    def __init__(self):
        self._flags: dict[str, bool] = {}

    def get(self, key: str) -> bool:
        return self._flags.get(key, False)

    def set(self, key: str, value: bool = True) -> None:
        self._flags[key] = bool(value)


class GameController:
    """Layer 2: scene setup, scheduler / pause controller, score sink."""

    def __init__(self, request_frame, surface, flags: SessionFlags | None = None,
                 rng: random.Random | None = None, save_dir: Path | None = None):
        self._request_frame = request_frame
        self.surface = surface
        self.flags = flags if flags is not None else SessionFlags()
        self.rng = rng if rng is not None else random.Random()
        self.engine = PhysicsEngine(self.rng)
        self.save_dir = Path(save_dir) if save_dir is not None else SAVE_DIR

        # Scene state
        self.scene: Scene | None = None
        self.viewport = (0.0, 0.0)
        self._pointer_target: tuple[float, float] | None = None

        # Scheduler state
        self._paused = False
        self._frame_pending = False
        self.instructions_visible = False

        # Status / info messages (L3 reads these to update text entities)
        self.status_msg = ""
        self.info_msg = DEFAULT_INFO_MSG

        # Event queues
        self.pending_events: list[dict] = []   # L3 UI commands
        self.physics_events: list[dict] = []   # engine events of the last tick

    # ──────────────────────────────────────────────────────────────────────────
    # Accessors
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def score(self) -> int:
        return self.scene.score if self.scene is not None else 0

    @property
    def frame_pending(self) -> bool:
        return self._frame_pending

    # ──────────────────────────────────────────────────────────────────────────
    # Frame chain
    # ──────────────────────────────────────────────────────────────────────────

    def tick(self) -> None:
        """One frame: clear, holes, ball physics, ball, pointer, then request the next frame."""
        if self._paused or self.scene is None:
            return
        scene = self.scene
        surface = self.surface

        surface.clear((0.0, 0.0, scene.width, scene.height))
        for hole in scene.holes:
            surface.draw_circle(hole.position, hole.radius, hole.color)

        # pointer moves before physics, so repulsion sees this tick's input
        if self._pointer_target is not None:
            scene.pointer.move_to(*self._pointer_target)

        self.engine.update(scene)
        self.physics_events = list(self.engine.events)
        for ev in self.physics_events:
            if ev["type"] == "capture":
                print(f"[SCORE] hole {ev['hole']} captured the ball  score={ev['score']}")
                self._publish_score()

        ball = scene.ball
        surface.draw_circle(ball.position, ball.radius, ball.color)

        pointer = scene.pointer
        if pointer.present:
            surface.draw_circle(pointer.position, pointer.radius, pointer.color)

        self._schedule_frame()

    def _schedule_frame(self) -> None:
        # At most one frame in flight, so direct tick() calls never fork the chain.
        if self._frame_pending:
            return
        self._frame_pending = True
        self._request_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._frame_pending = False
        self.physics_events = []
        self.tick()

    def toggle_pause(self) -> None:
        """Flip pause. Resuming restarts the chain, since none is in flight."""
        if self.instructions_visible:
            return
        self._paused = not self._paused
        self.pending_events.append({"type": "pause_ui", "paused": self._paused})
        if self._paused:
            print("[PAUSE] paused")
            self.status_msg = "Paused. Click anywhere to resume."
        else:
            print("[PAUSE] resumed")
            self.status_msg = ""
            self.tick()

    def handle_click(self) -> None:
        """Click outside the UI controls: resume when paused."""
        if self._paused and not self.instructions_visible:
            self.toggle_pause()

    # ──────────────────────────────────────────────────────────────────────────
    # Scene setup / lifecycle
    # ──────────────────────────────────────────────────────────────────────────

    def setup_scene(self, width: float, height: float) -> None:
        """Create every entity fresh for the given viewport. Never schedules frames."""
        self.viewport = (float(width), float(height))
        self.scene = Scene.create(width, height, self.rng,
                                  pointer_position=self._pointer_target)
        self.pending_events.append({"type": "setup", "width": float(width), "height": float(height)})
        self._publish_score()
        print(f"[SCENE] setup {float(width):.0f}x{float(height):.0f}  paused={self._paused}")

    def start(self, width: float, height: float) -> None:
        """Page-load entry point: show first-run instructions or start playing."""
        if not self.flags.get(HAS_PLAYED_KEY):
            self.viewport = (float(width), float(height))
            self.instructions_visible = True
            self._paused = True
            self.pending_events.append({"type": "show_instructions"})
            self.status_msg = "Keep the ball away from the corner holes. Press Start."
            return
        self._begin(width, height)

    def dismiss_instructions(self) -> None:
        """Start button on the first-run overlay. Only the first call has an effect."""
        if not self.instructions_visible:
            return
        self.flags.set(HAS_PLAYED_KEY, True)
        self.instructions_visible = False
        self.pending_events.append({"type": "hide_instructions"})
        self._begin(*self.viewport)

    def _begin(self, width: float, height: float) -> None:
        self.setup_scene(width, height)
        self._paused = False
        self.status_msg = ""
        self.pending_events.append({"type": "pause_ui", "paused": False})
        self.tick()

    def handle_resize(self, width: float, height: float) -> None:
        """Rebuild the scene, keep the pause state, restart the chain if running."""
        if self.instructions_visible:
            self.viewport = (float(width), float(height))
            return
        self.setup_scene(width, height)
        if not self._paused:
            self.tick()

    def set_pointer(self, x: float, y: float) -> None:
        self._pointer_target = (float(x), float(y))

    def load_scenario(self, scenario_fn, label: str) -> None:
        """Load a preset scene (keys 1-4). Keeps the pause state like a resize."""
        if self.instructions_visible:
            return
        result = scenario_fn(run=False)
        self.scene = result["scene"]
        self.engine = result["engine"]
        self.rng = self.engine.rng
        self.viewport = (self.scene.width, self.scene.height)
        pointer = self.scene.pointer
        self._pointer_target = (
            (float(pointer.position[0]), float(pointer.position[1]))
            if pointer.present else None
        )
        self.pending_events.append({"type": "setup", "width": self.scene.width,
                                    "height": self.scene.height})
        self._publish_score()
        self.info_msg = f"Scenario {label}"
        print(f"[SCENE] scenario {label}")
        if not self._paused:
            self.tick()

    def _publish_score(self) -> None:
        self.pending_events.append({"type": "update_score", "score": self.score})

    # ──────────────────────────────────────────────────────────────────────────
    # Runtime parameters
    # ──────────────────────────────────────────────────────────────────────────

    def get_params(self) -> list:
        """Return all tunable params with current values."""
        result = []
        for attr, label, mn, mx, step in GAME_PARAMS:
            result.append({
                "attr": attr, "label": label,
                "value": round(getattr(_phys, attr), 6),
                "min": mn, "max": mx, "step": step,
            })
        return result

    def adjust_param(self, index: int, direction: int, fine: bool = False) -> float | None:
        """Nudge one param by its step (a tenth of it when fine), clamped to its range."""
        if not 0 <= index < len(GAME_PARAMS):
            return None
        attr, label, mn, mx, step = GAME_PARAMS[index]
        s = step / 10.0 if fine else step
        new_val = max(mn, min(mx, getattr(_phys, attr) + direction * s))
        setattr(_phys, attr, new_val)
        self.status_msg = f"{label} = {new_val:.4g}"
        return new_val

    def reset_params(self) -> None:
        for attr, dflt in PARAM_DEFAULTS.items():
            setattr(_phys, attr, dflt)
        self.pending_events.append({"type": "refresh_params", "params": list(PARAM_DEFAULTS)})
        self.status_msg = "Params reset."

    def set_params(self, params: dict) -> tuple[list, list]:
        """Update tunable constants by name. Returns (updated, skipped)."""
        allowed = {attr for attr, *_ in GAME_PARAMS}
        updated, skipped = [], []
        for k, v in params.items():
            if k not in allowed:
                skipped.append(k)
                continue
            try:
                setattr(_phys, k, float(v))
            except (TypeError, ValueError) as e:
                print(f"[ADV] setattr {k} failed: {e}")
                skipped.append(k)
                continue
            updated.append(f"{k}={float(v):.4g}")
        self.pending_events.append({"type": "refresh_params", "params": list(params.keys())})
        return updated, skipped

    # ──────────────────────────────────────────────────────────────────────────
    # Command console
    # ──────────────────────────────────────────────────────────────────────────

    def get_state_json(self) -> str:
        """Return the current scene as a compact single-line set-command JSON."""
        payload = {"cmd": "set"}
        if self.scene is not None:
            ball = self.scene.ball
            payload["ball"] = {
                "pos": [round(float(ball.position[0]), 3), round(float(ball.position[1]), 3)],
                "vel": [round(float(ball.velocity[0]), 3), round(float(ball.velocity[1]), 3)],
            }
            pointer = self.scene.pointer
            if pointer.present:
                payload["pointer"] = [round(float(pointer.position[0]), 3),
                                      round(float(pointer.position[1]), 3)]
        return json.dumps(payload, separators=(',', ':'))

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not text:
            print("[ADV] execute_command: empty text")
            return
        text = text.replace('\r', '')
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            print(f"[ADV] JSON parse error: {exc}")
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return
        cmd = str(data.get("cmd", "")).lower().strip()
        print(f"[ADV] cmd={cmd}")
        try:
            if cmd == "set":
                self._cmd_set(data)
            elif cmd == "save":
                self._cmd_save(data)
            elif cmd == "load":
                self._cmd_load(data)
            else:
                self.status_msg = f"Unknown cmd '{cmd}'. Use set/save/load."
        except (TypeError, ValueError, LookupError, AttributeError) as exc:
            print(f"[ADV] {cmd} failed: {exc}")
            self.status_msg = f"{cmd}: bad arguments ({exc})"

    def _cmd_set(self, data: dict) -> None:
        """set: place the ball / pointer, or update params."""
        params = data.get("params")
        if params is not None:
            if not isinstance(params, dict):
                self.status_msg = "set: 'params' must be an object."
                return
            updated, skipped = self.set_params(params)
            msg = f"params: set {updated}"
            if skipped:
                msg += f"  (unknown: {skipped})"
            print(f"[ADV] {msg}")
            self.status_msg = msg
            return

        ball_data = data.get("ball")
        pointer_data = data.get("pointer")
        if ball_data is None and pointer_data is None:
            self.status_msg = "set: 'ball', 'pointer' or 'params' field required."
            return

        changed = []
        if pointer_data is not None:
            self.set_pointer(float(pointer_data[0]), float(pointer_data[1]))
            if self.scene is not None:
                self.scene.pointer.move_to(*self._pointer_target)
            changed.append("pointer")

        if ball_data is not None:
            if self.scene is None:
                self.status_msg = "set: no scene yet."
                return
            ball = self.scene.ball
            if ball.state is BallState.CONSUMING:
                self.status_msg = "set: ball is being consumed."
                return
            pos = ball_data.get("pos")
            if pos is not None:
                ball.position = np.array([float(pos[0]), float(pos[1])])
            vel = ball_data.get("vel", ball_data.get("velocity"))
            if vel is not None:
                ball.velocity = np.array([float(vel[0]), float(vel[1])])
            changed.append("ball")

        print(f"[ADV] set: {changed}")
        self.status_msg = f"set: {changed} updated."

    def _state_path(self, file_opt) -> Path | None:
        """Map a console file name into save_dir. Names with a directory part are refused."""
        name = Path(str(file_opt)).name
        if name != str(file_opt) or name in ("", ".", ".."):
            return None
        if not name.endswith(".json"):
            name += ".json"
        return self.save_dir / name

    def _cmd_save(self, data: dict) -> None:
        """save: write the ball / pointer state to a JSON file in save_dir."""
        file_opt = data.get("file", "")
        if not file_opt:
            from datetime import datetime
            file_opt = datetime.now().strftime("%H%M%S") + "_state.json"
        path = self._state_path(file_opt)
        if path is None:
            print(f"[ADV] save refused: {file_opt!r}")
            self.status_msg = f"save: plain file name required, got '{file_opt}'"
            return

        payload = json.loads(self.get_state_json())
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            print(f"[ADV] save → {path}")
            self.status_msg = f"Saved → {path.name}"
        except OSError as e:
            self.status_msg = f"Save error: {e}"

    def _cmd_load(self, data: dict) -> None:
        """load: restore a state saved by 'save'."""
        file_opt = data.get("file", "")
        if not file_opt:
            self.status_msg = "load: 'file' field required."
            return
        path = self._state_path(file_opt)
        if path is None:
            print(f"[ADV] load refused: {file_opt!r}")
            self.status_msg = f"load: plain file name required, got '{file_opt}'"
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            self.status_msg = f"load: not found: {path.name}"
            return
        except (OSError, json.JSONDecodeError) as e:
            self.status_msg = f"Load error: {e}"
            return
        if not isinstance(loaded, dict):
            self.status_msg = f"load: {path.name} is not a JSON object."
            return
        print(f"[ADV] load ← {path}")
        self._cmd_set(loaded)
