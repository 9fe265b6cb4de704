"""
Corner Holes -- Desktop Front End (3-Tier Architecture)
Layer 3: Ursina rendering / input handling.
Layer 2: controller.py (GameController)
Layer 1: physics.py (PhysicsEngine)

Move the mouse to push the ball away from the corner holes.
Space/P pauses, a click resumes, 1-4 load preset scenes.
"""

import os
import tempfile
import wave
from pathlib import Path
import numpy as np
from ursina import (
    Ursina, Entity, Text, Button, Audio, camera, color, window, mouse,
)

from physics import Color
from controller import GameController, SessionFlags, GAME_PARAMS, DEFAULT_INFO_MSG
from scenarios import ScenePreset

WINDOW_SIZE = (1280, 800)

# ──────────────────────────────────────────
# Synthesized Sound Effects (numpy + wave)
# ──────────────────────────────────────────

_sound_dir = tempfile.mkdtemp(prefix="cornerholes_snd_")


def _synth_wav(filename, samples):
    """Write mono 16-bit 44100Hz WAV and return Path object."""
    path = os.path.join(_sound_dir, filename)
    data = np.clip(samples, -1.0, 1.0)
    data_int = (data * 32767).astype(np.int16)
    with wave.open(path, "w") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(44100)
        wf.writeframes(data_int.tobytes())
    return Path(path)


def _synth_pop():
    sr = 44100; dur = 0.06
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    env = np.exp(-t * 70)
    sig = env * np.sin(2 * np.pi * 900 * t)
    return _synth_wav("pop.wav", sig * 0.7)


def _synth_tick():
    sr = 44100; dur = 0.05
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    env = np.exp(-t * 90)
    sig = env * np.sin(2 * np.pi * 450 * t)
    return _synth_wav("tick.wav", sig * 0.5)


def _synth_gulp():
    # Falling chirp: the ball sliding down the hole
    sr = 44100; dur = 0.35
    t = np.linspace(0, dur, int(sr * dur), endpoint=False)
    freq = 600 * np.exp(-t * 5)
    phase = 2 * np.pi * np.cumsum(freq) / sr
    env = np.exp(-t * 6)
    return _synth_wav("gulp.wav", env * np.sin(phase) * 0.8)


# ──────────────────────────────────────────
# Ursina App
# ──────────────────────────────────────────

app = Ursina(borderless=False, title="Corner Holes", size=WINDOW_SIZE)
window.color = color.white

_COLOR_MAP = {c: color.hex(c.value) for c in Color}


class UrsinaSurface:
    """Rendering surface over pooled circle entities in camera.ui.

    Positions arrive in viewport pixels (origin top-left, y down) and are
    mapped so the viewport height spans the UI's unit height.
    """

    def __init__(self):
        self._pool: list[Entity] = []
        self._used = 0
        self._region = (0.0, 0.0, float(WINDOW_SIZE[0]), float(WINDOW_SIZE[1]))

    def clear(self, region):
        self._region = region
        for ent in self._pool:
            ent.enabled = False
        self._used = 0

    def draw_circle(self, position, radius, clr):
        _, _, w, h = self._region
        scale = 1.0 / h if h > 0 else 0.0
        if self._used == len(self._pool):
            self._pool.append(Entity(parent=camera.ui, model="circle"))
        ent = self._pool[self._used]
        self._used += 1
        ent.enabled = True
        ent.color = _COLOR_MAP.get(clr, color.gray)
        ent.scale = max(2 * radius * scale, 0.0)
        # later draws sit nearer the camera so they render on top
        ent.position = ((position[0] - w / 2) * scale,
                        (h / 2 - position[1]) * scale,
                        -0.01 * self._used)


# ── Frame primitive: callbacks run once on Ursina's next update ──────────────
_frame_queue: list = []


def request_frame(callback):
    _frame_queue.append(callback)


surface = UrsinaSurface()
flags = SessionFlags()

# ── Layer 2: controller instance ──────────────────────────────────────────────
ctrl = GameController(request_frame, surface, flags=flags)

SCENARIOS = {
    "1": (ScenePreset.scenario_1_dodge,   "1: Dodge"),
    "2": (ScenePreset.scenario_2_capture, "2: Capture"),
    "3": (ScenePreset.scenario_3_respawn, "3: Respawn"),
    "4": (ScenePreset.scenario_4_swallow, "4: Swallow"),
}

# ── Sound effects ─────────────────────────────────────────────────────────────
pop_path  = _synth_pop()
tick_path = _synth_tick()
gulp_path = _synth_gulp()
snd_pop  = None
snd_tick = None
snd_gulp = None
_sounds_loaded = False

# ── UI ────────────────────────────────────────────────────────────────────────
score_text = Text(text="Score: 0", position=(-0.85, 0.47), scale=1.6, color=color.black)
info_text = Text(text=DEFAULT_INFO_MSG, position=(-0.85, -0.44), scale=0.9, color=color.dark_gray)
status_text = Text(text="", position=(-0.85, -0.40), scale=1.0, color=color.dark_gray)

dim_overlay = Entity(parent=camera.ui, model="quad", color=color.black66,
                     scale=(4, 2), z=-0.5, enabled=False)
pause_text = Text(text="Paused\nclick anywhere to resume", origin=(0, 0),
                  scale=2.0, color=color.white, z=-0.6, enabled=False)
pause_button = Button(text="||", scale=(0.06, 0.06), position=(0.82, 0.45),
                      color=color.dark_gray, z=-0.7)
pause_button.on_click = ctrl.toggle_pause

instruction_panel = Entity(parent=camera.ui, model="quad", color=color.black90,
                           scale=(1.1, 0.6), z=-0.8, enabled=False)
instruction_text = Text(
    text=("Keep the green ball out of the corner holes.\n"
          "Move the mouse to push it away.\n"
          "Space pauses the game."),
    origin=(0, 0), position=(0, 0.08), scale=1.3, color=color.white,
    z=-0.9, enabled=False,
)
start_button = Button(text="Start", scale=(0.2, 0.07), position=(0, -0.15),
                      color=color.azure, z=-0.9, enabled=False)
start_button.on_click = ctrl.dismiss_instructions

_param_index = 0


def _load_sounds():
    global snd_pop, snd_tick, snd_gulp, _sounds_loaded
    if _sounds_loaded:
        return
    try:
        snd_pop  = Audio(pop_path,  autoplay=False)
        snd_tick = Audio(tick_path, autoplay=False)
        snd_gulp = Audio(gulp_path, autoplay=False)
        _sounds_loaded = True
    except Exception as e:
        print(f"[SND] audio unavailable: {e}")
        _sounds_loaded = True


def _play_sounds(events):
    for evt in events:
        t = evt["type"]
        if t == "repel" and snd_pop:
            snd_pop.play()
        elif t == "bounce" and snd_tick:
            snd_tick.volume = min(1.0, evt["speed"] * 0.1)
            snd_tick.play()
        elif t == "capture" and snd_gulp:
            snd_gulp.play()


# ── Controller event handling ─────────────────────────────────────────────────

def _set_paused_ui(paused: bool):
    dim_overlay.enabled = paused
    pause_text.enabled = paused
    pause_button.text = ">" if paused else "||"
    mouse.visible = paused


def _set_instructions_ui(visible: bool):
    instruction_panel.enabled = visible
    instruction_text.enabled = visible
    start_button.enabled = visible
    score_text.enabled = not visible
    pause_button.enabled = not visible
    mouse.visible = visible


def _show_param(index: int):
    attr, label, mn, mx, step = GAME_PARAMS[index]
    value = ctrl.get_params()[index]["value"]
    status_text.text = f"[{index + 1}/{len(GAME_PARAMS)}] {label} = {value:.4g}  ({mn}..{mx})"


def _handle_controller_event(ev: dict):
    t = ev["type"]
    if t == "update_score":
        score_text.text = f"Score: {ev['score']}"
    elif t == "pause_ui":
        _set_paused_ui(ev["paused"])
    elif t == "show_instructions":
        _set_instructions_ui(True)
    elif t == "hide_instructions":
        _set_instructions_ui(False)
    elif t == "refresh_params":
        _show_param(_param_index)


def _mouse_to_viewport():
    w, h = ctrl.viewport
    return mouse.x * h + w / 2, h / 2 - mouse.y * h


# ──────────────────────────────────────────
# Input handler
# ──────────────────────────────────────────

def input(key):
    global _param_index
    if key in ("space", "p"):
        ctrl.toggle_pause()
    elif key == "left mouse down":
        # Buttons handle their own clicks
        if mouse.hovered_entity in (pause_button, start_button):
            return
        ctrl.handle_click()
    elif key == "enter":
        ctrl.dismiss_instructions()
    elif key in SCENARIOS:
        fn, label = SCENARIOS[key]
        ctrl.load_scenario(fn, label)
    elif key == "[":
        _param_index = (_param_index - 1) % len(GAME_PARAMS)
        _show_param(_param_index)
    elif key == "]":
        _param_index = (_param_index + 1) % len(GAME_PARAMS)
        _show_param(_param_index)
    elif key in (",", "."):
        ctrl.adjust_param(_param_index, -1 if key == "," else 1, fine=False)
        _show_param(_param_index)
    elif key == "backspace":
        ctrl.reset_params()


# ──────────────────────────────────────────
# Update loop
# ──────────────────────────────────────────

_last_size = None
_last_mouse = None


def update():
    global _last_size, _last_mouse

    _load_sounds()

    # ── Viewport: first frame starts the game, later changes are resizes ─────
    size = (float(window.size[0]), float(window.size[1]))
    if _last_size is None:
        _last_size = size
        ctrl.start(*size)
    elif size != _last_size:
        _last_size = size
        ctrl.handle_resize(*size)

    # ── Pointer: only once the mouse has actually moved ──────────────────────
    mpos = (mouse.x, mouse.y)
    if _last_mouse is None:
        _last_mouse = mpos
    elif mpos != _last_mouse:
        _last_mouse = mpos
        ctrl.set_pointer(*_mouse_to_viewport())

    # ── Deliver requested frames ─────────────────────────────────────────────
    due = list(_frame_queue)
    _frame_queue.clear()
    for callback in due:
        callback()

    # ── Process pending events (L2 → L3 UI commands) ─────────────────────────
    for ev in ctrl.pending_events:
        _handle_controller_event(ev)
    ctrl.pending_events.clear()

    if due:
        _play_sounds(ctrl.physics_events)

    if ctrl.info_msg and info_text.text != ctrl.info_msg:
        info_text.text = ctrl.info_msg
    if ctrl.status_msg and status_text.text != ctrl.status_msg:
        status_text.text = ctrl.status_msg


# ──────────────────────────────────────────
# Run
# ──────────────────────────────────────────

if __name__ == "__main__":
    app.run()
