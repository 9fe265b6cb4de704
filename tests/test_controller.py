"""
Controller Tests — frame chain discipline, pause/resume, resize, first-run
flow, score sink, runtime params and the JSON command console.

Scenario D: pausing mid-consumption freezes the ball until resume, which
continues the pull and shrink from exactly the frozen values.
"""

import sys
import os
import json
import random
import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import physics
from physics import BallState, Color
from controller import (
    GameController, SessionFlags, HAS_PLAYED_KEY, GAME_PARAMS, PARAM_DEFAULTS,
)
from scenarios import ScenePreset
from surface import RecordingSurface


# ── Helpers ──────────────────────────────────────────────

class FrameQueue:
    """Stand-in for the host frame primitive: callbacks wait until run()."""

    def __init__(self):
        self.callbacks = []

    def __call__(self, callback):
        self.callbacks.append(callback)

    def run(self) -> int:
        due = list(self.callbacks)
        self.callbacks.clear()
        for cb in due:
            cb()
        return len(due)


def make_controller(played=True, flags=None, save_dir=None):
    frames = FrameQueue()
    surface = RecordingSurface()
    if flags is None:
        flags = SessionFlags()
        if played:
            flags.set(HAS_PLAYED_KEY, True)
    ctrl = GameController(frames, surface, flags=flags, rng=random.Random(7),
                          save_dir=save_dir)
    return ctrl, frames, surface


def event_types(ctrl):
    return [ev["type"] for ev in ctrl.pending_events]


@pytest.fixture(autouse=True)
def _restore_params():
    yield
    for attr, value in PARAM_DEFAULTS.items():
        setattr(physics, attr, value)


# ── First-run flow ───────────────────────────────────────

class TestFirstRun:

    def test_instructions_shown_on_first_visit(self):
        ctrl, frames, surface = make_controller(played=False)
        ctrl.start(800, 600)
        assert ctrl.instructions_visible
        assert ctrl.paused
        assert ctrl.scene is None
        assert frames.callbacks == []
        assert surface.frames == 0
        assert "show_instructions" in event_types(ctrl)

    def test_dismiss_starts_game(self):
        ctrl, frames, surface = make_controller(played=False)
        ctrl.start(800, 600)
        ctrl.dismiss_instructions()

        assert ctrl.flags.get(HAS_PLAYED_KEY) is True
        assert not ctrl.instructions_visible
        assert not ctrl.paused
        assert ctrl.scene is not None
        assert surface.frames == 1
        assert len(frames.callbacks) == 1
        assert "hide_instructions" in event_types(ctrl)

    def test_dismiss_only_once(self):
        ctrl, frames, _ = make_controller(played=False)
        ctrl.start(800, 600)
        ctrl.dismiss_instructions()
        scene = ctrl.scene
        ctrl.dismiss_instructions()
        assert ctrl.scene is scene
        assert len(frames.callbacks) == 1

    def test_returning_player_starts_immediately(self):
        ctrl, frames, surface = make_controller(played=True)
        ctrl.start(800, 600)
        assert not ctrl.paused
        assert surface.frames == 1
        assert len(frames.callbacks) == 1
        assert "show_instructions" not in event_types(ctrl)

    def test_flag_shared_within_session(self):
        flags = SessionFlags()
        first, _, _ = make_controller(flags=flags)
        first.start(800, 600)
        first.dismiss_instructions()

        second, _, _ = make_controller(flags=flags)
        second.start(800, 600)
        assert not second.instructions_visible

    def test_pause_ignored_behind_instructions(self):
        ctrl, frames, _ = make_controller(played=False)
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        ctrl.handle_click()
        assert ctrl.paused
        assert ctrl.instructions_visible
        assert frames.callbacks == []

    def test_resize_behind_instructions_only_records_viewport(self):
        ctrl, _, _ = make_controller(played=False)
        ctrl.start(800, 600)
        ctrl.handle_resize(1024, 768)
        assert ctrl.scene is None
        ctrl.dismiss_instructions()
        assert (ctrl.scene.width, ctrl.scene.height) == (1024.0, 768.0)


# ── Frame chain ──────────────────────────────────────────

class TestTickChain:

    def test_each_frame_requests_its_successor(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        for i in range(5):
            assert frames.run() == 1
            assert len(frames.callbacks) == 1
        assert surface.frames == 6

    def test_tick_is_noop_when_paused(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        before = surface.frames
        ctrl.tick()
        assert surface.frames == before

    def test_pause_lets_chain_end(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        frames.run()                      # in-flight frame arrives, does nothing
        assert frames.callbacks == []
        assert not ctrl.frame_pending
        assert surface.frames == 1

    def test_resume_restarts_chain(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        frames.run()
        ctrl.toggle_pause()
        assert not ctrl.paused
        assert surface.frames == 2
        assert len(frames.callbacks) == 1

    def test_quick_pause_resume_keeps_single_chain(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        ctrl.toggle_pause()               # resume before the pending frame arrived
        assert len(frames.callbacks) == 1
        frames.run()
        assert len(frames.callbacks) == 1

    def test_direct_tick_does_not_fork(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.tick()
        ctrl.tick()
        assert len(frames.callbacks) == 1

    def test_pause_events(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.pending_events.clear()
        ctrl.toggle_pause()
        ctrl.toggle_pause()
        assert [ev for ev in ctrl.pending_events if ev["type"] == "pause_ui"] == [
            {"type": "pause_ui", "paused": True},
            {"type": "pause_ui", "paused": False},
        ]

    def test_click_resumes_only_when_paused(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.handle_click()
        assert not ctrl.paused
        ctrl.toggle_pause()
        ctrl.handle_click()
        assert not ctrl.paused


# ── Rendering order ──────────────────────────────────────

class TestDrawOrder:

    def test_holes_then_ball_then_pointer(self):
        ctrl, frames, surface = make_controller()
        ctrl.set_pointer(700.0, 500.0)
        ctrl.start(800, 600)
        assert surface.colors() == [Color.HOLE.value] * 4 + [Color.BALL.value, Color.POINTER.value]
        assert surface.region == (0.0, 0.0, 800.0, 600.0)

    def test_pointer_hidden_until_first_input(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        assert len(surface.commands) == 5
        ctrl.set_pointer(10.0, 20.0)
        frames.run()
        assert len(surface.commands) == 6
        assert surface.commands[-1]["pos"] == [10.0, 20.0]

    def test_pointer_read_at_tick(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.set_pointer(1.0, 2.0)
        ctrl.set_pointer(3.0, 4.0)
        frames.run()
        np.testing.assert_allclose(ctrl.scene.pointer.position, [3.0, 4.0])


# ── Score sink ───────────────────────────────────────────

class TestScore:

    def test_capture_publishes_score(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.scene.ball.position = np.array([40.0, 40.0])
        ctrl.pending_events.clear()
        frames.run()
        assert ctrl.score == 1
        assert {"type": "update_score", "score": 1} in ctrl.pending_events
        assert [ev["type"] for ev in ctrl.physics_events] == ["capture"]

    def test_setup_resets_score(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.scene.ball.position = np.array([40.0, 40.0])
        frames.run()
        ctrl.pending_events.clear()
        ctrl.handle_resize(900, 700)
        assert ctrl.score == 0
        assert {"type": "update_score", "score": 0} in ctrl.pending_events


# ── Scenario D: pause mid-consumption ────────────────────

class TestPauseMidConsumption:

    def test_freeze_and_continue(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.scene.ball.position = np.array([40.0, 40.0])
        frames.run()                      # capture
        frames.run()                      # first pull/shrink
        ball = ctrl.scene.ball
        assert ball.state is BallState.CONSUMING

        ctrl.toggle_pause()
        pos = ball.position.copy()
        vel = ball.velocity.copy()
        radius = ball.radius
        for _ in range(10):
            frames.run()
            ctrl.tick()
        np.testing.assert_array_equal(ball.position, pos)
        np.testing.assert_array_equal(ball.velocity, vel)
        assert ball.radius == radius

        ctrl.toggle_pause()
        expected_vel = (vel + (np.zeros(2) - pos) * physics.SUCK_FORCE) * physics.PULL_DAMPING
        np.testing.assert_allclose(ball.velocity, expected_vel)
        np.testing.assert_allclose(ball.position, pos + expected_vel)
        assert ball.radius == pytest.approx(radius * physics.SHRINK_RATE)


# ── Resize ───────────────────────────────────────────────

class TestResize:

    def test_resize_while_running_restarts_frame(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        old = ctrl.scene
        ctrl.handle_resize(1024, 768)
        assert ctrl.scene is not old
        assert (ctrl.scene.width, ctrl.scene.height) == (1024.0, 768.0)
        assert ctrl.scene.holes[3].position.tolist() == [1024.0, 768.0]
        assert surface.frames == 2
        assert len(frames.callbacks) == 1

    def test_resize_while_paused_stays_paused(self):
        ctrl, frames, surface = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        frames.run()
        ctrl.handle_resize(640, 480)
        assert ctrl.paused
        assert ctrl.scene.width == 640.0
        assert frames.callbacks == []
        assert surface.frames == 1

    def test_pointer_survives_resize(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.set_pointer(100.0, 120.0)
        ctrl.toggle_pause()
        ctrl.handle_resize(640, 480)
        np.testing.assert_allclose(ctrl.scene.pointer.position, [100.0, 120.0])

    def test_setup_never_schedules(self):
        ctrl, frames, surface = make_controller()
        ctrl.setup_scene(800, 600)
        assert frames.callbacks == []
        assert surface.frames == 0


# ── Scenarios ────────────────────────────────────────────

class TestLoadScenario:

    def test_capture_preset_runs_on_load(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.load_scenario(ScenePreset.scenario_2_capture, "2: Capture")
        assert ctrl.score == 1
        assert ctrl.viewport == (800.0, 600.0)
        assert ctrl.info_msg == "Scenario 2: Capture"
        assert len(frames.callbacks) == 1

    def test_dodge_preset_sets_pointer(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.toggle_pause()
        ctrl.load_scenario(ScenePreset.scenario_1_dodge, "1: Dodge")
        np.testing.assert_allclose(ctrl.scene.pointer.position, [405.0, 300.0])
        np.testing.assert_allclose(ctrl.scene.ball.position, [400.0, 300.0])


# ── Runtime params ───────────────────────────────────────

class TestParams:

    def test_adjust_steps_and_clamps(self):
        ctrl, _, _ = make_controller()
        idx = [p[0] for p in GAME_PARAMS].index("PUSH_SPEED")
        assert ctrl.adjust_param(idx, +1) == pytest.approx(10.5)
        assert physics.PUSH_SPEED == pytest.approx(10.5)
        assert ctrl.adjust_param(idx, -1, fine=True) == pytest.approx(10.45)
        for _ in range(100):
            ctrl.adjust_param(idx, +1)
        assert physics.PUSH_SPEED == 30.0

    def test_adjust_bad_index(self):
        ctrl, _, _ = make_controller()
        assert ctrl.adjust_param(len(GAME_PARAMS), 1) is None

    def test_reset_restores_defaults(self):
        ctrl, _, _ = make_controller()
        physics.SUCK_FORCE = 0.3
        ctrl.reset_params()
        assert physics.SUCK_FORCE == PARAM_DEFAULTS["SUCK_FORCE"]

    def test_get_params_lists_all(self):
        ctrl, _, _ = make_controller()
        params = ctrl.get_params()
        assert [p["attr"] for p in params] == [p[0] for p in GAME_PARAMS]
        assert params[0]["value"] == pytest.approx(physics.PUSH_SPEED)


# ── Command console ──────────────────────────────────────

class TestCommandConsole:

    def test_set_ball_and_pointer(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.execute_command(json.dumps({
            "cmd": "set", "ball": {"pos": [200, 250], "vel": [1, -1]}, "pointer": [50, 60],
        }))
        np.testing.assert_allclose(ctrl.scene.ball.position, [200.0, 250.0])
        np.testing.assert_allclose(ctrl.scene.ball.velocity, [1.0, -1.0])
        np.testing.assert_allclose(ctrl.scene.pointer.position, [50.0, 60.0])

    def test_set_params_reports_unknown(self):
        ctrl, _, _ = make_controller()
        ctrl.execute_command('{"cmd": "set", "params": {"SUCK_FORCE": 0.2, "GRAVITY": 9.8}}')
        assert physics.SUCK_FORCE == pytest.approx(0.2)
        assert "GRAVITY" in ctrl.status_msg

    def test_set_rejected_while_consuming(self):
        ctrl, frames, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.scene.ball.position = np.array([40.0, 40.0])
        frames.run()
        before = ctrl.scene.ball.position.copy()
        ctrl.execute_command('{"cmd": "set", "ball": {"pos": [300, 300]}}')
        np.testing.assert_array_equal(ctrl.scene.ball.position, before)
        assert "consumed" in ctrl.status_msg

    def test_bad_json(self):
        ctrl, _, _ = make_controller()
        ctrl.execute_command("{not json")
        assert ctrl.status_msg.startswith("JSON error")

    def test_bad_arguments(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.execute_command('{"cmd": "set", "pointer": "here"}')
        assert "bad arguments" in ctrl.status_msg

    def test_unknown_command(self):
        ctrl, _, _ = make_controller()
        ctrl.execute_command('{"cmd": "jump"}')
        assert "Unknown cmd" in ctrl.status_msg

    def test_mapping_where_list_expected(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.execute_command('{"cmd": "set", "pointer": {"x": 1, "y": 2}}')
        assert "bad arguments" in ctrl.status_msg
        ctrl.execute_command('{"cmd": "set", "ball": {"pos": {"x": 1}}}')
        assert "bad arguments" in ctrl.status_msg

    def test_save_then_load(self, tmp_path):
        ctrl, _, _ = make_controller(save_dir=tmp_path)
        ctrl.start(800, 600)
        ctrl.execute_command('{"cmd": "set", "ball": {"pos": [210, 220], "vel": [0, 0]}}')
        ctrl.execute_command(json.dumps({"cmd": "save", "file": "state"}))
        assert (tmp_path / "state.json").exists()

        ctrl.scene.ball.position = np.array([500.0, 500.0])
        ctrl.execute_command(json.dumps({"cmd": "load", "file": "state"}))
        np.testing.assert_allclose(ctrl.scene.ball.position, [210.0, 220.0])

    def test_load_missing_file(self, tmp_path):
        ctrl, _, _ = make_controller(save_dir=tmp_path)
        ctrl.execute_command(json.dumps({"cmd": "load", "file": "nope"}))
        assert "not found" in ctrl.status_msg

    @pytest.mark.parametrize("name", ["../escape", "sub/state", "/tmp/state", ".."])
    def test_save_refuses_paths(self, tmp_path, name):
        save_dir = tmp_path / "saves"
        ctrl, _, _ = make_controller(save_dir=save_dir)
        ctrl.start(800, 600)
        ctrl.execute_command(json.dumps({"cmd": "save", "file": name}))
        assert "plain file name" in ctrl.status_msg
        assert not (tmp_path / "escape.json").exists()
        assert not save_dir.exists()

    def test_load_refuses_paths(self, tmp_path):
        outside = tmp_path / "outside.json"
        outside.write_text('{"cmd": "set", "ball": {"pos": [1, 1]}}', encoding="utf-8")
        ctrl, _, _ = make_controller(save_dir=tmp_path / "saves")
        ctrl.start(800, 600)
        before = ctrl.scene.ball.position.copy()
        ctrl.execute_command(json.dumps({"cmd": "load", "file": "../outside"}))
        assert "plain file name" in ctrl.status_msg
        np.testing.assert_array_equal(ctrl.scene.ball.position, before)

    def test_state_json(self):
        ctrl, _, _ = make_controller()
        ctrl.start(800, 600)
        ctrl.execute_command('{"cmd": "set", "ball": {"pos": [123, 456]}}')
        state = json.loads(ctrl.get_state_json())
        assert state["cmd"] == "set"
        assert state["ball"]["pos"] == [123.0, 456.0]
        assert "pointer" not in state
