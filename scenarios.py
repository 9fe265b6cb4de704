"""
Scene Preset System
Deterministic scenes for the dodge / capture / respawn / swallow cases.
Each preset builds a scene, optionally runs it, and returns a result dict.
"""

import random
import physics
from physics import Ball, BallState, Color, PhysicsEngine, Pointer, Scene, corner_holes

# Fixed viewport and seed so presets are reproducible
VIEW_WIDTH = 800.0
VIEW_HEIGHT = 600.0
_SEED = 1234


def _make_scene(ball: Ball, pointer=None) -> tuple[Scene, PhysicsEngine]:
    engine = PhysicsEngine(random.Random(_SEED))
    scene = Scene(
        width=VIEW_WIDTH,
        height=VIEW_HEIGHT,
        ball=ball,
        holes=corner_holes(VIEW_WIDTH, VIEW_HEIGHT),
        pointer=Pointer(position=pointer),
    )
    return scene, engine


class ScenePreset:
    """Each preset: place entities → optionally simulate → result dict."""

    @staticmethod
    def scenario_1_dodge(run=True) -> dict:
        """Pointer 5px from the ball centre: the ball is pushed straight away at full speed."""
        ball = Ball(position=[400.0, 300.0])
        scene, engine = _make_scene(ball, pointer=[405.0, 300.0])
        start = ball.position.copy()

        ticks = 0
        if run:
            engine.update(scene)
            ticks = 1
        return {"scene": scene, "engine": engine, "ball": ball,
                "start_pos": start, "ticks": ticks}

    @staticmethod
    def scenario_2_capture(run=True) -> dict:
        """Ball resting inside the top-left hole's entry band: one tick starts consumption."""
        ball = Ball(position=[40.0, 40.0])
        scene, engine = _make_scene(ball)

        ticks = 0
        if run:
            engine.update(scene)
            ticks = 1
        return {"scene": scene, "engine": engine, "ball": ball,
                "hole": scene.holes[0], "ticks": ticks}

    @staticmethod
    def scenario_3_respawn(run=True) -> dict:
        """Fully shrunk ball next to the top-left hole centre: one tick respawns it."""
        ball = Ball(position=[5.0, 0.0])
        scene, engine = _make_scene(ball)
        hole = scene.holes[0]

        ball.state = BallState.CONSUMING
        ball.target_hole = 0
        ball.radius = physics.MIN_BALL_RADIUS
        hole.is_collecting = True
        hole.color = Color.HOLE_ACTIVE
        scene.score = 1

        ticks = 0
        if run:
            engine.update(scene)
            ticks = 1
        return {"scene": scene, "engine": engine, "ball": ball,
                "hole": hole, "ticks": ticks}

    @staticmethod
    def scenario_4_swallow(run=True) -> dict:
        """Ball rolling into the top-left corner: capture, shrink-and-travel, respawn."""
        ball = Ball(position=[200.0, 150.0], velocity=[-3.0, -2.25])
        scene, engine = _make_scene(ball)

        radii: list[float] = []
        captured_at = None
        respawned_at = None
        ticks = 0
        if run:
            while ticks < 600:
                engine.update(scene)
                ticks += 1
                types = [ev["type"] for ev in engine.events]
                if "capture" in types:
                    captured_at = ticks
                if ball.is_being_consumed:
                    radii.append(float(ball.radius))
                if "respawn" in types:
                    respawned_at = ticks
                    break
        return {"scene": scene, "engine": engine, "ball": ball,
                "radii": radii, "captured_at": captured_at,
                "respawned_at": respawned_at, "ticks": ticks}
