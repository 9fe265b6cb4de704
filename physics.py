"""
Corner Holes Physics Engine
Pointer repulsion, edge bounce, hole capture and respawn.
"""

import enum
import math
import random
import numpy as np
from dataclasses import dataclass, field
from typing import Callable, List, Optional

# ──────────────────────────────────────────────
# Constants (pixels, per-frame units)
# ──────────────────────────────────────────────
INITIAL_BALL_RADIUS: float = 20.0
HOLE_RADIUS: float = 70.0
POINTER_RADIUS: float = 30.0

# ── Runtime-editable behavior constants ───────────────────────────────────────
# These are read by name every call, so the controller can mutate them live via:
#   import physics as _phys;  _phys.SUCK_FORCE = 0.1
PUSH_SPEED: float = 10.0            # speed given to the ball when the pointer hits it
ENTRY_BUFFER: float = 30.0          # how far the ball must overlap a hole before capture
CAPTURE_DAMPING: float = 0.5        # velocity factor applied once on capture
SUCK_FORCE: float = 0.08            # pull per frame, proportional to distance to hole centre
PULL_DAMPING: float = 0.95          # velocity factor applied every consuming frame
SHRINK_RATE: float = 0.8            # multiplicative radius shrink per consuming frame
MIN_BALL_RADIUS: float = 1.0        # at or below this the ball is fully swallowed
SNAP_DISTANCE: float = 1.0          # closer than this the ball snaps onto the hole centre
COMPLETION_DISTANCE: float = 10.0   # max distance to hole centre for the respawn to fire


class Color(enum.Enum):
    POINTER = "#FF5733"
    BALL = "#33FF57"
    HOLE_ACTIVE = "#3357FF"
    HOLE = "#000000"


class BallState(enum.Enum):
    FREE = 0
    CONSUMING = 1


def _vec(value) -> np.ndarray:
    return np.array(value, dtype=float)


@dataclass
class Hole:
    """Fixed attractor in a viewport corner."""
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    radius: float = HOLE_RADIUS
    color: Color = Color.HOLE
    is_collecting: bool = False

    def __post_init__(self):
        self.position = _vec(self.position)

    def reset(self) -> None:
        self.color = Color.HOLE
        self.is_collecting = False


@dataclass
class Pointer:
    """On-screen circle that follows the user's input. Position is None until the first event."""
    position: Optional[np.ndarray] = None
    radius: float = POINTER_RADIUS
    color: Color = Color.POINTER

    def __post_init__(self):
        if self.position is not None:
            self.position = _vec(self.position)

    @property
    def present(self) -> bool:
        return self.position is not None

    def move_to(self, x: float, y: float) -> None:
        self.position = np.array([x, y], dtype=float)


@dataclass
class Ball:
    """The single consumable ball."""
    position: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    velocity: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0]))
    radius: float = INITIAL_BALL_RADIUS
    color: Color = Color.BALL
    initial_radius: Optional[float] = None
    state: BallState = BallState.FREE
    target_hole: Optional[int] = None   # index into Scene.holes

    def __post_init__(self):
        self.position = _vec(self.position)
        self.velocity = _vec(self.velocity)
        if self.initial_radius is None:
            self.initial_radius = self.radius

    @property
    def is_being_consumed(self) -> bool:
        return self.state is BallState.CONSUMING

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))


def corner_holes(width: float, height: float) -> List[Hole]:
    """Holes at the four viewport corners in fixed order: TL, TR, BL, BR."""
    return [
        Hole(position=[0.0, 0.0], radius=HOLE_RADIUS),
        Hole(position=[width, 0.0], radius=HOLE_RADIUS),
        Hole(position=[0.0, height], radius=HOLE_RADIUS),
        Hole(position=[width, height], radius=HOLE_RADIUS),
    ]


def spawn_position(width: float, height: float, rng: random.Random,
                   margin: Optional[float] = None) -> np.ndarray:
    """Uniform random point at least `margin` (default: hole radius) from every edge."""
    if margin is None:
        margin = HOLE_RADIUS
    x = rng.random() * (width - 2 * margin) + margin
    y = rng.random() * (height - 2 * margin) + margin
    return np.array([x, y])


@dataclass
class Scene:
    """Simulation context: everything one frame update reads and writes."""
    width: float
    height: float
    ball: Ball
    holes: List[Hole]
    pointer: Pointer = field(default_factory=Pointer)
    score: int = 0

    @classmethod
    def create(cls, width: float, height: float, rng: random.Random,
               pointer_position=None) -> "Scene":
        ball = Ball(position=spawn_position(width, height, rng),
                    radius=INITIAL_BALL_RADIUS)
        return cls(
            width=float(width),
            height=float(height),
            ball=ball,
            holes=corner_holes(width, height),
            pointer=Pointer(position=pointer_position, radius=POINTER_RADIUS),
        )

    @property
    def collecting_holes(self) -> List[int]:
        return [i for i, h in enumerate(self.holes) if h.is_collecting]

    @property
    def target(self) -> Optional[Hole]:
        idx = self.ball.target_hole
        return None if idx is None else self.holes[idx]


class PhysicsEngine:
    """Per-frame update of the ball against the pointer, the edges and the holes."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()
        self.events: list = []

    # ──────────────────────────────────────────
    # Pointer repulsion
    # ──────────────────────────────────────────
    def _apply_pointer_repulsion(self, ball: Ball, pointer: Pointer) -> None:
        """Override velocity with a fixed-speed push directly away from the pointer."""
        if not pointer.present:
            return
        diff = ball.position - pointer.position
        distance = float(np.linalg.norm(diff))
        if distance < ball.radius + pointer.radius:
            angle = math.atan2(diff[1], diff[0])
            ball.velocity = np.array([math.cos(angle), math.sin(angle)]) * PUSH_SPEED
            self.events.append({"type": "repel", "speed": float(PUSH_SPEED)})

    # ──────────────────────────────────────────
    # Edge bounce
    # ──────────────────────────────────────────
    def _check_edge_bounce(self, ball: Ball, width: float, height: float) -> None:
        """Negate each velocity component whose edge the bounding circle crosses.

        Both axes are checked independently, so a corner hit flips both.
        """
        x, y = ball.position
        r = ball.radius
        if x + r > width or x - r < 0:
            ball.velocity[0] = -ball.velocity[0]
            self.events.append({"type": "bounce", "axis": "x", "speed": abs(float(ball.velocity[0]))})
        if y + r > height or y - r < 0:
            ball.velocity[1] = -ball.velocity[1]
            self.events.append({"type": "bounce", "axis": "y", "speed": abs(float(ball.velocity[1]))})

    # ──────────────────────────────────────────
    # Attraction state machine
    # ──────────────────────────────────────────
    @staticmethod
    def _enters_hole(ball: Ball, hole: Hole) -> bool:
        distance = float(np.linalg.norm(ball.position - hole.position))
        return distance < ball.radius + hole.radius - ENTRY_BUFFER

    def _scan_holes(self, scene: Scene) -> Optional[int]:
        """Capture the ball into the first eligible hole. Returns its index or None."""
        ball = scene.ball
        for idx, hole in enumerate(scene.holes):
            if ball.is_being_consumed or hole.is_collecting:
                continue
            if self._enters_hole(ball, hole):
                self._capture(scene, idx)
                return idx
        return None

    def _capture(self, scene: Scene, idx: int) -> None:
        """FREE -> CONSUMING."""
        ball = scene.ball
        hole = scene.holes[idx]
        ball.state = BallState.CONSUMING
        ball.target_hole = idx
        hole.color = Color.HOLE_ACTIVE
        hole.is_collecting = True
        scene.score += 1
        ball.velocity = ball.velocity * CAPTURE_DAMPING
        self.events.append({"type": "capture", "hole": idx, "score": scene.score})

    def _step_consumption(self, scene: Scene) -> None:
        """Pull the ball toward its hole, shrink it, and respawn once swallowed."""
        ball = scene.ball
        hole = scene.holes[ball.target_hole]

        to_hole = hole.position - ball.position
        dist = float(np.linalg.norm(to_hole))

        if dist > SNAP_DISTANCE:
            ball.velocity = ball.velocity + to_hole * SUCK_FORCE
            ball.velocity = ball.velocity * PULL_DAMPING
        else:
            ball.velocity = np.zeros(2)
            ball.position = hole.position.copy()

        if ball.radius > MIN_BALL_RADIUS:
            ball.radius *= SHRINK_RATE
        else:
            ball.radius = 0.0

        # dist is measured before this frame's pull is integrated
        if ball.radius <= MIN_BALL_RADIUS and dist <= COMPLETION_DISTANCE:
            self._respawn(scene)

    def _respawn(self, scene: Scene) -> None:
        """CONSUMING -> FREE."""
        ball = scene.ball
        idx = ball.target_hole
        ball.state = BallState.FREE
        ball.target_hole = None
        ball.radius = ball.initial_radius
        ball.position = spawn_position(scene.width, scene.height, self.rng)
        ball.velocity = np.zeros(2)
        if idx is not None:
            scene.holes[idx].reset()
        self.events.append({
            "type": "respawn", "hole": idx,
            "pos": [float(ball.position[0]), float(ball.position[1])],
        })

    # ──────────────────────────────────────────
    # Main update
    # ──────────────────────────────────────────
    def update(self, scene: Scene) -> None:
        """Advance the ball by one frame."""
        self.events.clear()
        ball = scene.ball

        if ball.is_being_consumed:
            self._step_consumption(scene)
        else:
            self._apply_pointer_repulsion(ball, scene.pointer)
            self._check_edge_bounce(ball, scene.width, scene.height)
            self._scan_holes(scene)

        ball.position = ball.position + ball.velocity

    def simulate(self, scene: Scene, max_ticks: int = 600,
                 until: Optional[Callable[[Scene], bool]] = None) -> int:
        """
        Run update() repeatedly.

        Returns:
            Number of ticks run. Stops early once until(scene) is true.
        """
        ticks = 0
        while ticks < max_ticks:
            self.update(scene)
            ticks += 1
            if until is not None and until(scene):
                break
        return ticks
