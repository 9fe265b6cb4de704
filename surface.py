"""
Headless rendering surface.

Records draw commands for one frame instead of painting them. The web server
serializes the recorded list to its clients; tests inspect it directly.
"""


class RecordingSurface:
    """clear(region) / draw_circle(position, radius, color) into a command list."""

    def __init__(self):
        self.region = (0.0, 0.0, 0.0, 0.0)
        self.commands: list[dict] = []
        self.frames = 0

    def clear(self, region) -> None:
        self.region = tuple(float(v) for v in region)
        self.commands = []
        self.frames += 1

    def draw_circle(self, position, radius: float, color) -> None:
        self.commands.append({
            "pos": [round(float(position[0]), 3), round(float(position[1]), 3)],
            "r": round(float(radius), 3),
            "color": getattr(color, "value", color),
        })

    def colors(self) -> list:
        """Colors in draw order (handy for asserting layering)."""
        return [c["color"] for c in self.commands]
