from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .models import Point


class CoordinateMapper(Protocol):
    """World/screen mapping supplied by the hosting viewport."""

    def to_world(self, screen: Point) -> Point:
        ...

    def to_screen(self, world: Point) -> Point:
        ...


class GridMode(Enum):
    NONE = "none"
    SCREEN = "screen"
    WORLD = "world"


@dataclass(slots=True)
class GridSettings:
    mode: GridMode = GridMode.NONE
    step_world: float = 1.0

    @property
    def snaps_world(self) -> bool:
        return self.mode is GridMode.WORLD and self.step_world > 0


@dataclass(slots=True)
class ViewTransform:
    """Uniform pan/zoom transform: ``screen = world * scale + offset``.

    With ``flip_y`` the world Y axis points up while screen Y points down,
    which is how CAD viewers present drawings.
    """

    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    flip_y: bool = False

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise ValueError(f"scale must be positive, got {self.scale}")

    def to_screen(self, world: Point) -> Point:
        x, y = world
        sy = -y if self.flip_y else y
        return (x * self.scale + self.offset_x, sy * self.scale + self.offset_y)

    def to_world(self, screen: Point) -> Point:
        sx, sy = screen
        x = (sx - self.offset_x) / self.scale
        y = (sy - self.offset_y) / self.scale
        return (x, -y if self.flip_y else y)

    def pan(self, dx: float, dy: float) -> None:
        self.offset_x += dx
        self.offset_y += dy

    def zoom_at(self, screen: Point, factor: float) -> None:
        """Zoom by ``factor`` keeping the world point under ``screen`` fixed."""
        if factor <= 0:
            raise ValueError(f"zoom factor must be positive, got {factor}")
        anchor = self.to_world(screen)
        self.scale *= factor
        moved = self.to_screen(anchor)
        self.offset_x += screen[0] - moved[0]
        self.offset_y += screen[1] - moved[1]
