from __future__ import annotations

import logging
from enum import Enum, Flag, auto
from typing import Callable, Iterable, Iterator, Sequence

from .config import EditorSettings
from .geometry import dist_to_segment_squared, midpoint, polygons_equal, snap_to_grid
from .models import Point
from .viewport import CoordinateMapper, GridSettings

logger = logging.getLogger(__name__)

MIN_POLYGON_POINTS = 3


class EditorState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    DRAGGING = "dragging"


class Modifiers(Flag):
    NONE = 0
    SHIFT = auto()
    CONTROL = auto()
    ALT = auto()


class Key(Enum):
    ESCAPE = "escape"
    ENTER = "enter"
    RETURN = "return"
    DELETE = "delete"
    BACKSPACE = "backspace"
    OTHER = "other"


class PolygonEditor:
    """Draw and reshape one polygon from screen-space pointer events.

    Vertices are stored in world coordinates and mapped through ``mapper`` on
    every event, so the view may pan or zoom between events.
    """

    def __init__(
        self,
        mapper: CoordinateMapper,
        grid: GridSettings | None = None,
        settings: EditorSettings | None = None,
    ) -> None:
        if mapper is None:
            raise ValueError("mapper is required")
        self._mapper = mapper
        self.grid = grid or GridSettings()
        self.settings = settings or EditorSettings()
        self.snap_to_grid = False

        self._current: list[Point] = []
        self._active = False
        self._drag_index: int | None = None
        self._selected_index: int | None = None
        self._hover_index: int | None = None
        self._hover_edge: tuple[Point, Point] | None = None
        self._original: list[Point] | None = None

    # -- session lifecycle -------------------------------------------------

    def begin(self) -> None:
        self._start_session([], original=None)
        logger.debug("Polygon editing started (new polygon)")

    def begin_with_polygon(self, points: Sequence[Point]) -> None:
        """Resume editing an existing polygon; the original is hidden from overlays."""
        if points is None:
            raise ValueError("points are required")
        copy = [(float(x), float(y)) for x, y in points]
        self._start_session(copy, original=list(copy))
        logger.debug(f"Polygon editing started with {len(copy)} existing point(s)")

    def cancel(self) -> None:
        was_active = self._active
        self._clear_session()
        if was_active:
            logger.debug("Polygon editing cancelled")

    def try_finish(self) -> tuple[Point, ...] | None:
        """Return the finished polygon and go idle, or ``None`` if it has < 3 points."""
        if not self._active or len(self._current) < MIN_POLYGON_POINTS:
            return None
        polygon = tuple(self._current)
        self._clear_session()
        logger.debug(f"Polygon editing finished with {len(polygon)} point(s)")
        return polygon

    def _start_session(self, points: list[Point], original: list[Point] | None) -> None:
        if self._active:
            logger.debug("Abandoning unfinished polygon session")
        self._current = points
        self._active = True
        self._drag_index = None
        self._selected_index = None
        self._clear_hover()
        self._original = original

    def _clear_session(self) -> None:
        self._current = []
        self._active = False
        self._drag_index = None
        self._selected_index = None
        self._clear_hover()
        self._original = None

    # -- pointer input -----------------------------------------------------

    def on_pressed(self, screen: Point) -> bool:
        if not self._active:
            return False
        world = self._to_world_snapped(screen)

        index = self._hit_vertex(screen)
        if index is not None:
            self._drag_index = index
            self._selected_index = index
            self._clear_hover()
            return True

        if self._insert_on_nearest_edge(screen, world):
            return True

        self._current.append(world)
        self._selected_index = len(self._current) - 1
        self._clear_hover()
        return True

    def on_pressed_with_modifiers(self, screen: Point, modifiers: Modifiers) -> bool:
        if not self._active:
            return False

        if Modifiers.CONTROL in modifiers:
            index = self._hit_vertex(screen)
            if index is not None and not self._remove_vertex(index):
                logger.debug("Vertex delete refused: polygon needs more than three points")
            return True

        if Modifiers.ALT in modifiers:
            self._insert_on_nearest_edge(screen, self._to_world_snapped(screen))
            return True

        return self.on_pressed(screen)

    def on_moved(self, screen: Point) -> bool:
        """Track the pointer; returns ``True`` while a vertex is being dragged."""
        if not self._active:
            return False
        dragging = self._drag_index is not None and self._drag_index < len(self._current)
        if dragging:
            self._current[self._drag_index] = self._to_world_snapped(screen)
        self._update_hover(screen)
        return dragging

    def on_released(self, screen: Point) -> bool:
        if not self._active:
            return False
        was_dragging = self._drag_index is not None
        self._drag_index = None
        return was_dragging

    # -- keyboard and explicit commands --------------------------------------

    def on_key_down(self, key: Key, modifiers: Modifiers = Modifiers.NONE) -> bool:
        if not self._active:
            return False
        if key is Key.ESCAPE:
            self.cancel()
            return True
        if key in (Key.ENTER, Key.RETURN):
            self.try_finish()
            return True
        if key in (Key.DELETE, Key.BACKSPACE):
            index = self._drag_index if self._drag_index is not None else self._selected_index
            if index is not None:
                self._remove_vertex(index)
            return True
        return False

    def delete_selected_point(self) -> bool:
        if not self._active or self._selected_index is None:
            return False
        return self._remove_vertex(self._selected_index)

    def insert_midpoint_on_hovered_edge(self) -> bool:
        if not self._active or self._hover_index is None or len(self._current) < 2:
            return False
        i = self._hover_index
        a = self._current[i]
        b = self._current[(i + 1) % len(self._current)]
        self._current.insert(i + 1, midpoint(a, b))
        self._selected_index = i + 1
        self._clear_hover()
        return True

    # -- read accessors for renderers ----------------------------------------

    @property
    def state(self) -> EditorState:
        if not self._active:
            return EditorState.IDLE
        if self._drag_index is not None:
            return EditorState.DRAGGING
        return EditorState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def current(self) -> tuple[Point, ...]:
        return tuple(self._current)

    @property
    def original(self) -> tuple[Point, ...] | None:
        return tuple(self._original) if self._original is not None else None

    @property
    def selected_index(self) -> int | None:
        return self._selected_index

    @property
    def selected_point(self) -> Point | None:
        if not self._active or self._selected_index is None:
            return None
        if self._selected_index >= len(self._current):
            return None
        return self._current[self._selected_index]

    @property
    def has_hovered_edge(self) -> bool:
        return self._hover_index is not None

    @property
    def hovered_edge_index(self) -> int | None:
        return self._hover_index

    @property
    def hovered_edge(self) -> tuple[Point, Point] | None:
        if not self._active:
            return None
        return self._hover_edge

    @property
    def hovered_edge_midpoint(self) -> Point | None:
        edge = self.hovered_edge
        if edge is None:
            return None
        return midpoint(*edge)

    def overlay(
        self, committed: Callable[[], Iterable[Sequence[Point]]] | None = None
    ) -> EditorOverlay:
        return EditorOverlay(self, committed)

    # -- internals -----------------------------------------------------------

    def _to_world_snapped(self, screen: Point) -> Point:
        world = self._mapper.to_world(screen)
        if not self.snap_to_grid or not self.grid.snaps_world:
            return world
        return snap_to_grid(world, self.grid.step_world)

    def _screen_vertices(self) -> list[Point]:
        return [self._mapper.to_screen(p) for p in self._current]

    def _hit_vertex(self, screen: Point) -> int | None:
        tolerance = self.settings.hit_tolerance_sq
        best_index: int | None = None
        best = float("inf")
        for i, (sx, sy) in enumerate(self._screen_vertices()):
            dx = sx - screen[0]
            dy = sy - screen[1]
            d2 = dx * dx + dy * dy
            if d2 <= tolerance and d2 < best:
                best = d2
                best_index = i
        return best_index

    def _nearest_edge(self, screen: Point) -> tuple[int, float] | None:
        n = len(self._current)
        if n < 2:
            return None
        verts = self._screen_vertices()
        best_index = -1
        best = float("inf")
        for i in range(n):
            d2 = dist_to_segment_squared(screen, verts[i], verts[(i + 1) % n])
            if d2 < best:
                best = d2
                best_index = i
        return best_index, best

    def _insert_on_nearest_edge(self, screen: Point, world: Point) -> bool:
        nearest = self._nearest_edge(screen)
        if nearest is None:
            return False
        index, d2 = nearest
        if d2 > self.settings.edge_tolerance_sq:
            return False
        self._current.insert(index + 1, world)
        self._selected_index = index + 1
        self._clear_hover()
        return True

    def _remove_vertex(self, index: int) -> bool:
        if not 0 <= index < len(self._current):
            return False
        if len(self._current) <= MIN_POLYGON_POINTS:
            return False
        del self._current[index]
        self._drag_index = None
        self._selected_index = None
        self._clear_hover()
        return True

    def _update_hover(self, screen: Point) -> None:
        self._clear_hover()
        nearest = self._nearest_edge(screen)
        if nearest is None:
            return
        index, d2 = nearest
        if d2 <= self.settings.edge_tolerance_sq:
            n = len(self._current)
            self._hover_index = index
            self._hover_edge = (self._current[index], self._current[(index + 1) % n])

    def _clear_hover(self) -> None:
        self._hover_index = None
        self._hover_edge = None


class EditorOverlay:
    """Read-only view of an editor session handed to the renderer at wiring time."""

    def __init__(
        self,
        editor: PolygonEditor,
        committed: Callable[[], Iterable[Sequence[Point]]] | None = None,
    ) -> None:
        self._editor = editor
        self._committed = committed

    def is_editing(self) -> bool:
        return self._editor.is_active

    def handles(self) -> tuple[Point, ...]:
        return self._editor.current if self._editor.is_active else ()

    def active_polygon(self) -> tuple[Point, ...] | None:
        current = self._editor.current
        if not self._editor.is_active or len(current) < 2:
            return None
        return current

    def selected_handle(self) -> Point | None:
        return self._editor.selected_point

    def hovered_edge(self) -> tuple[Point, Point] | None:
        return self._editor.hovered_edge

    def polygons(self) -> Iterator[Sequence[Point]]:
        """Committed polygons plus the draft, without the polygon being re-edited."""
        original = self._editor.original if self._editor.is_active else None
        if self._committed is not None:
            for polygon in self._committed():
                if original is not None and polygons_equal(polygon, original):
                    continue
                yield polygon
        active = self.active_polygon()
        if active is not None:
            yield active
