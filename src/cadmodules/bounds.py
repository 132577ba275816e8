from __future__ import annotations

import logging
import math
from typing import Callable, Iterable

from .config import DEFAULT_INSERT_FALLBACK_RADIUS
from .geometry import bounds_from_points, union_rects
from .models import (
    ArcEntity, CadModel, CircleEntity, DimAlignedEntity, DimLinearEntity, DimOrientation,
    EllipseEntity, Entity, EntityKind, HatchEntity, InsertEntity, LeaderEntity, LineEntity,
    MTextEntity, Point, PolylineEntity, Rect, SolidEntity, SplineEntity, TextEntity,
)

logger = logging.getLogger(__name__)

LayerPredicate = Callable[[str | None], bool]

ARC_SEGMENTS = 36
ELLIPSE_SEGMENTS = 72

# Heuristic text metrics: glyph advance and descent as fractions of the height.
_CHAR_WIDTH_FACTOR = 0.6
_DESCENT_FACTOR = 0.8
_DEGENERATE_LENGTH = 1e-6


def _all_visible(layer: str | None) -> bool:
    return True


class BoundsCalculator:
    """World-space bounding boxes for every primitive kind of a ``CadModel``.

    ``bounds`` is the strict contract: ``None`` for empty geometry, hidden
    layers and inserts without resolvable content. ``bounds_or_fallback``
    adds the placeholder box that viewers draw for unresolved inserts.
    """

    def __init__(
        self,
        model: CadModel,
        is_layer_visible: LayerPredicate | None = None,
        *,
        insert_fallback_radius: float = DEFAULT_INSERT_FALLBACK_RADIUS,
    ) -> None:
        if model is None:
            raise ValueError("model is required")
        self.model = model
        self._is_layer_visible = is_layer_visible or _all_visible
        self.insert_fallback_radius = insert_fallback_radius

    def is_visible(self, layer: str | None) -> bool:
        if layer is None or not layer.strip():
            return True
        return bool(self._is_layer_visible(layer))

    def bounds(self, entity: Entity) -> Rect | None:
        if entity is None:
            raise ValueError("entity is required")
        if not self.is_visible(entity.layer):
            return None
        if isinstance(entity, InsertEntity):
            return self._insert_bounds(entity)
        return _entity_bounds(entity)

    def bounds_or_fallback(self, entity: Entity) -> Rect | None:
        rect = self.bounds(entity)
        if rect is None and isinstance(entity, InsertEntity) and self.is_visible(entity.layer):
            return self.insert_fallback(entity)
        return rect

    def insert_fallback(self, insert: InsertEntity) -> Rect:
        r = self.insert_fallback_radius
        x, y = insert.position
        return Rect(x - r, y - r, x + r, y + r)

    def insert_children(self, insert: InsertEntity) -> list[Entity]:
        prefix = insert.child_prefix
        return [
            e for e in self.model.entities
            if e is not insert and e.id.startswith(prefix)
        ]

    def bounds_for_kind_in_layer(self, kind: EntityKind, layer: str) -> Rect | None:
        wanted = (layer or "").casefold()
        rects = (
            self.bounds_or_fallback(e)
            for e in self.model.entities
            if e.kind is kind and (e.layer or "").casefold() == wanted
        )
        return union_rects(rects)

    def bounds_for_layer(self, layer: str) -> Rect | None:
        return union_rects(self.bounds_for_kind_in_layer(kind, layer) for kind in EntityKind)

    def _insert_bounds(self, insert: InsertEntity) -> Rect | None:
        rects: list[Rect | None] = []
        for child in self.insert_children(insert):
            # Nested block content is flattened under the same prefix already.
            if isinstance(child, InsertEntity):
                continue
            if not self.is_visible(child.layer):
                continue
            rects.append(_entity_bounds(child))
        rect = union_rects(rects)
        if rect is None:
            logger.debug(f"Insert {insert.id} ({insert.block_name!r}) has no visible children")
        return rect


def _entity_bounds(entity: Entity) -> Rect | None:
    if isinstance(entity, LineEntity):
        return bounds_from_points((entity.start, entity.end))

    if isinstance(entity, CircleEntity):
        cx, cy = entity.center
        r = abs(entity.radius)
        return Rect(cx - r, cy - r, cx + r, cy + r)

    if isinstance(entity, ArcEntity):
        return arc_bounds(entity.center, entity.radius, entity.start_angle, entity.end_angle)

    if isinstance(entity, EllipseEntity):
        return ellipse_bounds(entity)

    if isinstance(entity, PolylineEntity | SplineEntity | LeaderEntity):
        # Polyline bulges are ignored: the vertex box is the documented extent.
        return bounds_from_points(entity.points)

    if isinstance(entity, SolidEntity):
        return bounds_from_points(entity.vertices)

    if isinstance(entity, TextEntity):
        return text_bounds(entity.insert, entity.height, entity.text)

    if isinstance(entity, MTextEntity):
        # reference width widens top-level mtext too, not only block content
        return text_bounds(entity.insert, entity.height, entity.text, min_width=entity.rect_width)

    if isinstance(entity, HatchEntity):
        return union_rects(bounds_from_points(loop) for loop in entity.loops if loop)

    if isinstance(entity, DimAlignedEntity):
        return bounds_from_points(_aligned_dimension_points(entity))

    if isinstance(entity, DimLinearEntity):
        return bounds_from_points(_linear_dimension_points(entity))

    return None


def arc_bounds(center: Point, radius: float, start_angle: float, end_angle: float) -> Rect:
    start = math.radians(start_angle)
    end = math.radians(end_angle)
    while end < start:
        end += math.tau
    step = (end - start) / ARC_SEGMENTS
    cx, cy = center
    samples = (
        (cx + radius * math.cos(start + i * step), cy + radius * math.sin(start + i * step))
        for i in range(ARC_SEGMENTS + 1)
    )
    return _sampled_bounds(samples)


def ellipse_bounds(ellipse: EllipseEntity) -> Rect:
    if ellipse.is_arc:
        start = math.radians(ellipse.start_angle)
        end = math.radians(ellipse.end_angle)
    else:
        start, end = 0.0, math.tau
    while end < start:
        end += math.tau
    rot = math.radians(ellipse.rotation)
    cos_r, sin_r = math.cos(rot), math.sin(rot)
    cx, cy = ellipse.center

    def sample(i: int) -> Point:
        ang = start + (end - start) * i / ELLIPSE_SEGMENTS
        lx = ellipse.radius_x * math.cos(ang)
        ly = ellipse.radius_y * math.sin(ang)
        return (cx + lx * cos_r - ly * sin_r, cy + lx * sin_r + ly * cos_r)

    return _sampled_bounds(sample(i) for i in range(ELLIPSE_SEGMENTS + 1))


def text_bounds(insert: Point, height: float, text: str | None, *, min_width: float = 0.0) -> Rect:
    """Approximate text box: a fixed advance per character, not real font metrics."""
    h = max(height, 0.0)
    w = max(min_width, h * _CHAR_WIDTH_FACTOR * len(text or ""), 0.0)
    x, y = insert
    bottom = y - _DESCENT_FACTOR * h
    return Rect(x, bottom, x + w, bottom + h)


def _sampled_bounds(samples: Iterable[Point]) -> Rect:
    xs, ys = zip(*samples)
    return Rect(min(xs), min(ys), max(xs), max(ys))


def _aligned_dimension_points(dim: DimAlignedEntity) -> list[Point]:
    (x1, y1), (x2, y2) = dim.p1, dim.p2
    vx, vy = x2 - x1, y2 - y1
    length = math.hypot(vx, vy)
    if length < _DEGENERATE_LENGTH:
        return [dim.p1, dim.p2]
    nx, ny = -vy / length, vx / length
    return [
        dim.p1,
        dim.p2,
        (x1 + nx * dim.offset, y1 + ny * dim.offset),
        (x2 + nx * dim.offset, y2 + ny * dim.offset),
    ]


def _linear_dimension_points(dim: DimLinearEntity) -> list[Point]:
    (x1, y1), (x2, y2) = dim.p1, dim.p2
    if dim.orientation is DimOrientation.HORIZONTAL:
        a, b = (x1, y1 + dim.offset), (x2, y2 + dim.offset)
    else:
        a, b = (x1 + dim.offset, y1), (x2 + dim.offset, y2)
    return [dim.p1, dim.p2, a, b]
