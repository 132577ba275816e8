from __future__ import annotations

import math
from typing import Iterable, Sequence

from .models import Point, Rect

# Floor for divisors that may collapse to zero on degenerate edges.
_EPS_DENOM = 1e-12


def contains_point(polygon: Sequence[Point] | None, point: Point) -> bool:
    """Ray-casting parity test for a simple polygon (implicitly closed).

    Points exactly on an edge get whatever answer the parity test gives them.
    """
    if polygon is None:
        raise ValueError("polygon is required")
    n = len(polygon)
    if n < 3:
        return False
    px, py = point
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        if (yi > py) != (yj > py):
            dy = yj - yi
            if abs(dy) < _EPS_DENOM:
                dy = math.copysign(_EPS_DENOM, dy)
            x_cross = (xj - xi) * (py - yi) / dy + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def contains_point_any(polygons: Iterable[Sequence[Point] | None] | None, point: Point) -> bool:
    if polygons is None:
        return False
    for polygon in polygons:
        if polygon is None:
            continue
        if contains_point(polygon, point):
            return True
    return False


def rect_from_min_max(min_x: float, min_y: float, max_x: float, max_y: float) -> Rect:
    return Rect(min_x, min_y, max(min_x, max_x), max(min_y, max_y))


def bounds_from_points(points: Iterable[Point]) -> Rect | None:
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for x, y in points:
        if x < min_x:
            min_x = x
        if y < min_y:
            min_y = y
        if x > max_x:
            max_x = x
        if y > max_y:
            max_y = y
    if min_x == math.inf:
        return None
    return rect_from_min_max(min_x, min_y, max_x, max_y)


def union_rects(rects: Iterable[Rect | None]) -> Rect | None:
    acc: Rect | None = None
    for rect in rects:
        if rect is None:
            continue
        acc = rect if acc is None else acc.union(rect)
    return acc


def dist_to_segment_squared(p: Point, a: Point, b: Point) -> float:
    abx = b[0] - a[0]
    aby = b[1] - a[1]
    apx = p[0] - a[0]
    apy = p[1] - a[1]
    denom = max(abx * abx + aby * aby, _EPS_DENOM)
    t = (apx * abx + apy * aby) / denom
    t = min(1.0, max(0.0, t))
    dx = p[0] - (a[0] + t * abx)
    dy = p[1] - (a[1] + t * aby)
    return dx * dx + dy * dy


def midpoint(a: Point, b: Point) -> Point:
    return ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)


def polygon_centroid(points: Sequence[Point] | None) -> Point | None:
    """Arithmetic mean of the vertices, used for label placement."""
    if not points or len(points) < 3:
        return None
    n = len(points)
    return (sum(p[0] for p in points) / n, sum(p[1] for p in points) / n)


def snap_to_grid(point: Point, step: float) -> Point:
    if step <= 0:
        return point
    return (round(point[0] / step) * step, round(point[1] / step) * step)


def almost_equal_points(a: Point, b: Point, eps: float = 1e-9) -> bool:
    return math.isclose(a[0], b[0], abs_tol=eps) and math.isclose(a[1], b[1], abs_tol=eps)


def polygons_equal(a: Sequence[Point] | None, b: Sequence[Point] | None, tol: float = 1e-6) -> bool:
    if a is None or b is None or len(a) != len(b):
        return False
    return all(almost_equal_points(pa, pb, eps=tol) for pa, pb in zip(a, b))
