from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, NamedTuple, Sequence

from .config import UNNAMED_BLOCK
from .geometry import bounds_from_points, contains_point_any, union_rects
from .models import CadModel, InsertEntity, Point, Rect

if TYPE_CHECKING:
    from .modules import ModuleTree

logger = logging.getLogger(__name__)


class CountResult(NamedTuple):
    counts: dict[str, int]
    total: int

    def sorted_items(self, by: str = "count") -> list[tuple[str, int]]:
        if by == "name":
            return sorted(self.counts.items(), key=lambda kv: kv[0].casefold())
        if by == "count":
            return sorted(self.counts.items(), key=lambda kv: (-kv[1], kv[0].casefold()))
        raise ValueError(f"Unsupported sort key: {by}")


@dataclass(slots=True)
class LayerFilter:
    use_model_visibility: bool = True
    includes: set[str] = field(default_factory=set)
    excludes: set[str] = field(default_factory=set)

    def accepts(self, layer: str | None, model: CadModel) -> bool:
        if layer is None or not layer.strip():
            return True
        if self.use_model_visibility:
            info = model.layer(layer)
            if info is not None and not info.is_visible:
                return False
        folded = layer.casefold()
        if self.includes and folded not in {name.casefold() for name in self.includes}:
            return False
        if folded in {name.casefold() for name in self.excludes}:
            return False
        return True


class _BlockTally:
    """Case-insensitive histogram that keeps the first spelling it saw."""

    def __init__(self) -> None:
        self._names: dict[str, str] = {}
        self._counts: dict[str, int] = {}
        self.total = 0

    def add(self, name: str) -> None:
        display = self._names.setdefault(name.casefold(), name)
        self._counts[display] = self._counts.get(display, 0) + 1
        self.total += 1

    def result(self) -> CountResult:
        return CountResult(dict(self._counts), self.total)


def block_name(insert: InsertEntity) -> str:
    name = insert.block_name
    if name is None or not name.strip():
        return UNNAMED_BLOCK
    return name


def _candidate_inserts(
    model: CadModel,
    ignore: Iterable[str] | None,
    layer_filter: LayerFilter | None,
) -> Iterable[tuple[InsertEntity, str]]:
    ignored = {name.casefold() for name in ignore or ()}
    for insert in model.inserts():
        if layer_filter is not None and not layer_filter.accepts(insert.layer, model):
            continue
        name = block_name(insert)
        if name.casefold() in ignored:
            continue
        yield insert, name


def count_all(
    model: CadModel,
    *,
    ignore: Iterable[str] | None = None,
    layer_filter: LayerFilter | None = None,
) -> CountResult:
    if model is None:
        raise ValueError("model is required")
    tally = _BlockTally()
    for _, name in _candidate_inserts(model, ignore, layer_filter):
        tally.add(name)
    return tally.result()


def count_by_rect(
    model: CadModel,
    rect: Rect,
    *,
    ignore: Iterable[str] | None = None,
    layer_filter: LayerFilter | None = None,
) -> CountResult:
    if model is None:
        raise ValueError("model is required")
    if rect is None:
        raise ValueError("rect is required")
    tally = _BlockTally()
    for insert, name in _candidate_inserts(model, ignore, layer_filter):
        if rect.contains(insert.position):
            tally.add(name)
    return tally.result()


def _as_polygon_list(polygons: Sequence[Point] | Sequence[Sequence[Point]]) -> list[Sequence[Point]]:
    rings = [p for p in polygons if p is not None]
    if not rings:
        return []
    first = rings[0]
    # a single ring is a sequence of (x, y) number pairs
    if len(first) == 2 and all(isinstance(v, int | float) for v in first):
        return [rings]  # type: ignore[list-item]
    return rings  # type: ignore[return-value]


def count_by_polygon(
    model: CadModel,
    polygons: Sequence[Point] | Sequence[Sequence[Point]],
    *,
    ignore: Iterable[str] | None = None,
    layer_filter: LayerFilter | None = None,
) -> CountResult:
    """Count inserts whose position falls inside any of ``polygons``.

    Accepts a single ring or a list of rings; rings with fewer than three
    points never match.
    """
    if model is None:
        raise ValueError("model is required")
    if polygons is None:
        raise ValueError("polygons are required")
    rings = [p for p in _as_polygon_list(polygons) if p is not None and len(p) >= 3]
    tally = _BlockTally()
    if not rings:
        return tally.result()

    extent = union_rects(bounds_from_points(ring) for ring in rings)
    for insert, name in _candidate_inserts(model, ignore, layer_filter):
        pos = insert.position
        if extent is not None and not extent.contains(pos):
            continue
        if contains_point_any(rings, pos):
            tally.add(name)
    return tally.result()


def count_by_modules(
    model: CadModel,
    tree: ModuleTree,
    *,
    ignore: Iterable[str] | None = None,
    layer_filter: LayerFilter | None = None,
) -> dict[str, CountResult]:
    """Per-module counts keyed by module id; each module aggregates its subtree."""
    if model is None:
        raise ValueError("model is required")
    if tree is None:
        raise ValueError("module tree is required")
    results: dict[str, CountResult] = {}
    for module in tree.iter_modules():
        polygons = tree.module_polygons(module)
        results[module.id] = count_by_polygon(
            model, polygons, ignore=ignore, layer_filter=layer_filter
        )
        logger.debug(
            f"Module {module.name!r}: {results[module.id].total} insert(s) "
            f"in {len(polygons)} polygon(s)"
        )
    return results
