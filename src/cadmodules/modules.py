from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, NamedTuple

from .geometry import polygon_centroid
from .models import CadModel, Point, PolylineEntity

logger = logging.getLogger(__name__)

FILE_VERSION = 1


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True, eq=False)
class ModulePolygon:
    points: list[Point] = field(default_factory=list)

    def to_dict(self) -> list[dict[str, float]]:
        return [{"x": x, "y": y} for x, y in self.points]

    @classmethod
    def from_dict(cls, data: Iterable[dict[str, Any]]) -> ModulePolygon:
        return cls([(float(p["x"]), float(p["y"])) for p in data])


@dataclass(slots=True, eq=False)
class Module:
    name: str = ""
    description: str | None = None
    shapes: list[ModulePolygon] = field(default_factory=list)
    children: list[Module] = field(default_factory=list)
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "polygons": [shape.to_dict() for shape in self.shapes],
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Module:
        return cls(
            id=str(data.get("id") or _new_id()),
            name=str(data.get("name") or ""),
            description=data.get("description"),
            shapes=[ModulePolygon.from_dict(p) for p in data.get("polygons") or []],
            children=[Module.from_dict(c) for c in data.get("children") or []],
        )


class ModuleLabel(NamedTuple):
    position: Point
    text: str
    module_id: str


class ModuleTree:
    """Named modules owning polygons; removing a module drops its subtree."""

    def __init__(
        self,
        roots: list[Module] | None = None,
        *,
        version: int = FILE_VERSION,
        cad_file_path: str = "",
        cad_file_hash: str | None = None,
    ) -> None:
        self.roots: list[Module] = roots if roots is not None else []
        self.version = version
        self.cad_file_path = cad_file_path
        self.cad_file_hash = cad_file_hash
        self._listeners: list[Callable[[], None]] = []

    # -- change notification -------------------------------------------------

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` for changes; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _changed(self) -> None:
        for callback in list(self._listeners):
            callback()

    # -- module CRUD ---------------------------------------------------------

    def add_module(self, name: str, description: str | None = None, parent: Module | None = None) -> Module:
        if name is None:
            raise ValueError("module name is required")
        if parent is not None and not self._owns(parent):
            raise ValueError(f"Parent module is not part of this tree: {parent.id}")
        module = Module(name=name, description=description)
        (parent.children if parent is not None else self.roots).append(module)
        logger.debug(f"Added module {name!r} ({module.id})")
        self._changed()
        return module

    def remove_module(self, module: Module) -> None:
        if module is None:
            raise ValueError("module is required")
        siblings = self._siblings_of(module)
        if siblings is None:
            raise ValueError(f"Module is not part of this tree: {module.id}")
        siblings.remove(module)
        logger.debug(f"Removed module {module.name!r} ({module.id}) with its subtree")
        self._changed()

    # -- polygon CRUD --------------------------------------------------------

    def add_polygon(self, module: Module, points: Iterable[Point]) -> ModulePolygon:
        self._require_module(module)
        if points is None:
            raise ValueError("points are required")
        polygon = ModulePolygon([(float(x), float(y)) for x, y in points])
        module.shapes.append(polygon)
        self._changed()
        return polygon

    def update_polygon(self, module: Module, polygon: ModulePolygon, points: Iterable[Point]) -> None:
        self._require_module(module)
        if points is None:
            raise ValueError("points are required")
        self._require_polygon(module, polygon)
        polygon.points = [(float(x), float(y)) for x, y in points]
        self._changed()

    def remove_polygon(self, module: Module, polygon: ModulePolygon) -> None:
        self._require_module(module)
        self._require_polygon(module, polygon)
        module.shapes.remove(polygon)
        self._changed()

    # -- queries -------------------------------------------------------------

    def iter_modules(self) -> Iterator[Module]:
        """Depth-first, parents before children."""
        stack = list(reversed(self.roots))
        while stack:
            module = stack.pop()
            yield module
            stack.extend(reversed(module.children))

    def find_by_id(self, module_id: str | None) -> Module | None:
        if not module_id or not module_id.strip():
            return None
        return next((m for m in self.iter_modules() if m.id == module_id), None)

    def parent_of(self, module: Module) -> Module | None:
        for candidate in self.iter_modules():
            if any(child is module for child in candidate.children):
                return candidate
        return None

    def module_polygons(self, module: Module) -> list[list[Point]]:
        """Valid polygons (>= 3 points) of ``module`` and all its descendants."""
        result: list[list[Point]] = []
        stack = [module]
        while stack:
            current = stack.pop()
            result.extend(list(s.points) for s in current.shapes if len(s.points) >= 3)
            stack.extend(reversed(current.children))
        return result

    def world_polygons(self) -> list[list[Point]]:
        result: list[list[Point]] = []
        for root in self.roots:
            result.extend(self.module_polygons(root))
        return result

    def cards(self) -> list[ModuleLabel]:
        """One label per valid polygon, placed at the polygon's vertex mean."""
        labels: list[ModuleLabel] = []
        for module in self.iter_modules():
            for shape in module.shapes:
                centroid = polygon_centroid(shape.points)
                if centroid is None:
                    continue
                labels.append(ModuleLabel(centroid, module.name or "", module.id))
        return labels

    def labels(self) -> list[tuple[Point, str]]:
        return [(card.position, card.text) for card in self.cards()]

    # -- serialization -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "cad_file_path": self.cad_file_path,
            "cad_file_hash": self.cad_file_hash,
            "modules": [m.to_dict() for m in self.roots],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleTree:
        if data is None:
            raise ValueError("data is required")
        return cls(
            [Module.from_dict(m) for m in data.get("modules") or []],
            version=int(data.get("version") or FILE_VERSION),
            cad_file_path=str(data.get("cad_file_path") or ""),
            cad_file_hash=data.get("cad_file_hash"),
        )

    @classmethod
    def from_layer_polylines(cls, model: CadModel, prefix: str) -> ModuleTree:
        """Build one module per layer whose name starts with ``prefix``.

        Every top-level polyline with at least three points on such a layer
        becomes a polygon of that layer's module; the module is named after
        the layer with the prefix stripped.
        """
        if model is None:
            raise ValueError("model is required")
        if not prefix:
            raise ValueError("module layer prefix must not be empty")
        tree = cls(cad_file_path=model.source)
        by_layer: dict[str, Module] = {}
        folded_prefix = prefix.casefold()
        for entity in model.top_level():
            if not isinstance(entity, PolylineEntity) or len(entity.points) < 3:
                continue
            layer = entity.layer or ""
            if not layer.casefold().startswith(folded_prefix):
                continue
            module = by_layer.get(layer.casefold())
            if module is None:
                module = Module(name=layer[len(prefix):] or layer)
                by_layer[layer.casefold()] = module
                tree.roots.append(module)
            module.shapes.append(ModulePolygon(list(entity.points)))
        logger.debug(f"Found {len(tree.roots)} module layer(s) with prefix {prefix!r}")
        return tree

    # -- helpers -------------------------------------------------------------

    def _owns(self, module: Module) -> bool:
        return any(m is module for m in self.iter_modules())

    def _siblings_of(self, module: Module) -> list[Module] | None:
        if any(m is module for m in self.roots):
            return self.roots
        parent = self.parent_of(module)
        return parent.children if parent is not None else None

    def _require_module(self, module: Module) -> None:
        if module is None:
            raise ValueError("module is required")
        if not self._owns(module):
            raise ValueError(f"Module is not part of this tree: {module.id}")

    @staticmethod
    def _require_polygon(module: Module, polygon: ModulePolygon) -> None:
        if polygon is None:
            raise ValueError("polygon is required")
        if not any(s is polygon for s in module.shapes):
            raise ValueError(f"Polygon does not belong to module {module.id}")
